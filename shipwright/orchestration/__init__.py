"""Shipwright orchestration layer.

Runs a fixed, ordered deployment pipeline against one host:
  install → clone → test → configure-proxy → configure-service → health

Each stage is retried on transient transport errors, halts the run on
terminal errors, and is unwound in reverse when a later stage fails.
"""

from shipwright.orchestration.executor import PipelineExecutor
from shipwright.orchestration.runner import DeploymentRunner
from shipwright.orchestration.stage import Stage, command_stage

__all__ = [
    "DeploymentRunner",
    "PipelineExecutor",
    "Stage",
    "command_stage",
]
