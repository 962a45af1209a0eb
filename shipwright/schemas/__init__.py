"""Shipwright schemas — typed data contracts between components."""

from shipwright.schemas.context import RunContext, SshIdentity
from shipwright.schemas.enums import HealthStatus, RunStatus, StageStatus
from shipwright.schemas.report import (
    CommandResult,
    HealthResult,
    PipelineReport,
    StageResult,
)

__all__ = [
    "CommandResult",
    "HealthResult",
    "HealthStatus",
    "PipelineReport",
    "RunContext",
    "RunStatus",
    "SshIdentity",
    "StageResult",
    "StageStatus",
]
