"""Shipwright — multi-stage remote deployment orchestrator.

Deploys an application to a single host over SSH as an ordered
sequence of retryable stages with rollback, verifies the result with
a health probe, and notifies recipients of the outcome.
"""

__version__ = "0.1.0"
