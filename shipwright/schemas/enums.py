"""Shared enumerations for Shipwright schemas.

All enums used across the Shipwright system are defined here to ensure
consistency and avoid circular imports.
"""

from enum import Enum


class StageStatus(str, Enum):
    """Outcome recorded for one stage entry in the run log."""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"
    CANCELLED = "CANCELLED"


class RunStatus(str, Enum):
    """Aggregate status for a deployment run."""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class HealthStatus(str, Enum):
    """Classification returned by the post-deploy health probe."""
    HEALTHY = "HEALTHY"
    UNHEALTHY = "UNHEALTHY"
    TIMED_OUT = "TIMED_OUT"
    SKIPPED = "SKIPPED"
