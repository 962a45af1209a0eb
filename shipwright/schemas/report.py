"""Run report schemas — command output, stage results, health, and the run report.

Immutable records for tracking pipeline execution: per-stage results,
the post-deploy health probe, and the aggregate run report.
"""

import hashlib
import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shipwright.schemas.enums import HealthStatus, RunStatus, StageStatus


class CommandResult(BaseModel):
    """Captured output of one remote command."""

    model_config = ConfigDict(frozen=True)

    command: str = Field(default="")
    stdout: str = Field(default="")
    stderr: str = Field(default="")
    exit_code: int = Field(default=0)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class StageResult(BaseModel):
    """Result of one stage, or of its rollback.

    Immutable after creation. Captures timing, status, output, and errors.
    """

    model_config = ConfigDict(frozen=True)

    stage_name: str = Field(...)
    status: StageStatus = Field(...)
    attempts: int = Field(default=1, ge=0)
    started_at: datetime = Field(...)
    finished_at: datetime = Field(...)
    duration_ms: float = Field(default=0.0, ge=0.0)
    stdout: str = Field(default="")
    stderr: str = Field(default="")
    exit_code: Optional[int] = Field(
        default=None,
        description="Exit code of the last command (None if it never completed)",
    )
    error: Optional[str] = Field(
        default=None,
        description="Error message if the stage or its rollback failed",
    )


class HealthResult(BaseModel):
    """Outcome of polling the deployed endpoint."""

    model_config = ConfigDict(frozen=True)

    status: HealthStatus = Field(...)
    url: str = Field(default="")
    attempts: int = Field(default=0, ge=0)
    last_status_code: Optional[int] = Field(default=None)
    elapsed_ms: float = Field(default=0.0, ge=0.0)
    error: Optional[str] = Field(default=None)

    @property
    def passed(self) -> bool:
        return self.status in (HealthStatus.HEALTHY, HealthStatus.SKIPPED)

    @classmethod
    def skipped(cls, url: str = "", reason: str | None = None) -> "HealthResult":
        return cls(status=HealthStatus.SKIPPED, url=url, error=reason)


class PipelineReport(BaseModel):
    """Complete record of a deployment run.

    Tracks every stage entry (forward and rollback), the health probe,
    aggregate status, and timing for a single run.
    """

    model_config = ConfigDict(frozen=True)

    run_id: UUID = Field(default_factory=uuid4)
    job_name: str = Field(default="deploy")
    build_number: int = Field(default=0, ge=0)
    target_host: str = Field(default="")
    status: RunStatus = Field(...)
    started_at: datetime = Field(...)
    finished_at: datetime = Field(...)
    stage_results: list[StageResult] = Field(default_factory=list)
    health: HealthResult = Field(default_factory=HealthResult.skipped)
    metadata: dict[str, Any] = Field(default_factory=dict)
    content_hash: str = Field(default="")

    @model_validator(mode="after")
    def _compute_content_hash(self) -> "PipelineReport":
        if not self.content_hash:
            data = {
                "run_id": str(self.run_id),
                "job_name": self.job_name,
                "build_number": self.build_number,
                "status": self.status.value,
                "stages": [
                    {"stage_name": s.stage_name, "status": s.status.value}
                    for s in self.stage_results
                ],
                "health": self.health.status.value,
            }
            serialized = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
            object.__setattr__(
                self, "content_hash", hashlib.sha256(serialized).hexdigest(),
            )
        return self

    def results_with_status(self, status: StageStatus) -> list[StageResult]:
        return [s for s in self.stage_results if s.status == status]

    @property
    def succeeded_count(self) -> int:
        return len(self.results_with_status(StageStatus.SUCCEEDED))

    @property
    def failed_count(self) -> int:
        return len(self.results_with_status(StageStatus.FAILED))

    @property
    def rolled_back_count(self) -> int:
        return len(self.results_with_status(StageStatus.ROLLED_BACK))

    @property
    def total_duration_ms(self) -> float:
        return (self.finished_at - self.started_at).total_seconds() * 1000.0

    @property
    def failed_stage(self) -> Optional[StageResult]:
        """The stage entry that stopped forward progress, if any."""
        for s in self.stage_results:
            if s.status in (StageStatus.FAILED, StageStatus.CANCELLED):
                return s
        return None
