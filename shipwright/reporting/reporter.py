"""Reporter — renders and delivers the deployment notification.

The payload is a structured record (job, build, status, per-stage
statuses, duration, deployment URL, log excerpt); the plain-text body
is a convenience rendering of those fields, not a template.

Delivery failures are logged and reported as ``False``. They never
raise and never touch the PipelineReport, so a deployment that
succeeded stays successful even if nobody could be told about it.
"""

from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field

from shipwright.exceptions import DeliveryError
from shipwright.infra.mail_client import MailClient
from shipwright.schemas.enums import HealthStatus, RunStatus, StageStatus
from shipwright.schemas.report import PipelineReport, StageResult
from shipwright.utils.redaction import redact_text

logger = structlog.get_logger()

DEFAULT_EXCERPT_LINES = 40


class StageSummary(BaseModel):
    """One line of the per-stage status table."""

    model_config = ConfigDict(frozen=True)

    name: str
    status: StageStatus
    attempts: int
    duration_ms: float
    exit_code: Optional[int] = None
    error: Optional[str] = None


class NotificationPayload(BaseModel):
    """Structured notification for one deployment run."""

    model_config = ConfigDict(frozen=True)

    run_id: UUID
    job_name: str
    build_number: int
    status: RunStatus
    subject: str
    target_host: str
    deployment_url: str
    duration_seconds: float = Field(ge=0.0)
    stages: list[StageSummary] = Field(default_factory=list)
    health_status: HealthStatus
    log_excerpt: str = ""

    def to_text(self) -> str:
        """Plain-text body listing every field."""
        lines = [
            f"Job: {self.job_name} #{self.build_number}",
            f"Status: {self.status.value}",
            f"Target: {self.target_host}",
            f"URL: {self.deployment_url}",
            f"Duration: {self.duration_seconds:.1f}s",
            f"Health: {self.health_status.value}",
            "",
            "Stages:",
        ]
        for stage in self.stages:
            line = f"  {stage.name:<20} {stage.status.value:<12} attempts={stage.attempts}"
            if stage.exit_code is not None:
                line += f" exit={stage.exit_code}"
            if stage.error:
                line += f" ({stage.error})"
            lines.append(line)
        if self.log_excerpt:
            lines.extend(["", "Log excerpt:", self.log_excerpt])
        return "\n".join(lines)

    def fields(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"log_excerpt"})


class Reporter:
    """Builds notification payloads and hands them to a MailClient."""

    def __init__(
        self,
        mail_client: MailClient,
        excerpt_lines: int = DEFAULT_EXCERPT_LINES,
    ) -> None:
        self._mail = mail_client
        self._excerpt_lines = excerpt_lines

    def render(self, report: PipelineReport) -> NotificationPayload:
        """Turn a PipelineReport into a NotificationPayload."""
        deployment_url = report.health.url or f"http://{report.target_host}/"
        subject = (
            f"[{report.status.value}] {report.job_name} #{report.build_number}"
            f" → {report.target_host}"
        )
        return NotificationPayload(
            run_id=report.run_id,
            job_name=report.job_name,
            build_number=report.build_number,
            status=report.status,
            subject=subject,
            target_host=report.target_host,
            deployment_url=deployment_url,
            duration_seconds=round(report.total_duration_ms / 1000.0, 3),
            stages=[
                StageSummary(
                    name=s.stage_name,
                    status=s.status,
                    attempts=s.attempts,
                    duration_ms=s.duration_ms,
                    exit_code=s.exit_code,
                    error=s.error,
                )
                for s in report.stage_results
            ],
            health_status=report.health.status,
            log_excerpt=self._excerpt(report),
        )

    async def send(self, payload: NotificationPayload, targets: Iterable[str]) -> bool:
        """Deliver ``payload`` to ``targets``.

        Returns:
            True if the mail client accepted the message, False if there
            were no recipients or delivery failed.
        """
        recipients = sorted(set(targets))
        log = logger.bind(run_id=str(payload.run_id), subject=payload.subject)
        if not recipients:
            log.info("No notification recipients configured")
            return False

        try:
            await self._mail.send(
                payload.subject, payload.to_text(), recipients, payload.fields(),
            )
        except DeliveryError as e:
            log.error("Notification delivery failed", error=str(e), status_code=e.status_code)
            return False
        except Exception as e:
            log.error("Notification delivery failed (unexpected)", error=str(e), exc_info=True)
            return False

        log.info("Notification sent", recipients=len(recipients))
        return True

    async def notify(self, report: PipelineReport, targets: Iterable[str]) -> bool:
        """Render and send in one step."""
        return await self.send(self.render(report), targets)

    def _excerpt(self, report: PipelineReport) -> str:
        """Tail of the output most worth reading: the failing stage, else the last one."""
        source: Optional[StageResult] = report.failed_stage
        if source is None:
            forward = [
                s for s in report.stage_results
                if s.status != StageStatus.ROLLED_BACK
            ]
            source = forward[-1] if forward else None
        if source is None or self._excerpt_lines <= 0:
            return ""

        text = "\n".join(part for part in (source.stdout, source.stderr) if part)
        if not text:
            return ""
        tail = text.rstrip("\n").splitlines()[-self._excerpt_lines:]
        return redact_text("\n".join(tail))
