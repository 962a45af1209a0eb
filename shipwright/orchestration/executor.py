"""PipelineExecutor — runs an ordered deployment pipeline.

Stages run strictly in order, each assuming the remote effects of the
ones before it:

  install → clone → test → configure-proxy → configure-service → health

Per stage:
  - Transient errors (connection drop, command timeout) are retried up
    to ``max_retries`` times with exponential backoff.
  - Each attempt, and each rollback, is bounded by the stage timeout;
    running out counts as a transient command timeout.
  - A non-zero exit or any other error is terminal on first occurrence.
  - A terminal failure halts forward progress and unwinds the stages
    that already succeeded, newest first, calling their rollbacks.
  - Rollback failures are logged and recorded; the unwind continues.

The health probe runs only after every stage succeeded. It can turn
the run FAILED but never triggers a rollback.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, Sequence

from shipwright.exceptions import (
    ApplicationError,
    CancellationError,
    CommandTimeoutError,
    PipelineDefinitionError,
    RollbackError,
    TransientError,
)
from shipwright.orchestration.stage import Stage
from shipwright.schemas.context import RunContext
from shipwright.schemas.enums import HealthStatus, RunStatus, StageStatus
from shipwright.schemas.report import HealthResult, PipelineReport, StageResult
from shipwright.services.health import HealthVerifier
from shipwright.transport.base import Transport
from shipwright.utils.logging import get_logger
from shipwright.utils.redaction import redact_text

MAX_CAPTURED_CHARS = 64_000


class PipelineExecutor:
    """Sequential stage runner with retry, rollback, and cancellation.

    The executor owns the RunContext and Transport for the duration of
    one ``run``. It never raises for stage failures; every outcome is
    recorded in the returned PipelineReport.
    """

    def __init__(
        self,
        transport: Transport,
        health_verifier: Optional[HealthVerifier] = None,
        rollback_on_failure: bool = True,
    ) -> None:
        self._transport = transport
        self._health = health_verifier
        self._rollback_on_failure = rollback_on_failure

    async def run(
        self,
        context: RunContext,
        stages: Sequence[Stage],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PipelineReport:
        """Execute ``stages`` in order against the context's target.

        Args:
            context: Immutable description of the deployment target.
            stages: Ordered stages; names must be unique.
            cancel_event: Set externally to cancel the run. Checked between
                attempts and raced against in-flight work.

        Returns:
            PipelineReport with every forward and rollback entry.

        Raises:
            PipelineDefinitionError: If stage names are not unique.
        """
        self._validate(stages)
        cancel_event = cancel_event or asyncio.Event()
        run_id = context.run_id
        log = get_logger(str(run_id), context.target_host).bind(
            job=context.job_name, build=context.build_number,
        )
        log.info("Deployment starting", stages=[s.name for s in stages])
        started_at = datetime.now(timezone.utc)

        results: list[StageResult] = []
        completed: list[Stage] = []
        halted: Optional[RunStatus] = None

        for stage in stages:
            if cancel_event.is_set():
                log.warning("Run cancelled before stage", stage=stage.name)
                halted = RunStatus.CANCELLED
                break

            result = await self._run_stage(stage, context, cancel_event, log)
            results.append(result)

            if result.status == StageStatus.SUCCEEDED:
                completed.append(stage)
                continue

            halted = (
                RunStatus.CANCELLED
                if result.status == StageStatus.CANCELLED
                else RunStatus.FAILED
            )
            break

        if halted is not None:
            if self._rollback_on_failure:
                results.extend(await self._unwind(completed, context, log))
            health = HealthResult.skipped(
                url=context.deployment_url, reason=f"Run {halted.value.lower()}",
            )
            status = halted
        else:
            health = await self._verify_health(context, log)
            status = RunStatus.SUCCEEDED if health.passed else RunStatus.FAILED

        report = PipelineReport(
            run_id=run_id,
            job_name=context.job_name,
            build_number=context.build_number,
            target_host=context.target_host,
            status=status,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            stage_results=results,
            health=health,
            metadata={
                "declared_stages": [s.name for s in stages],
                "rollback_enabled": self._rollback_on_failure,
            },
        )

        log.info(
            "Deployment complete",
            status=status.value,
            succeeded=report.succeeded_count,
            failed=report.failed_count,
            rolled_back=report.rolled_back_count,
            health=health.status.value,
            duration_ms=round(report.total_duration_ms, 1),
        )
        return report

    # ------------------------------------------------------------------
    # Forward execution
    # ------------------------------------------------------------------

    async def _run_stage(
        self,
        stage: Stage,
        context: RunContext,
        cancel_event: asyncio.Event,
        log: Any,
    ) -> StageResult:
        """Attempt a stage until success, terminal failure, or cancellation."""
        log = log.bind(stage=stage.name)
        started_at = datetime.now(timezone.utc)
        start_time = time.monotonic()
        attempt = 0

        def finish(status: StageStatus, **fields: Any) -> StageResult:
            return StageResult(
                stage_name=stage.name,
                status=status,
                attempts=attempt,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                duration_ms=round((time.monotonic() - start_time) * 1000.0, 2),
                **fields,
            )

        while True:
            if cancel_event.is_set():
                log.warning("Stage cancelled", attempts=attempt)
                return finish(StageStatus.CANCELLED, error="Run cancelled")

            attempt += 1
            log.info("Stage attempt starting", attempt=attempt, max_attempts=stage.max_attempts)

            try:
                outcome = await _race(
                    _bounded(stage.action(context, self._transport), stage),
                    cancel_event,
                )

            except CancellationError:
                log.warning("Stage cancelled mid-attempt", attempt=attempt)
                return finish(StageStatus.CANCELLED, error="Run cancelled during stage")

            except TransientError as e:
                if attempt >= stage.max_attempts:
                    log.error("Stage failed (retries exhausted)", attempt=attempt, error=str(e))
                    return finish(
                        StageStatus.FAILED,
                        error=f"{type(e).__name__}: {redact_text(str(e))}",
                    )
                delay = stage.backoff_for(attempt)
                log.warning(
                    "Transient stage error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=round(delay, 3),
                )
                try:
                    await _race(asyncio.sleep(delay), cancel_event)
                except CancellationError:
                    log.warning("Stage cancelled during backoff", attempt=attempt)
                    return finish(StageStatus.CANCELLED, error="Run cancelled during retry backoff")
                continue

            except ApplicationError as e:
                log.error("Stage failed (command error)", exit_code=e.exit_code, command=e.command)
                return finish(
                    StageStatus.FAILED,
                    stdout=_capture(e.stdout),
                    stderr=_capture(e.stderr),
                    exit_code=e.exit_code,
                    error=redact_text(str(e)),
                )

            except Exception as e:
                log.error("Stage failed (unexpected)", error=str(e), exc_info=True)
                return finish(
                    StageStatus.FAILED,
                    error=f"Unexpected error: {redact_text(str(e))}",
                )

            log.info("Stage succeeded", attempt=attempt)
            return finish(
                StageStatus.SUCCEEDED,
                stdout=_capture(outcome.stdout),
                stderr=_capture(outcome.stderr),
                exit_code=outcome.exit_code,
            )

    # ------------------------------------------------------------------
    # Unwind
    # ------------------------------------------------------------------

    async def _unwind(
        self,
        completed: list[Stage],
        context: RunContext,
        log: Any,
    ) -> list[StageResult]:
        """Roll back succeeded stages newest-first, best effort."""
        entries: list[StageResult] = []
        log.info("Rolling back", stages=[s.name for s in reversed(completed)])

        for stage in reversed(completed):
            if stage.rollback is None:
                log.debug("No rollback defined", stage=stage.name)
                continue

            started_at = datetime.now(timezone.utc)
            start_time = time.monotonic()
            error: Optional[str] = None
            try:
                await _bounded(stage.rollback(context, self._transport), stage)
                log.info("Stage rolled back", stage=stage.name)
            except Exception as e:
                failure = RollbackError(
                    f"Rollback of {stage.name} failed: {redact_text(str(e))}",
                    stage=stage.name,
                )
                log.error("Rollback failed, continuing unwind", stage=stage.name, error=str(failure))
                error = str(failure)

            entries.append(StageResult(
                stage_name=stage.name,
                status=StageStatus.ROLLED_BACK,
                attempts=1,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                duration_ms=round((time.monotonic() - start_time) * 1000.0, 2),
                error=error,
            ))

        return entries

    async def _verify_health(self, context: RunContext, log: Any) -> HealthResult:
        if self._health is None:
            return HealthResult.skipped(
                url=context.deployment_url, reason="No health probe configured",
            )
        log.info("Verifying deployment health", url=context.deployment_url)
        try:
            return await self._health.verify(context.deployment_url)
        except Exception as e:
            log.error("Health probe crashed", error=str(e), exc_info=True)
            return HealthResult(
                status=HealthStatus.UNHEALTHY,
                url=context.deployment_url,
                error=f"{type(e).__name__}: {redact_text(str(e))}",
            )

    @staticmethod
    def _validate(stages: Sequence[Stage]) -> None:
        seen: set[str] = set()
        for stage in stages:
            if stage.name in seen:
                raise PipelineDefinitionError(
                    f"Duplicate stage name: {stage.name}", stage=stage.name,
                )
            seen.add(stage.name)


async def _race(work: Awaitable[Any], cancel_event: asyncio.Event) -> Any:
    """Await ``work`` unless ``cancel_event`` fires first.

    Raises:
        CancellationError: If the event was set before ``work`` finished.
            The in-flight work is cancelled and awaited.
    """
    task = asyncio.ensure_future(work)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise CancellationError("Run cancelled")


async def _bounded(work: Awaitable[Any], stage: Stage) -> Any:
    """Await ``work`` for at most ``stage.timeout`` seconds.

    Raises:
        CommandTimeoutError: If the budget runs out. The work is cancelled.
    """
    try:
        return await asyncio.wait_for(work, timeout=stage.timeout)
    except CommandTimeoutError:
        raise
    except asyncio.TimeoutError:
        raise CommandTimeoutError(
            f"Stage {stage.name} exceeded {stage.timeout:g}s",
            stage=stage.name,
            timeout=stage.timeout,
        ) from None


def _capture(text: str) -> str:
    """Redact and trim captured output to its tail."""
    if len(text) > MAX_CAPTURED_CHARS:
        text = text[-MAX_CAPTURED_CHARS:]
    return redact_text(text)
