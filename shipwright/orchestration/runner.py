"""DeploymentRunner — entry point for one deployment run.

Wraps the PipelineExecutor with:
  - Transport lifecycle (one connection per run, always closed)
  - Cancellation (request_cancel, wired to SIGINT/SIGTERM by the CLI)
  - Notification through the Reporter after the run finishes
"""

import asyncio
from typing import Callable, Optional, Sequence

import structlog

from shipwright.orchestration.executor import PipelineExecutor
from shipwright.orchestration.stage import Stage
from shipwright.reporting.reporter import Reporter
from shipwright.schemas.context import RunContext
from shipwright.schemas.report import PipelineReport
from shipwright.services.health import HealthVerifier
from shipwright.transport.base import Transport

logger = structlog.get_logger()

TransportFactory = Callable[[RunContext], Transport]


class DeploymentRunner:
    """Runs a pipeline against one target and reports the outcome.

    Callers must not start two runs against the same host at once; the
    runner does not lock the target.
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        transport_factory: TransportFactory,
        health_verifier: Optional[HealthVerifier] = None,
        reporter: Optional[Reporter] = None,
        rollback_on_failure: bool = True,
    ) -> None:
        self._stages = list(stages)
        self._transport_factory = transport_factory
        self._health = health_verifier
        self._reporter = reporter
        self._rollback_on_failure = rollback_on_failure
        self._cancel_event = asyncio.Event()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages)

    async def run(self, context: RunContext) -> PipelineReport:
        """Execute the pipeline once and send the notification.

        Returns:
            The PipelineReport. Its status is final before notification
            is attempted; delivery problems never alter it.
        """
        log = logger.bind(
            target_host=context.target_host,
            job=context.job_name,
            build=context.build_number,
        )
        self._running = True
        transport = self._transport_factory(context)
        try:
            executor = PipelineExecutor(
                transport,
                health_verifier=self._health,
                rollback_on_failure=self._rollback_on_failure,
            )
            # A cancel only applies to the run in flight
            self._cancel_event = asyncio.Event()
            report = await executor.run(context, self._stages, self._cancel_event)
        finally:
            self._running = False
            await self._close_transport(transport, log)

        if self._reporter is not None:
            delivered = await self._reporter.notify(report, context.notify_targets)
            log.info("Notification step finished", delivered=delivered)

        return report

    def request_cancel(self) -> None:
        """Cancel the active run; completed stages are rolled back."""
        logger.warning("Cancellation requested")
        self._cancel_event.set()

    @staticmethod
    async def _close_transport(transport: Transport, log: structlog.BoundLogger) -> None:
        try:
            await transport.close()
        except Exception as e:
            log.warning("Transport close failed", error=str(e))
