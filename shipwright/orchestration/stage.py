"""Stage — a named, idempotent unit of deployment work.

A Stage is a stateless descriptor: an async ``action`` closure over the
RunContext and Transport, an optional ``rollback``, and a retry policy.
The executor owns all sequencing, retrying, and error isolation.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence, Union

from shipwright.exceptions import ApplicationError, PipelineDefinitionError
from shipwright.schemas.context import RunContext
from shipwright.schemas.report import CommandResult
from shipwright.transport.base import Transport

DEFAULT_TIMEOUT_SECONDS = 600.0

StageAction = Callable[[RunContext, Transport], Awaitable[CommandResult]]
RollbackAction = Callable[[RunContext, Transport], Awaitable[None]]
CommandSpec = Union[str, Sequence[str], Callable[[RunContext], Union[str, Sequence[str]]]]


@dataclass(frozen=True)
class Stage:
    """Descriptor for one pipeline stage.

    Attributes:
        name: Unique within a pipeline.
        action: Performs the stage; raises on failure.
        rollback: Undoes the stage's effects; None if nothing to undo.
        max_retries: Extra attempts allowed for transient failures.
        retry_backoff: Seconds to wait before the first retry.
        backoff_multiplier: Growth factor per retry (1.0 = fixed delay).
        timeout: Per-command timeout handed to the transport.
    """

    name: str
    action: StageAction
    rollback: Optional[RollbackAction] = None
    max_retries: int = 0
    retry_backoff: float = 1.0
    backoff_multiplier: float = 2.0
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    description: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise PipelineDefinitionError("Stage name must not be empty")
        if self.max_retries < 0:
            raise PipelineDefinitionError(
                f"max_retries must be >= 0, got {self.max_retries}", stage=self.name,
            )
        if self.retry_backoff < 0:
            raise PipelineDefinitionError(
                f"retry_backoff must be >= 0, got {self.retry_backoff}", stage=self.name,
            )
        if self.backoff_multiplier < 1.0:
            raise PipelineDefinitionError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}",
                stage=self.name,
            )
        if self.timeout <= 0:
            raise PipelineDefinitionError(
                f"timeout must be > 0, got {self.timeout}", stage=self.name,
            )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def has_rollback(self) -> bool:
        return self.rollback is not None

    def backoff_for(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        return self.retry_backoff * (self.backoff_multiplier ** (attempt - 1))


def render_commands(spec: CommandSpec, context: RunContext) -> list[str]:
    """Resolve a command spec into concrete command lines."""
    if callable(spec):
        spec = spec(context)
    if isinstance(spec, str):
        return [spec]
    return list(spec)


async def run_commands(
    commands: Sequence[str],
    transport: Transport,
    timeout: float,
    stage_name: str,
    success_codes: frozenset[int] = frozenset({0}),
) -> CommandResult:
    """Run commands in order, stopping at the first unsuccessful exit.

    Returns:
        CommandResult whose stdout/stderr concatenate every command run.

    Raises:
        ApplicationError: If a command exits with a code outside ``success_codes``.
    """
    stdout_parts: list[str] = []
    stderr_parts: list[str] = []
    last = CommandResult()

    for command in commands:
        last = await transport.execute(command, timeout=timeout)
        stdout_parts.append(last.stdout)
        stderr_parts.append(last.stderr)
        if last.exit_code not in success_codes:
            raise ApplicationError(
                f"Command exited with code {last.exit_code}",
                stage=stage_name,
                command=command,
                exit_code=last.exit_code,
                stdout="".join(stdout_parts),
                stderr="".join(stderr_parts),
            )

    return CommandResult(
        command=" && ".join(commands),
        stdout="".join(stdout_parts),
        stderr="".join(stderr_parts),
        exit_code=last.exit_code,
    )


def command_stage(
    name: str,
    command: CommandSpec,
    rollback_command: Optional[CommandSpec] = None,
    *,
    max_retries: int = 0,
    retry_backoff: float = 1.0,
    backoff_multiplier: float = 2.0,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    success_codes: frozenset[int] = frozenset({0}),
    description: str = "",
) -> Stage:
    """Build a Stage from shell command lines.

    ``command`` and ``rollback_command`` may be a string, a list of
    strings, or a callable rendering either from the RunContext.

    Example:
        command_stage(
            "clone",
            lambda ctx: f"git clone {ctx.repo_url} {ctx.app_directory}",
            rollback_command=lambda ctx: f"rm -rf {ctx.app_directory}",
            max_retries=2,
        )
    """
    async def action(context: RunContext, transport: Transport) -> CommandResult:
        return await run_commands(
            render_commands(command, context),
            transport,
            timeout=timeout,
            stage_name=name,
            success_codes=success_codes,
        )

    rollback: Optional[RollbackAction] = None
    if rollback_command is not None:
        async def rollback(context: RunContext, transport: Transport) -> None:
            await run_commands(
                render_commands(rollback_command, context),
                transport,
                timeout=timeout,
                stage_name=name,
            )

    return Stage(
        name=name,
        action=action,
        rollback=rollback,
        max_retries=max_retries,
        retry_backoff=retry_backoff,
        backoff_multiplier=backoff_multiplier,
        timeout=timeout,
        description=description,
    )
