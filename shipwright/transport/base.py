"""Transport protocol — run a command on the deployment target.

Every transport (SSH, or an in-memory fake in tests) implements this
interface so stages can accept any of them interchangeably.
"""

from typing import Protocol, runtime_checkable

from shipwright.schemas.report import CommandResult


@runtime_checkable
class Transport(Protocol):
    """Protocol defining the remote execution interface.

    Implementations must reuse one underlying channel across calls
    within a run and enforce the per-call timeout.

    Raises:
        TransportConnectionError: channel cannot be opened or drops.
        CommandTimeoutError: command does not finish within ``timeout``.
    """

    async def execute(self, command: str, timeout: float) -> CommandResult:
        """Run ``command`` remotely and capture its output."""
        ...

    async def close(self) -> None:
        """Release the underlying connection."""
        ...
