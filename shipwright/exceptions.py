"""Shipwright exception hierarchy.

All custom exceptions inherit from ShipwrightError, allowing callers
to catch broad or specific error categories as needed.

Transient errors (connection drops, timeouts) are retried by the
executor; every other error is terminal for the stage that raised it.
"""


class ShipwrightError(Exception):
    """Base exception for all Shipwright errors."""

    def __init__(self, message: str = "", stage: str | None = None) -> None:
        self.stage = stage
        super().__init__(message)


class TransientError(ShipwrightError):
    """Raised for failures that may succeed if the attempt is repeated."""


class TransportConnectionError(TransientError, ConnectionError):
    """Raised when the remote channel cannot be established or drops.

    Examples: SSH handshake refused, host unreachable, connection reset
    while a command was running.
    """

    def __init__(
        self,
        message: str = "",
        stage: str | None = None,
        host: str | None = None,
    ) -> None:
        self.host = host
        super().__init__(message, stage)


class CommandTimeoutError(TransientError, TimeoutError):
    """Raised when a remote command does not complete within its timeout."""

    def __init__(
        self,
        message: str = "",
        stage: str | None = None,
        command: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(message, stage)


class ApplicationError(ShipwrightError):
    """Raised when a delegated command exits non-zero.

    Terminal for the stage: a failing test run or a rejected nginx
    config does not get better by running it again.
    """

    def __init__(
        self,
        message: str = "",
        stage: str | None = None,
        command: str | None = None,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message, stage)


class RollbackError(ShipwrightError):
    """Raised when a stage's rollback action fails.

    Logged by the executor; never aborts the unwind of earlier stages.
    """


class DeliveryError(ShipwrightError):
    """Raised when a notification cannot be delivered.

    Examples: mail relay unreachable, relay rejects the message.
    """

    def __init__(
        self,
        message: str = "",
        stage: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, stage)


class CancellationError(ShipwrightError):
    """Raised when a run is cancelled by an external signal."""


class ConfigurationError(ShipwrightError):
    """Raised when deployment configuration is missing or invalid."""


class PipelineDefinitionError(ShipwrightError):
    """Raised when a stage sequence is malformed.

    Examples: two stages with the same name, negative retry count.
    """
