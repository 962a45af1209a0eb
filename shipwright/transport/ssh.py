"""SSH transport backed by asyncssh.

Opens one connection to the deployment target lazily and reuses it for
every command in the run. A dropped connection is discarded so the
next attempt (a retry) reconnects.

Usage:
    async with SshTransport(context) as transport:
        result = await transport.execute("uname -a", timeout=30)
"""

import asyncio
import time
from typing import Any

import asyncssh
import structlog

from shipwright.exceptions import CommandTimeoutError, TransportConnectionError
from shipwright.schemas.context import RunContext
from shipwright.schemas.report import CommandResult

logger = structlog.get_logger()

DEFAULT_CONNECT_TIMEOUT = 15.0


class SshTransport:
    """Executes commands on ``context.target_host`` over a single SSH connection."""

    def __init__(
        self,
        context: RunContext,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self._host = context.target_host
        self._port = context.ssh_port
        self._username = context.ssh_user
        self._identity = context.ssh_identity
        self._connect_timeout = connect_timeout
        self._conn: asyncssh.SSHClientConnection | None = None
        self._lock = asyncio.Lock()
        self._connect_count = 0

    @property
    def connect_count(self) -> int:
        """Number of connections opened so far (1 when reuse works)."""
        return self._connect_count

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def _connect_options(self) -> dict[str, Any]:
        # asyncssh treats () as "use the default" and None as "disable"
        options: dict[str, Any] = {
            "host": self._host,
            "port": self._port,
            "username": self._username,
            "connect_timeout": self._connect_timeout,
        }
        if self._identity.key_path:
            options["client_keys"] = [self._identity.key_path]
        if not self._identity.use_agent:
            options["agent_path"] = None
        if self._identity.known_hosts:
            options["known_hosts"] = self._identity.known_hosts
        return options

    async def _get_connection(self) -> asyncssh.SSHClientConnection:
        """Get or open the SSH connection."""
        async with self._lock:
            if self._conn is not None:
                return self._conn
            log = logger.bind(host=self._host, port=self._port, user=self._username)
            try:
                self._conn = await asyncssh.connect(**self._connect_options())
            except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
                log.warning("SSH connect failed", error=str(e))
                raise TransportConnectionError(
                    f"Cannot connect to {self._host}:{self._port}: {e}",
                    host=self._host,
                ) from e
            self._connect_count += 1
            log.info("SSH connection established", connect_count=self._connect_count)
            return self._conn

    def _discard_connection(self) -> None:
        if self._conn is not None:
            self._conn.abort()
            self._conn = None

    async def execute(self, command: str, timeout: float) -> CommandResult:
        """Run a command on the target host.

        Args:
            command: Shell command line, passed to the remote login shell.
            timeout: Seconds before the command is abandoned.

        Returns:
            CommandResult with stdout, stderr and exit code. A non-zero
            exit is returned, not raised; classification is the stage's job.

        Raises:
            TransportConnectionError: If the connection cannot be opened or drops.
            CommandTimeoutError: If the command does not finish in time.
        """
        conn = await self._get_connection()
        start_time = time.monotonic()

        try:
            completed = await asyncio.wait_for(
                conn.run(command, check=False),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Remote command timed out", host=self._host, timeout=timeout)
            raise CommandTimeoutError(
                f"Command timed out after {timeout}s",
                command=command,
                timeout=timeout,
            ) from e
        except (OSError, asyncssh.Error) as e:
            logger.warning("SSH channel lost", host=self._host, error=str(e))
            self._discard_connection()
            raise TransportConnectionError(
                f"Connection to {self._host} lost: {e}",
                host=self._host,
            ) from e

        exit_code = completed.exit_status
        if exit_code is None:
            # Killed by a signal; no exit status was reported
            exit_code = -1

        logger.debug(
            "Remote command finished",
            host=self._host,
            exit_code=exit_code,
            duration_ms=round((time.monotonic() - start_time) * 1000.0, 1),
        )
        return CommandResult(
            command=command,
            stdout=_as_text(completed.stdout),
            stderr=_as_text(completed.stderr),
            exit_code=exit_code,
        )

    async def close(self) -> None:
        """Close the SSH connection if open."""
        async with self._lock:
            if self._conn is not None:
                self._conn.close()
                await self._conn.wait_closed()
                self._conn = None
                logger.debug("SSH connection closed", host=self._host)

    async def __aenter__(self) -> "SshTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def _as_text(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return str(data)
