"""Post-deploy health verification.

Polls the deployed endpoint with a lightweight HEAD request (the
equivalent of ``curl -I http://<host>/``) until it answers with a
healthy status code or the overall budget runs out.

The result is advisory-terminal: the executor folds it into the run
status but never rolls back because of it, so a broken deployment
stays in place for an operator to inspect.
"""

import asyncio
import time
from typing import Iterable, Optional

import httpx
import structlog

from shipwright.schemas.enums import HealthStatus
from shipwright.schemas.report import HealthResult
from shipwright.utils.redaction import redact_url

logger = structlog.get_logger()

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_OVERALL_TIMEOUT = 120.0
DEFAULT_REQUEST_TIMEOUT = 5.0
DEFAULT_HEALTHY_CODES = frozenset(range(200, 400))
MIN_REQUEST_TIMEOUT = 0.1


class HealthVerifier:
    """Polls a URL until healthy, explicitly unhealthy, or out of time.

    Status codes in ``healthy_codes`` (2xx/3xx by default) end polling
    with HEALTHY. Codes in ``fatal_codes`` (none by default) end it with
    UNHEALTHY. Anything else, including connection errors, is retried
    every ``poll_interval`` seconds until ``overall_timeout``.
    """

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        overall_timeout: float = DEFAULT_OVERALL_TIMEOUT,
        healthy_codes: Iterable[int] = DEFAULT_HEALTHY_CODES,
        fatal_codes: Iterable[int] = (),
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        method: str = "HEAD",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            poll_interval: Default seconds between probes.
            overall_timeout: Default total polling budget in seconds.
            healthy_codes: Status codes that count as healthy.
            fatal_codes: Status codes that stop polling as UNHEALTHY.
            request_timeout: Timeout for a single probe request.
            method: HTTP method for the probe.
            transport: Override the httpx transport (useful for testing).
        """
        self._poll_interval = poll_interval
        self._overall_timeout = overall_timeout
        self._healthy_codes = frozenset(healthy_codes)
        self._fatal_codes = frozenset(fatal_codes) - self._healthy_codes
        self._request_timeout = request_timeout
        self._method = method
        self._transport = transport

    async def verify(
        self,
        url: str,
        poll_interval: Optional[float] = None,
        overall_timeout: Optional[float] = None,
    ) -> HealthResult:
        """Poll ``url`` until it is healthy or the budget is spent.

        Args:
            url: Endpoint to probe.
            poll_interval: Seconds between probes (defaults to the instance value).
            overall_timeout: Total budget in seconds (defaults to the instance value).

        Returns:
            HealthResult with HEALTHY, UNHEALTHY, or TIMED_OUT. Never raises.
        """
        interval = self._poll_interval if poll_interval is None else poll_interval
        budget = self._overall_timeout if overall_timeout is None else overall_timeout
        log = logger.bind(url=redact_url(url))

        start_time = time.monotonic()
        deadline = start_time + budget
        attempts = 0
        last_code: Optional[int] = None
        last_error: Optional[str] = None

        def result(status: HealthStatus) -> HealthResult:
            return HealthResult(
                status=status,
                url=url,
                attempts=attempts,
                last_status_code=last_code,
                elapsed_ms=round((time.monotonic() - start_time) * 1000.0, 2),
                error=last_error,
            )

        async with httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=False,
        ) as client:
            while True:
                attempts += 1
                remaining = deadline - time.monotonic()
                request_timeout = max(
                    MIN_REQUEST_TIMEOUT, min(self._request_timeout, remaining),
                )
                try:
                    response = await client.request(
                        self._method, url, timeout=request_timeout,
                    )
                    last_code = response.status_code
                    if last_code in self._healthy_codes:
                        last_error = None
                        log.info("Endpoint healthy", attempts=attempts, status_code=last_code)
                        return result(HealthStatus.HEALTHY)
                    if last_code in self._fatal_codes:
                        last_error = f"HTTP {last_code}"
                        log.error("Endpoint unhealthy", attempts=attempts, status_code=last_code)
                        return result(HealthStatus.UNHEALTHY)
                    last_error = f"HTTP {last_code}"
                except httpx.InvalidURL as e:
                    # Polling again cannot fix the URL
                    last_error = f"Invalid URL: {e}"
                    log.error("Health probe URL invalid", error=last_error)
                    return result(HealthStatus.UNHEALTHY)
                except httpx.HTTPError as e:
                    last_code = None
                    last_error = f"{type(e).__name__}: {e}"

                log.debug("Health probe not ready", attempt=attempts, error=last_error)

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    log.warning("Health check timed out", attempts=attempts, error=last_error)
                    return result(HealthStatus.TIMED_OUT)
                await asyncio.sleep(min(interval, remaining))
