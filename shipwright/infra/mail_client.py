"""Mail delivery clients for deployment notifications.

Shipwright does not speak SMTP itself. It hands a rendered message to a
mail relay over HTTP (any service accepting a JSON message, e.g. an
internal notification gateway), or writes it to the log when no relay
is configured.

Usage:
    client = HttpMailClient("https://relay.internal/send", sender="ci@example.com")
    await client.send(subject, body, recipients, fields)
"""

import asyncio
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from shipwright.exceptions import DeliveryError
from shipwright.utils.redaction import redact_url

logger = structlog.get_logger()

DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 10.0
RETRY_BACKOFF_BASE = 1.0  # seconds


@runtime_checkable
class MailClient(Protocol):
    """Protocol defining the notification delivery interface."""

    async def send(
        self,
        subject: str,
        body: str,
        recipients: list[str],
        fields: dict[str, Any],
    ) -> None:
        """Deliver a message; raise DeliveryError on failure."""
        ...


class HttpMailClient:
    """Posts notifications to a mail relay endpoint as JSON.

    Retries timeouts, connection errors, 429 and 5xx responses with
    exponential backoff. Any other non-2xx response is not retried.
    """

    def __init__(
        self,
        endpoint: str,
        sender: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        backoff_base: float = RETRY_BACKOFF_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("Mail relay endpoint required.")
        if max_retries < 1:
            raise ValueError(f"max_retries counts attempts and must be >= 1, got {max_retries}")
        self._endpoint = endpoint
        self._sender = sender
        self._max_retries = max_retries
        self._timeout = timeout_seconds
        self._backoff_base = backoff_base
        self._transport = transport

    async def send(
        self,
        subject: str,
        body: str,
        recipients: list[str],
        fields: dict[str, Any],
    ) -> None:
        """Post the message to the relay.

        Raises:
            DeliveryError: If the relay rejects the message or stays
                unreachable after all retries.
        """
        payload = {
            "from": self._sender,
            "to": recipients,
            "subject": subject,
            "text": body,
            "fields": fields,
        }
        log = logger.bind(endpoint=redact_url(self._endpoint), recipients=len(recipients))
        last_error: str = ""

        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            for attempt in range(1, self._max_retries + 1):
                try:
                    response = await client.post(self._endpoint, json=payload)
                except httpx.TransportError as e:
                    last_error = f"{type(e).__name__}: {e}"
                    log.warning("Mail relay unreachable", attempt=attempt, error=last_error)
                else:
                    if response.is_success:
                        log.info("Notification delivered", status_code=response.status_code)
                        return
                    if response.status_code != 429 and response.status_code < 500:
                        raise DeliveryError(
                            f"Mail relay rejected message: HTTP {response.status_code}",
                            status_code=response.status_code,
                        )
                    last_error = f"HTTP {response.status_code}"
                    log.warning(
                        "Mail relay error",
                        attempt=attempt,
                        status_code=response.status_code,
                    )

                if attempt < self._max_retries:
                    await asyncio.sleep(self._backoff_base * 2 ** (attempt - 1))

        raise DeliveryError(
            f"Mail relay failed after {self._max_retries} attempts: {last_error}",
        )


class LogMailClient:
    """Writes notifications to the structured log instead of sending them."""

    async def send(
        self,
        subject: str,
        body: str,
        recipients: list[str],
        fields: dict[str, Any],
    ) -> None:
        logger.info(
            "Notification (no relay configured)",
            subject=subject,
            recipients=recipients,
            status=fields.get("status"),
        )
