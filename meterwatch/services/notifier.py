"""
Outbound notifiers for fault alerts.

HttpNotifier POSTs a JSON message to a mail relay endpoint with Bearer token
authentication. LoggingNotifier is used when no relay is configured: it
writes the notice to the log and reports success, so cooldowns still apply
in development setups.

Notifiers report delivery with a boolean. Network errors and non-2xx
responses raise NotificationError internally, which ``send`` logs and turns
into ``False``; nothing is raised to the alert dispatcher.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging

import httpx

from meterwatch.errors import NotificationError
from meterwatch.models import OwnerContact

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 10.0


class HttpNotifier:
    """Mail relay client.

    Args:
        url: Full URL of the relay endpoint.
        token: Optional bearer token for the relay.
        timeout_s: Request timeout in seconds.
        transport: Optional httpx transport, used by tests.

    Usage::

        notifier = HttpNotifier("https://relay.example.com/v1/send", token="t")
        delivered = await notifier.send(contact, subject, body)
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._token = token
        self._timeout_s = timeout_s
        self._transport = transport

    async def send(self, contact: OwnerContact, subject: str, body: str) -> bool:
        """POST one notice to the relay.

        Returns:
            ``True`` on a 2xx response, ``False`` otherwise.
        """
        if not contact.email:
            logger.warning("No recipient address, notice '%s' not sent.", subject)
            return False

        try:
            await self._deliver(contact.email, subject, body)
        except NotificationError as exc:
            logger.warning("Notice delivery failed: %s", exc)
            return False

        logger.info("Notice '%s' delivered to %s.", subject, contact.email)
        return True

    async def _deliver(self, to: str, subject: str, body: str) -> None:
        """POST the message, raising NotificationError unless the relay accepts it."""
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport
            ) as client:
                response = await client.post(
                    self._url,
                    json={"to": to, "subject": subject, "text": body},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise NotificationError(f"network error: {exc}") from exc

        if not response.is_success:
            raise NotificationError(f"relay returned HTTP {response.status_code}")


class LoggingNotifier:
    """Notifier that only logs. Used when no relay URL is configured."""

    async def send(self, contact: OwnerContact, subject: str, body: str) -> bool:
        logger.info("Notice for %s: %s", contact.email, subject)
        return True
