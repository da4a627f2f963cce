"""WebhookAuditExporter: ships cancellation rows to the audit sheet bridge.

POST {AUDIT_WEBHOOK_URL}  body: {"header": [...], "values": [[...], ...]}

Without a configured URL the rows are only logged. Errors propagate; the
cancellation flow wraps export() and never lets it fail a request.
"""

import logging

import httpx

from config.settings import settings
from src.co_audit.domain.models import HEADER, CancellationRow

logger = logging.getLogger(__name__)


class WebhookAuditExporter:
    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url if url is not None else settings.AUDIT_WEBHOOK_URL
        self._timeout = timeout or settings.AUDIT_TIMEOUT_SECONDS
        self._transport = transport

    async def export(self, rows: list[CancellationRow]) -> None:
        if not rows:
            return
        values = [row.to_row() for row in rows]
        if not self._url:
            for value in values:
                logger.info("Cancellation audit row: %s", value)
            return

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, json={"header": HEADER, "values": values})
        response.raise_for_status()
        logger.info("Cancellation audit rows exported: count=%d", len(values))
