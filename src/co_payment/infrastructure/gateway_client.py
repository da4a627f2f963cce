"""PaymentGatewayClient: refund creation and status polling over HTTP.

Wire contract:
  POST {base}/orders/{order_id}/refunds
       body: refund_amount (major units), refund_id (our key), refund_note,
             refund_speed
  GET  {base}/orders/{order_id}/refunds/{refund_id}     (preferred)
  GET  {base}/refunds/{refund_id}                       (fallback)
Credentials travel in x-client-id / x-client-secret headers with x-api-version.

Creation failures raise GatewayError with the upstream status and payload.
Polling never raises: HTTP or network trouble is reported as PENDING so the
caller's bounded retry loop decides when to give up.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any
from urllib.parse import quote

import httpx

from config.settings import settings
from src.co_common.enums import RefundStatus
from src.co_common.errors import GatewayConfigError, GatewayError
from src.co_common.id_generator import generate_refund_key
from src.co_common.money import cents_to_major
from src.co_payment.domain.models import GatewayRefund, normalize_status

logger = logging.getLogger(__name__)

_BASE_URLS = {
    "production": "https://api.cashfree.com/pg",
    "sandbox": "https://sandbox.cashfree.com/pg",
}


def _quote(segment: str) -> str:
    return quote(segment, safe="")


def _first_node(data: Any) -> dict[str, Any]:
    """Some endpoints answer with a list; the refund is its first element."""
    if isinstance(data, list):
        data = data[0] if data and isinstance(data[0], dict) else {}
    return data if isinstance(data, dict) else {}


def _json_or_empty(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


def _error_message(data: Any, http_status: int) -> str:
    if isinstance(data, dict):
        for key in ("message", "error"):
            if data.get(key):
                return str(data[key])
    return f"Gateway refund failed (HTTP {http_status})"


class PaymentGatewayClient:
    def __init__(
        self,
        app_id: str | None = None,
        secret_key: str | None = None,
        api_version: str | None = None,
        environment: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._app_id = app_id if app_id is not None else settings.GATEWAY_APP_ID
        self._secret_key = secret_key if secret_key is not None else settings.GATEWAY_SECRET_KEY
        self._api_version = api_version or settings.GATEWAY_API_VERSION
        env = (environment or settings.GATEWAY_ENV).lower()
        self.base_url = _BASE_URLS["production" if env == "production" else "sandbox"]
        self._timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self._transport = transport
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-client-id": self._app_id or "",
            "x-client-secret": self._secret_key or "",
            "x-api-version": self._api_version,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def create_refund(
        self, order_id: str, amount_cents: int, note: str = "Admin cancel"
    ) -> GatewayRefund:
        if not self._app_id or not self._secret_key:
            raise GatewayConfigError("gateway credentials missing")
        if amount_cents <= 0:
            raise GatewayError(f"Refund amount must be positive, got {amount_cents}", 400)

        refund_id = generate_refund_key()
        payload = {
            "refund_amount": float(cents_to_major(amount_cents)),
            "refund_id": refund_id,
            "refund_note": note,
            "refund_speed": "STANDARD",
        }
        path = f"/orders/{_quote(order_id)}/refunds"
        try:
            async with self._client() as client:
                response = await client.post(path, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Gateway refund request failed: order=%s refund=%s err=%s",
                         order_id, refund_id, exc)
            raise GatewayError(f"Gateway unreachable: {exc}", 502) from exc

        data = _json_or_empty(response)
        if response.is_error:
            logger.warning("Gateway refund rejected: order=%s refund=%s http=%d",
                           order_id, refund_id, response.status_code)
            raise GatewayError(_error_message(data, response.status_code),
                               response.status_code, data)

        node = _first_node(data)
        raw_status = str(node.get("refund_status") or "PENDING")
        refund = GatewayRefund(
            refund_id=refund_id,
            status=normalize_status(raw_status),
            gateway_refund_id=str(node.get("cf_refund_id") or ""),
            gateway_payment_id=str(node.get("cf_payment_id") or ""),
            status_description=str(node.get("status_description") or ""),
            raw_status=raw_status,
            raw=data,
        )
        logger.info("Gateway refund created: order=%s refund=%s status=%s",
                    order_id, refund_id, raw_status)
        return refund

    async def poll_status(self, order_id: str, refund_id: str) -> RefundStatus:
        paths = (
            f"/orders/{_quote(order_id)}/refunds/{_quote(refund_id)}",
            f"/refunds/{_quote(refund_id)}",
        )
        async with self._client() as client:
            for path in paths:
                try:
                    response = await client.get(path)
                except httpx.HTTPError as exc:
                    logger.warning("Gateway status lookup failed: path=%s err=%s", path, exc)
                    continue
                if response.is_success:
                    node = _first_node(_json_or_empty(response))
                    return normalize_status(str(node.get("refund_status") or "PENDING"))
        return RefundStatus.PENDING

    async def confirm_refund(
        self,
        order_id: str,
        created: GatewayRefund,
        delays_ms: Sequence[int] | None = None,
    ) -> RefundStatus:
        """Poll until SUCCESS or the delay schedule runs out.

        Returns the last status seen; only SUCCESS is final here.
        """
        status = created.status
        if status == RefundStatus.SUCCESS:
            return status
        for delay in delays_ms if delays_ms is not None else settings.REFUND_POLL_DELAYS_MS:
            await self._sleep(delay / 1000)
            status = await self.poll_status(order_id, created.refund_id)
            if status == RefundStatus.SUCCESS:
                break
        logger.info("Gateway refund poll finished: order=%s refund=%s status=%s",
                    order_id, created.refund_id, status.value)
        return status