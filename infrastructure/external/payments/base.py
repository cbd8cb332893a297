"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from core.settings import payment_settings
from application.dtos.payments import CallbackPayload, GatewayOrder, GatewayOrderRequest
from domain.payment.exceptions import GatewayUnavailableError
from shared.codes.payment_codes import map_provider_status


logger = get_logger(__name__)


def header_value(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup for plain dicts and Starlette Headers alike."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if key.lower() == lowered:
            return val
    return None


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or payment_settings.timeouts.model_dump()
        self._retry_cfg = retry or {
            "max": payment_settings.retry.max,
            "base": payment_settings.retry.base_backoff,
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def client(self) -> httpx.AsyncClient:
        """Lazily created client, reused across calls until aclose()."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send with retries on transport errors; a timeout is never treated as success."""

        async def _do() -> httpx.Response:
            return await self.client().request(method, url, **kwargs)

        try:
            return await self._retry(_do)
        except httpx.TimeoutException as exc:
            self._log("payment_gateway_timeout", method=method, url=url)
            raise GatewayUnavailableError(
                "Payment gateway timed out",
                provider=self.provider,
                details={"error": type(exc).__name__},
            ) from exc
        except httpx.TransportError as exc:
            self._log("payment_gateway_unreachable", method=method, url=url, error=str(exc))
            raise GatewayUnavailableError(
                "Payment gateway unreachable",
                provider=self.provider,
                details={"error": type(exc).__name__},
            ) from exc

    # Default implementations raise to force override where needed
    async def create_order(self, req: GatewayOrderRequest) -> GatewayOrder:
        raise NotImplementedError

    def parse_callback(self, fields: Mapping[str, Any]) -> CallbackPayload:
        raise NotImplementedError

    def verify_callback(self, fields: Mapping[str, Any]) -> bool:
        raise NotImplementedError

    def parse_webhook(self, headers: Mapping[str, str], body: bytes) -> Optional[CallbackPayload]:
        raise NotImplementedError

    def verify_webhook(self, headers: Mapping[str, str], body: bytes) -> bool:
        raise NotImplementedError

    async def query_order(self, reference: str) -> Optional[CallbackPayload]:
        return None

    # Helpers
    def map_status(self, raw_status: Optional[str]) -> Optional[str]:
        return map_provider_status(self.provider, raw_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
