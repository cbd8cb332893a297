"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
One callback handler serves every gateway: the adapter supplies parsing,
verification and status mapping.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import CallbackPayload, GatewayOrder, GatewayOrderRequest


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers."""

    provider: str

    async def create_order(self, req: GatewayOrderRequest) -> GatewayOrder: ...

    def parse_callback(self, fields: Mapping[str, Any]) -> CallbackPayload: ...

    def verify_callback(self, fields: Mapping[str, Any]) -> bool: ...

    def parse_webhook(self, headers: Mapping[str, str], body: bytes) -> Optional[CallbackPayload]:
        """Return None for well-formed events the handler has nothing to do with."""
        ...

    def verify_webhook(self, headers: Mapping[str, str], body: bytes) -> bool: ...

    def map_status(self, raw_status: Optional[str]) -> Optional[str]: ...

    async def query_order(self, reference: str) -> Optional[CallbackPayload]:
        """Ask the gateway for the latest payment state; None when unsupported or unknown."""
        ...

    async def aclose(self) -> None: ...
