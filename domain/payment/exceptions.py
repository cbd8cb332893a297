"""
Payment exceptions mapped to unified BusinessException variants.

`error_type` carries the machine-readable code returned to API callers.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class SignatureVerificationFailed(BusinessException):
    """Claimed authenticity of a callback does not check out. Never retried."""

    def __init__(self, *, provider: str, source: str, details: Optional[dict] = None):
        full_details = {"provider": provider, "source": source}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message="Payment signature verification failed",
            error_type="INVALID_SIGNATURE",
            details=full_details,
        )


class GatewayUnavailableError(BusinessException):
    """Remote gateway could not be reached or timed out; retryable by the caller."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.GATEWAY_UNAVAILABLE,
            message=message,
            error_type="GATEWAY_UNAVAILABLE",
            details=full_details,
        )


class GatewayRejectedError(BusinessException):
    """Gateway answered but refused the request."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="CREATE_ORDER_FAILED",
            details=full_details,
        )


class PaymentConfigurationError(BusinessException):
    """Credentials or secrets for a gateway are missing."""

    def __init__(self, message: str, *, provider: str, missing: Optional[list[str]] = None):
        super().__init__(
            code=PaymentCode.CONFIGURATION_ERROR,
            message=message,
            error_type="MISSING_SECRET",
            details={"provider": provider, "missing": missing or []},
        )


class SideEffectFailure(BusinessException):
    """A post-payment side effect failed. Logged, never propagated into the payment state."""

    def __init__(self, effect: str, *, order_id: int, error: str):
        super().__init__(
            code=PaymentCode.SIDE_EFFECT_FAILED,
            message=f"Side effect {effect} failed",
            error_type="SIDE_EFFECT_FAILED",
            details={"effect": effect, "order_id": order_id, "error": error},
        )
