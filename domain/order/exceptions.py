"""
Order related business exceptions.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


class OrderNotFoundException(BusinessException):
    """The store has no order for the given identifier."""

    def __init__(self, identifier: str, *, gateway: Optional[str] = None):
        details = {"reference": identifier}
        if gateway:
            details["gateway"] = gateway
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="ORDER_NOT_FOUND",
            details=details,
        )


class CheckoutConflictException(BusinessException):
    """An order for this idempotency key exists but has no gateway reference yet."""

    def __init__(self, receipt: str, status: str):
        super().__init__(
            code=BusinessCode.CHECKOUT_CONFLICT,
            message="Checkout for this idempotency key is still unresolved",
            error_type="CHECKOUT_CONFLICT",
            details={"receipt": receipt, "status": status},
        )


class InvalidOrderTransitionException(BusinessException):
    def __init__(self, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_TRANSITION,
            message=f"Cannot move order from {current} to {target}",
            error_type="INVALID_TRANSITION",
            details={"current": current, "target": target},
            field="status",
        )
