"""
Checkout DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# E.164-ish: optional +, 10-15 digits once separators are stripped
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_PHONE_RE = re.compile(r"^\+?\d{10,15}$")


class CustomerContact(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=30)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, v: str) -> str:
        compact = _PHONE_SEPARATORS.sub("", v or "")
        if not _PHONE_RE.match(compact):
            raise ValueError("phone must contain 10-15 digits")
        return compact


class ShippingAddress(BaseModel):
    line1: str = Field(..., min_length=1, max_length=300)
    line2: Optional[str] = Field(default=None, max_length=300)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: str = Field(..., min_length=3, max_length=20)
    country: str = Field(default="IN", min_length=2, max_length=2)


class LineItemIn(BaseModel):
    product_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0, le=1000)
    unit_price: int = Field(..., ge=0, description="单价（最小货币单位）")
    variant: Optional[str] = Field(default=None, max_length=100)


class CheckoutRequest(BaseModel):
    """Browser cart snapshot submitted at checkout; amounts in minor units."""

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: int = Field(..., gt=0, description="金额（最小货币单位，如 paise）")
    currency: str = Field(default="INR", min_length=3, max_length=3)
    customer: CustomerContact
    items: list[LineItemIn] = Field(..., min_length=1)
    shipping_address: Optional[ShippingAddress] = None
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_non_integer_amount(cls, v: Any) -> Any:
        # 拒绝 99.5 / "100" / true 之类的非整数金额
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("amount must be an integer in minor units")
        return v

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if len(u) != 3 or not u.isalpha():
            raise ValueError("currency must be ISO-4217 alpha-3")
        return u

    @property
    def items_total(self) -> int:
        return sum(i.quantity * i.unit_price for i in self.items)


class CheckoutResult(BaseModel):
    order_id: int
    receipt: str
    gateway: str
    gateway_order_reference: str
    amount: int
    currency: str
    status: str
    client_parameters: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "CustomerContact",
    "ShippingAddress",
    "LineItemIn",
    "CheckoutRequest",
    "CheckoutResult",
]
