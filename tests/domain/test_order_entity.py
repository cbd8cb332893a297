from datetime import datetime

import pytest

from domain.common.exceptions import DomainValidationException
from domain.order.entity import LineItem, Order, OrderStatus, can_transition


def _order(**overrides) -> Order:
    data = dict(
        id=None,
        receipt="rcpt_1",
        gateway="razorpay",
        amount=50_000,
        currency="INR",
        customer_name="Asha Rao",
        customer_email="asha@example.com",
        customer_phone="9876543210",
        items=[LineItem(product_id=1, name="Tee", quantity=2, unit_price=25_000)],
    )
    data.update(overrides)
    return Order(**data)


@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.PENDING, OrderStatus.PAID),
        (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED),
        (OrderStatus.PENDING, OrderStatus.FAILED_TO_INITIATE),
        (OrderStatus.PAID, OrderStatus.PROCESSING),
        (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (OrderStatus.PAID, OrderStatus.PENDING),
        (OrderStatus.PAID, OrderStatus.PAYMENT_FAILED),
        (OrderStatus.PAYMENT_FAILED, OrderStatus.PAID),
        (OrderStatus.FAILED_TO_INITIATE, OrderStatus.PENDING),
        (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
        (OrderStatus.PENDING, OrderStatus.SHIPPED),
    ],
)
def test_forbidden_transitions(current, target):
    assert not can_transition(current, target)


def test_payment_settled_statuses():
    assert not _order().is_payment_settled
    assert _order(status=OrderStatus.PAID).is_payment_settled
    assert _order(status=OrderStatus.SHIPPED).is_payment_settled
    assert not _order(status=OrderStatus.CANCELLED).is_payment_settled


@pytest.mark.parametrize("amount", [0, -1, 500.0, True])
def test_amount_must_be_positive_integer(amount):
    with pytest.raises(DomainValidationException) as exc_info:
        _order(amount=amount)
    assert exc_info.value.field == "amount"


@pytest.mark.parametrize("currency", ["", "IN", "IN1", "RUPEE"])
def test_currency_must_be_three_letters(currency):
    with pytest.raises(DomainValidationException):
        _order(currency=currency)


def test_line_items():
    with pytest.raises(DomainValidationException):
        LineItem(product_id=1, name="Tee", quantity=0, unit_price=100)
    with pytest.raises(DomainValidationException):
        LineItem(product_id=1, name="Tee", quantity=1, unit_price=-1)

    item = LineItem.from_dict({"product_id": "3", "quantity": "2", "unit_price": 150, "name": None})
    assert item.subtotal == 300
    assert item.to_dict()["name"] == ""


def test_naive_timestamps_become_utc():
    order = _order(created_at=datetime(2026, 1, 1, 12, 0))
    assert order.created_at.utcoffset().total_seconds() == 0
    assert order.items_total == 50_000
