"""
Post-payment side effects: inventory decrement and notification emails.

The unit of work that wins the pending -> paid conditional update also writes
both outbox rows and sets `side_effects_status = pending` (`stage`). After that
commit, `dispatch` claims the order (pending -> running), decrements stock,
queues the staged emails and marks it `done`. Every effect is isolated: a
failure is logged as `side_effect_failed` and never reaches the callback
handler. Orders left in `pending` or `running` are picked up by
`resume_stalled`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from html import escape
from typing import Optional

from application.ports.notifications import NotificationQueue
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory
from domain.notification.entity import Notification, NotificationKind, NotificationStatus
from domain.order.entity import Order, SideEffectsStatus
from domain.order.events import OrderPaid
from domain.payment.exceptions import SideEffectFailure
from domain.product.entity import DecrementOutcome


logger = get_logger(__name__)

NO_ADMIN_RECIPIENTS = "no admin recipients configured"

_CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€"}


def format_money(amount_minor: int, currency: str) -> str:
    major = f"{amount_minor // 100:,}.{amount_minor % 100:02d}"
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    return f"{symbol}{major}" if symbol else f"{currency.upper()} {major}"


def _address_lines(order: Order) -> list[str]:
    addr = order.shipping_address or {}
    parts = [
        addr.get("line1"),
        addr.get("line2"),
        ", ".join(p for p in (addr.get("city"), addr.get("state"), addr.get("postal_code")) if p),
        addr.get("country"),
    ]
    return [p for p in parts if p]


def render_customer_confirmation(order: Order, store_name: str) -> tuple[str, str, str]:
    """(subject, text, html) for the customer's order confirmation."""
    total = format_money(order.amount, order.currency)
    subject = f"Order Confirmation - {order.receipt}"
    lines = [
        f"Hi {order.customer_name},",
        "",
        f"Thank you for your order at {store_name}. Your payment was received.",
        "",
        f"Order: {order.receipt}",
        f"Payment reference: {order.gateway_payment_ref or '-'}",
        "",
    ]
    for item in order.items:
        variant = f" ({item.variant})" if item.variant else ""
        lines.append(f"  {item.quantity} x {item.name}{variant}  {format_money(item.subtotal, order.currency)}")
    lines += ["", f"Total: {total}"]
    address = _address_lines(order)
    if address:
        lines += ["", "Shipping to:", *[f"  {a}" for a in address]]
    text = "\n".join(lines)

    rows = "".join(
        f"<tr><td>{escape(i.name)}{escape(f' ({i.variant})') if i.variant else ''}</td>"
        f"<td>{i.quantity}</td><td>{escape(format_money(i.subtotal, order.currency))}</td></tr>"
        for i in order.items
    )
    address_html = "<br>".join(escape(a) for a in address)
    html = (
        f"<h2>Thank you for your order, {escape(order.customer_name)}!</h2>"
        f"<p>Order <strong>{escape(order.receipt)}</strong> is confirmed.</p>"
        f"<table><thead><tr><th>Item</th><th>Qty</th><th>Amount</th></tr></thead>"
        f"<tbody>{rows}</tbody></table>"
        f"<p><strong>Total: {escape(total)}</strong></p>"
        + (f"<p>Shipping to:<br>{address_html}</p>" if address_html else "")
    )
    return subject, text, html


def render_admin_notification(order: Order) -> tuple[str, str, str]:
    total = format_money(order.amount, order.currency)
    subject = f"New paid order {order.receipt} ({total})"
    fields = [
        ("Order ID", str(order.id)),
        ("Receipt", order.receipt),
        ("Gateway", order.gateway),
        ("Gateway order", order.gateway_order_ref or "-"),
        ("Payment", order.gateway_payment_ref or "-"),
        ("Amount", total),
        ("Customer", order.customer_name),
        ("Email", order.customer_email),
        ("Phone", order.customer_phone),
        ("Items", ", ".join(f"{i.quantity} x {i.name}" for i in order.items)),
    ]
    text = "\n".join(f"{k}: {v}" for k, v in fields)
    html = "<table>" + "".join(
        f"<tr><th align='left'>{escape(k)}</th><td>{escape(v)}</td></tr>" for k, v in fields
    ) + "</table>"
    return subject, text, html


@dataclass
class DispatchReport:
    order_id: int
    claimed: bool = True
    inventory: dict[int, DecrementOutcome] = field(default_factory=dict)
    notifications: list[int] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    @property
    def review_required(self) -> bool:
        return any(o != DecrementOutcome.DECREMENTED for o in self.inventory.values()) or any(
            f.startswith("inventory") for f in self.failures
        )


class SideEffectDispatcher:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        queue: Optional[NotificationQueue] = None,
        *,
        admin_recipients: Optional[list[str]] = None,
        store_name: str = "Storefront",
    ) -> None:
        self._uow_factory = uow_factory
        self._queue = queue
        self._admin_recipients = list(admin_recipients or [])
        self._store_name = store_name

    async def stage(self, uow: AbstractUnitOfWork, order: Order) -> list[Notification]:
        """Write both outbox rows and the side-effects marker inside the caller's transaction.

        Called with the unit of work that moved the order to `paid`, so the
        transition and the record of what still has to happen commit together.
        """
        rows: list[Notification] = []
        for notification in self._build_notifications(order):
            row = await uow.notifications.add(notification)
            if row is not None:
                rows.append(row)
        await uow.orders.set_side_effects_status(order.id, SideEffectsStatus.PENDING)
        return rows

    def _build_notifications(self, order: Order) -> list[Notification]:
        subject, text, html = render_customer_confirmation(order, self._store_name)
        customer = Notification(
            id=None,
            order_id=order.id,
            kind=NotificationKind.CUSTOMER_CONFIRMATION,
            recipient=order.customer_email,
            subject=subject,
            text_body=text,
            html_body=html,
        )
        subject, text, html = render_admin_notification(order)
        admin = Notification(
            id=None,
            order_id=order.id,
            kind=NotificationKind.ADMIN_NOTIFICATION,
            recipient=", ".join(self._admin_recipients),
            subject=subject,
            text_body=text,
            html_body=html,
        )
        if not self._admin_recipients:
            # 行照常落库，以 failed 状态出现在运维接口的未发送列表中
            admin.status = NotificationStatus.FAILED
            admin.last_error = NO_ADMIN_RECIPIENTS
            logger.warning("admin_notification_unroutable", order_id=order.id, reason="no_recipients")
        return [customer, admin]

    async def dispatch(self, event: OrderPaid) -> DispatchReport:
        report = DispatchReport(order_id=event.order_id)
        try:
            async with self._uow_factory() as uow:
                report.claimed = await uow.orders.set_side_effects_status(
                    event.order_id,
                    SideEffectsStatus.RUNNING,
                    expected=SideEffectsStatus.PENDING,
                )
        except Exception as exc:
            self._failed("claim", event.order_id, exc, report)
            report.claimed = False
            return report
        if not report.claimed:
            logger.info("side_effects_not_claimed", order_id=event.order_id, event_id=event.event_id)
            return report

        try:
            async with self._uow_factory(readonly=True) as uow:
                order = await uow.orders.get_by_id(event.order_id)
                staged = await uow.notifications.list_by_order(event.order_id)
        except Exception as exc:
            # 保持 running，由 resume_stalled 标记人工复核
            self._failed("load_order", event.order_id, exc, report)
            return report
        if order is None:
            self._failed("load_order", event.order_id, LookupError("order not found"), report)
            return report

        await self._decrement_inventory(order, report)
        self._enqueue(staged, report)

        try:
            async with self._uow_factory() as uow:
                await uow.orders.set_side_effects_status(
                    order.id,
                    SideEffectsStatus.DONE,
                    expected=SideEffectsStatus.RUNNING,
                )
        except Exception as exc:
            self._failed("finish", order.id, exc, report)

        logger.info(
            "side_effects_dispatched",
            order_id=order.id,
            event_id=event.event_id,
            notifications=report.notifications,
            failures=report.failures,
        )
        return report

    async def resume_stalled(self, *, older_than: timedelta, limit: int = 100) -> dict[str, int]:
        """Pick up paid orders whose side effects never ran or never finished.

        `pending` orders are dispatched normally. A `running` order may have
        decremented part of its stock already, so it is flagged for review and
        only its unsent emails are re-queued.
        """
        cutoff = datetime.now(timezone.utc) - older_than
        async with self._uow_factory(readonly=True) as uow:
            stalled = await uow.orders.list_side_effects_stalled(cutoff, limit=limit)

        summary = {"resumed": 0, "interrupted": 0, "errors": 0}
        for order in stalled:
            try:
                if order.side_effects_status == SideEffectsStatus.PENDING:
                    report = await self.dispatch(
                        OrderPaid(
                            order_id=order.id,
                            gateway=order.gateway,
                            gateway_order_ref=order.gateway_order_ref or "",
                            gateway_payment_ref=order.gateway_payment_ref,
                            source="side_effects_resume",
                            amount=order.amount,
                            currency=order.currency,
                        )
                    )
                    summary["resumed"] += int(report.claimed)
                else:
                    await self._close_interrupted(order)
                    summary["interrupted"] += 1
            except Exception as exc:
                summary["errors"] += 1
                logger.error("side_effects_resume_failed", order_id=order.id, error=str(exc), exc_info=exc)
        logger.info("side_effects_resume_finished", stalled=len(stalled), **summary)
        return summary

    async def _close_interrupted(self, order: Order) -> None:
        async with self._uow_factory() as uow:
            closed = await uow.orders.set_side_effects_status(
                order.id,
                SideEffectsStatus.DONE,
                expected=SideEffectsStatus.RUNNING,
            )
            if not closed:
                return
            await uow.orders.flag_inventory_review(order.id)
            await uow.orders.merge_payment_metadata(order.id, {"review_reason": "side_effects_interrupted"})
            staged = await uow.notifications.list_by_order(order.id)
        logger.warning("side_effects_interrupted", order_id=order.id)
        self._enqueue(staged, DispatchReport(order_id=order.id))

    async def _decrement_inventory(self, order: Order, report: DispatchReport) -> None:
        for item in order.items:
            try:
                async with self._uow_factory() as uow:
                    outcome = await uow.products.decrement_stock(item.product_id, item.quantity)
            except Exception as exc:
                self._failed("inventory_decrement", order.id, exc, report, product_id=item.product_id)
                continue
            report.inventory[item.product_id] = outcome
            if outcome != DecrementOutcome.DECREMENTED:
                logger.warning(
                    "inventory_clamped",
                    order_id=order.id,
                    product_id=item.product_id,
                    requested=item.quantity,
                    outcome=outcome.value,
                )

        if report.review_required:
            try:
                async with self._uow_factory() as uow:
                    await uow.orders.flag_inventory_review(order.id)
            except Exception as exc:
                self._failed("inventory_review_flag", order.id, exc, report)

    def _enqueue(self, rows: list[Notification], report: DispatchReport) -> None:
        for row in rows:
            if row.status != NotificationStatus.PENDING:
                continue
            report.notifications.append(row.id)
            if self._queue is None:
                continue
            try:
                # 入队失败时行保持 pending，可由运维接口重试
                self._queue.enqueue_email(row.id)
            except Exception as exc:
                self._failed(f"email_{row.kind.value}", row.order_id, exc, report, notification_id=row.id)

    @staticmethod
    def _failed(effect: str, order_id: int, exc: Exception, report: DispatchReport, **context) -> None:
        failure = SideEffectFailure(effect, order_id=order_id, error=str(exc) or type(exc).__name__)
        report.failures.append(effect)
        logger.error("side_effect_failed", **failure.details, **context, exc_info=exc)
