import pytest

from application.services.notification_service import (
    NotificationNotFoundException,
    NotificationService,
    split_recipients,
)
from domain.notification.entity import Notification, NotificationKind, NotificationStatus


class RecordingMailer:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.sent: list[tuple[list[str], str]] = []

    def send(self, recipients, subject, text_body, html_body):
        if self.error is not None:
            raise self.error
        self.sent.append((recipients, subject))


@pytest.fixture
def add_notification(uow_factory, make_order):
    async def _add(kind=NotificationKind.ADMIN_NOTIFICATION, recipient="ops@example.com, owner@example.com"):
        order = await make_order()
        async with uow_factory() as uow:
            return await uow.notifications.add(
                Notification(
                    id=None,
                    order_id=order.id,
                    kind=kind,
                    recipient=recipient,
                    subject="New paid order",
                    text_body="text",
                    html_body="<p>html</p>",
                )
            )
    return _add


async def _get(uow_factory, notification_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.notifications.get_by_id(notification_id)


def test_split_recipients():
    assert split_recipients(" a@example.com,, b@example.com ") == ["a@example.com", "b@example.com"]


async def test_deliver_sends_once(uow_factory, add_notification):
    notification = await add_notification()
    mailer = RecordingMailer()
    service = NotificationService(uow_factory, mailer=mailer)

    assert await service.deliver(notification.id) is True
    assert await service.deliver(notification.id) is False

    assert mailer.sent == [(["ops@example.com", "owner@example.com"], "New paid order")]
    stored = await _get(uow_factory, notification.id)
    assert stored.status == NotificationStatus.SENT
    assert stored.attempts == 1
    assert stored.sent_at is not None


async def test_deliver_failure_is_recorded_and_reraised(uow_factory, add_notification):
    notification = await add_notification()
    service = NotificationService(uow_factory, mailer=RecordingMailer(error=ConnectionRefusedError("smtp down")))

    with pytest.raises(ConnectionRefusedError):
        await service.deliver(notification.id)

    stored = await _get(uow_factory, notification.id)
    assert stored.status == NotificationStatus.FAILED
    assert stored.attempts == 1
    assert stored.last_error == "smtp down"


async def test_deliver_unknown_notification(uow_factory):
    service = NotificationService(uow_factory, mailer=RecordingMailer())

    with pytest.raises(NotificationNotFoundException):
        await service.deliver(9999)


async def test_retry_requeues_unsent_rows_only(uow_factory, add_notification, queue):
    notification = await add_notification()
    service = NotificationService(uow_factory, queue=queue, mailer=RecordingMailer())

    await service.retry(notification.id)
    assert queue.enqueued == [notification.id]

    await service.deliver(notification.id)
    await service.retry(notification.id)
    assert queue.enqueued == [notification.id]


async def test_list_unsent_filters_by_status(uow_factory, add_notification):
    notification = await add_notification()
    service = NotificationService(uow_factory, mailer=RecordingMailer(error=RuntimeError("boom")))
    with pytest.raises(RuntimeError):
        await service.deliver(notification.id)

    assert [n.id for n in await service.list_unsent()] == [notification.id]
    assert [n.id for n in await service.list_unsent(status=NotificationStatus.FAILED)] == [notification.id]
    assert await service.list_unsent(status=NotificationStatus.PENDING) == []


async def test_admin_row_without_recipient_uses_configured_admins(uow_factory, add_notification):
    notification = await add_notification(recipient="")
    mailer = RecordingMailer()
    service = NotificationService(uow_factory, mailer=mailer, admin_recipients=["ops@example.com"])

    assert await service.deliver(notification.id) is True

    assert mailer.sent == [(["ops@example.com"], "New paid order")]
    assert (await _get(uow_factory, notification.id)).status == NotificationStatus.SENT


async def test_row_without_any_recipient_fails_loudly(uow_factory, add_notification):
    notification = await add_notification(recipient="")
    mailer = RecordingMailer()
    service = NotificationService(uow_factory, mailer=mailer)

    with pytest.raises(ValueError):
        await service.deliver(notification.id)

    assert mailer.sent == []
    stored = await _get(uow_factory, notification.id)
    assert stored.status == NotificationStatus.FAILED
    assert "no recipients" in stored.last_error
