import pytest

from sqlalchemy.engine import make_url

from core.config import DatabaseSettings, MailSettings
from infrastructure.external.mail.smtp_client import MailConfigurationError, SMTPMailer
from infrastructure.tasks.config.celery import celery_app
from infrastructure.tasks.utils.base_task import task_context
from infrastructure.tasks.utils.dispatcher import SEND_EMAIL_TASK


def test_mailer_builds_multipart_message():
    mailer = SMTPMailer(MailSettings(username="shop@example.com", password="pw", from_name="Test Store"))

    msg = mailer.build_message(["a@example.com", "b@example.com"], "Order Confirmation", "plain", "<p>html</p>")

    assert msg["From"] == "Test Store <shop@example.com>"
    assert msg["To"] == "a@example.com, b@example.com"
    assert msg.is_multipart()
    assert msg.get_body(("plain",)).get_content().strip() == "plain"
    assert "<p>html</p>" in msg.get_body(("html",)).get_content()


def test_mailer_refuses_to_send_without_credentials():
    with pytest.raises(MailConfigurationError):
        SMTPMailer(MailSettings(username=None, password=None)).send(["a@example.com"], "s", "t", "<p>h</p>")


def test_admin_recipients_accept_comma_separated_string():
    assert MailSettings(admin_recipients="ops@example.com, owner@example.com").admin_recipients == [
        "ops@example.com",
        "owner@example.com",
    ]


def test_email_tasks_route_to_high_priority_queue():
    routes = celery_app.conf.task_routes
    assert routes["notifications.*"]["queue"] == "high"
    assert routes["payments.*"]["queue"] == "low"
    assert SEND_EMAIL_TASK in celery_app.conf.task_annotations


def test_task_context_keeps_only_known_keys():
    assert task_context({"notification_id": 7, "body": "secret"}) == {"notification_id": 7}
    assert task_context(None) == {}


def test_default_database_url_carries_no_credentials():
    url = make_url(DatabaseSettings().url)

    assert url.username is None
    assert url.password is None
    assert url.get_backend_name() == "sqlite"
