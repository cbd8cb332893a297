"""
SMTP mailer (STARTTLS, multipart text + HTML).
"""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

from core.config import MailSettings, settings
from core.logging_config import get_logger


logger = get_logger(__name__)


class MailConfigurationError(RuntimeError):
    pass


class SMTPMailer:
    def __init__(self, config: Optional[MailSettings] = None):
        self._cfg = config or settings.mail

    def build_message(self, recipients: list[str], subject: str, text_body: str, html_body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self._cfg.from_name, self._cfg.sender or ""))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")
        return msg

    def send(self, recipients: list[str], subject: str, text_body: str, html_body: str) -> None:
        if not self._cfg.configured:
            raise MailConfigurationError("SMTP credentials are not configured")
        if not recipients:
            raise ValueError("No recipients")
        msg = self.build_message(recipients, subject, text_body, html_body)
        with smtplib.SMTP(self._cfg.host, self._cfg.port, timeout=self._cfg.timeout) as smtp:
            if self._cfg.use_starttls:
                smtp.starttls()
            smtp.login(self._cfg.username, self._cfg.password)
            smtp.send_message(msg)
        logger.info("smtp_message_sent", recipients=len(recipients), subject=subject)
