"""Outbound mail transport."""
from .smtp_client import SMTPMailer

__all__ = ["SMTPMailer"]
