"""Notification delivery backends."""

from pagewatch.notify.mailer import SendMailClient

__all__ = ["SendMailClient"]
