"""
auth/notifier.py -- Outbound message delivery for account flows.

Notifier is the contract the lifecycle service depends on:
    await notifier.send(destination, subject, body)
It either returns or raises DeliveryError. Backends never report failure by
return value, so a caller cannot forget to check it.

Backends:
  ConsoleNotifier -- logs the message. Development default (EMAIL_BACKEND=console).
  SMTPNotifier    -- aiosmtplib with STARTTLS (EMAIL_BACKEND=smtp).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from email.message import EmailMessage

import aiosmtplib

from auth.errors import DeliveryError
from core.config import Settings

logger = logging.getLogger("globalcart.auth.notifier")


class Notifier(ABC):
    @abstractmethod
    async def send(self, destination: str, subject: str, body: str) -> None:
        """Deliver body to destination or raise DeliveryError."""


class ConsoleNotifier(Notifier):
    async def send(self, destination: str, subject: str, body: str) -> None:
        logger.info("EMAIL to=%s subject=%r\n%s", destination, subject, body)


class SMTPNotifier(Notifier):
    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        username: str,
        password: str,
        from_email: str,
        start_tls: bool = True,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.start_tls = start_tls

    async def send(self, destination: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = destination
        msg.set_content(body)

        try:
            await aiosmtplib.send(
                msg,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.warning("SMTP delivery to %s failed: %s", destination, exc)
            raise DeliveryError() from exc


def get_notifier(settings: Settings) -> Notifier:
    if settings.email_backend == "smtp":
        return SMTPNotifier(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            start_tls=settings.smtp_start_tls,
        )
    return ConsoleNotifier()
