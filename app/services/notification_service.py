"""Notifier backends — deliver the temporary-password email for new accounts."""

from __future__ import annotations

import logging
from typing import Protocol

from kombu.exceptions import OperationalError

from app.services import email as email_service

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    pass


class Notifier(Protocol):
    def send_temp_password_email(
        self,
        name: str,
        email: str,
        temp_password: str,
        role: str,
        schema_name: str | None = None,
    ) -> None: ...


class SmtpNotifier:
    """Sends inline; the calling request waits for the SMTP round trip."""

    def send_temp_password_email(
        self,
        name: str,
        email: str,
        temp_password: str,
        role: str,
        schema_name: str | None = None,
    ) -> None:
        if not email_service.send_temp_password_email(name, email, temp_password, role, schema_name):
            raise NotificationError(f"SMTP delivery to {email} failed")


class CeleryNotifier:
    """Queues the email on the worker; only broker failures surface here."""

    def send_temp_password_email(
        self,
        name: str,
        email: str,
        temp_password: str,
        role: str,
        schema_name: str | None = None,
    ) -> None:
        from app.tasks.notifications import send_temp_password_email

        try:
            send_temp_password_email.delay(name, email, temp_password, role, schema_name)
        except OperationalError as exc:
            raise NotificationError(f"Could not queue email to {email}: {exc}") from exc
        logger.info("Queued temporary password email for %s", email)


class DisabledNotifier:
    def send_temp_password_email(
        self,
        name: str,
        email: str,
        temp_password: str,
        role: str,
        schema_name: str | None = None,
    ) -> None:
        logger.info("Email notifications disabled; not notifying %s", email)


def build_notifier(backend: str) -> Notifier:
    if backend == "smtp":
        return SmtpNotifier()
    if backend == "celery":
        return CeleryNotifier()
    if backend == "disabled":
        return DisabledNotifier()
    raise ValueError(f"Unknown notifier backend: {backend}")
