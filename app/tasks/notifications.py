"""Celery tasks for account notification emails."""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def send_temp_password_email(
    self: object,
    name: str,
    email: str,
    temp_password: str,
    role: str,
    schema_name: str | None = None,
) -> dict[str, object]:
    """Send the temporary-password email, retrying on SMTP failure."""
    from app.services import email as email_service

    logger.info("Sending temporary password email to %s", email)
    ok = email_service.send_temp_password_email(name, email, temp_password, role, schema_name)
    if not ok:
        logger.warning("Temporary password email to %s failed; retrying", email)
        raise self.retry()  # type: ignore[attr-defined]
    return {"success": True, "email": email}
