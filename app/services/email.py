"""Outbound email over SMTP, plus the new-account credentials message."""

import html
import logging
import smtplib
import time
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import settings

logger = logging.getLogger(__name__)

_SMTP_MAX_ATTEMPTS = 3
_SMTP_BACKOFF_SECONDS = 1


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    username: str | None
    password: str | None
    use_tls: bool
    use_ssl: bool
    from_email: str
    from_name: str

    @classmethod
    def from_settings(cls) -> "SmtpConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            use_ssl=settings.smtp_use_ssl,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name or settings.brand_name,
        )


def _header(value: str, name: str) -> str:
    if "\r" in value or "\n" in value:
        raise ValueError(f"Invalid header value for {name}")
    return value


def _build_message(config: SmtpConfig, to_email: str, subject: str, body_html: str, body_text: str | None):
    msg = MIMEMultipart("alternative")
    msg["Subject"] = _header(subject, "subject")
    msg["From"] = f"{_header(config.from_name, 'from_name')} <{_header(config.from_email, 'from_email')}>"
    msg["To"] = _header(to_email, "to_email")
    if body_text:
        msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))
    return msg


def _open_connection(config: SmtpConfig) -> smtplib.SMTP:
    if config.use_ssl:
        return smtplib.SMTP_SSL(config.host, config.port)
    server = smtplib.SMTP(config.host, config.port)
    if config.use_tls:
        server.starttls()
    return server


def send_email(
    to_email: str,
    subject: str,
    body_html: str,
    body_text: str | None = None,
) -> bool:
    """Deliver one message, retrying connection and protocol errors.

    Authentication failures are not retried. Returns ``False`` once every
    attempt has failed; header injection raises ``ValueError`` up front.
    """
    config = SmtpConfig.from_settings()
    msg = _build_message(config, to_email, subject, body_html, body_text)

    last_err: Exception | None = None
    for attempt in range(1, _SMTP_MAX_ATTEMPTS + 1):
        server = None
        try:
            server = _open_connection(config)
            if config.username and config.password:
                server.login(config.username, config.password)
            server.sendmail(config.from_email, to_email, msg.as_string())
            logger.info("Email sent to %s", to_email)
            return True
        except smtplib.SMTPAuthenticationError as exc:
            logger.error("SMTP login rejected while sending to %s: %s", to_email, exc)
            return False
        except (smtplib.SMTPException, OSError) as exc:
            last_err = exc
            if attempt < _SMTP_MAX_ATTEMPTS:
                logger.warning("SMTP attempt %d/%d to %s failed: %s", attempt, _SMTP_MAX_ATTEMPTS, to_email, exc)
                time.sleep(_SMTP_BACKOFF_SECONDS * attempt)
        finally:
            if server is not None:
                try:
                    server.quit()
                except (smtplib.SMTPException, OSError):
                    logger.debug("SMTP quit failed for %s", to_email)

    logger.error("Giving up on email to %s after %d attempts: %s", to_email, _SMTP_MAX_ATTEMPTS, last_err)
    return False


def render_temp_password_email(
    name: str,
    email: str,
    temp_password: str,
    role: str,
    schema_name: str | None = None,
) -> tuple[str, str, str]:
    """Return ``(subject, html, text)`` for a new account's credentials."""
    brand = settings.brand_name
    login_url = settings.app_url.rstrip("/")
    subject = f"Your {brand} Account is Ready"

    details = [
        ("Email", email),
        ("Role", role),
    ]
    if schema_name:
        details.append(("Workspace", schema_name))
    items = "".join(f"<li><strong>{label}:</strong> {html.escape(value)}</li>" for label, value in details)
    body_html = (
        f"<h2>Your {html.escape(brand)} Account is Ready, {html.escape(name)}!</h2>"
        "<p>Your account has been approved and set up with the following details:</p>"
        f"<ul>{items}"
        f"<li><strong>Temporary Password:</strong> <code>{html.escape(temp_password)}</code></li></ul>"
        f'<p>Please log in at <a href="{login_url}">{login_url}</a> '
        "using your email and the temporary password above.</p>"
        "<p><strong>Important:</strong> Please change your password after your first login.</p>"
        f"<p>Best regards,<br>The {html.escape(brand)} Team</p>"
    )
    body_text = "\n".join(
        [f"Hi {name}, your {brand} account is ready."]
        + [f"{label}: {value}" for label, value in details]
        + [
            f"Temporary password: {temp_password}",
            f"Log in at {login_url} and change your password after your first login.",
        ]
    )
    return subject, body_html, body_text


def send_temp_password_email(
    name: str,
    email: str,
    temp_password: str,
    role: str,
    schema_name: str | None = None,
) -> bool:
    subject, body_html, body_text = render_temp_password_email(name, email, temp_password, role, schema_name)
    return send_email(email, subject, body_html, body_text)
