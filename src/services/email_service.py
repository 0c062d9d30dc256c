"""OTP email delivery.

Notifiers take ``(email, code, display_name)`` and raise on failure. The
OTP issuer decides what a failure means for the request.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol

from src.config import Settings, get_settings

logger = logging.getLogger(__name__)

OTP_EMAIL_SUBJECT = "Your OTP Code - Bus Ticket Booking"

# SMTP presets per provider: (host, port)
PROVIDER_HOSTS = {
    "gmail": ("smtp.gmail.com", 587),
    "sendgrid": ("smtp.sendgrid.net", 587),
}


class EmailDeliveryError(Exception):
    """Raised when an OTP email could not be handed to the transport."""


class EmailNotifier(Protocol):
    """Delivers OTP codes out of band."""

    def send(self, email: str, code: str, display_name: str | None = None) -> None: ...


def render_otp_email(code: str, display_name: str | None, valid_minutes: int) -> tuple[str, str]:
    """Build the plain-text and HTML bodies for an OTP email."""
    greeting = f"Hi {display_name or 'User'},"
    text = (
        f"{greeting}\n\n"
        f"Your OTP code is: {code}. Valid for {valid_minutes} minutes only.\n\n"
        "Do not share it with anyone. If you didn't request this, please ignore this email."
    )
    html = f"""\
<html>
  <body style="font-family: Arial, sans-serif;">
    <h2>Bus Ticket Booking - Email Verification</h2>
    <p>{greeting}</p>
    <p>Your one-time password (OTP) for email verification is:</p>
    <p style="font-size: 32px; font-weight: bold; letter-spacing: 5px;">{code}</p>
    <p><strong>Valid for {valid_minutes} minutes only.</strong></p>
    <p>Do not share it with anyone. If you didn't request this, please ignore this email.</p>
  </body>
</html>
"""
    return text, html


class SMTPEmailSender:
    """Sends OTP emails through an SMTP relay (gmail, sendgrid or a custom host)."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.host, self.port, self.username, self.password, self.from_email = (
            self._resolve_transport(settings)
        )

    @staticmethod
    def _resolve_transport(
        settings: Settings,
    ) -> tuple[str, int, str | None, str | None, str | None]:
        provider = settings.email_provider
        if provider == "gmail":
            host, port = PROVIDER_HOSTS["gmail"]
            return (
                host,
                port,
                settings.gmail_email,
                settings.gmail_app_password,
                settings.gmail_email,
            )
        if provider == "sendgrid":
            host, port = PROVIDER_HOSTS["sendgrid"]
            return host, port, "apikey", settings.sendgrid_api_key, settings.sendgrid_from_email
        if provider == "custom":
            if not settings.smtp_host:
                raise ValueError("SMTP_HOST is required for the custom email provider")
            return (
                settings.smtp_host,
                settings.smtp_port,
                settings.smtp_user,
                settings.smtp_password,
                settings.smtp_from_email,
            )
        raise ValueError(f"Invalid email provider: {provider}")

    def build_message(self, email: str, code: str, display_name: str | None) -> EmailMessage:
        text, html = render_otp_email(code, display_name, self.settings.otp_expiration_minutes)
        msg = EmailMessage()
        msg["Subject"] = OTP_EMAIL_SUBJECT
        msg["From"] = f"{self.settings.email_from_name} <{self.from_email or 'no-reply@localhost'}>"
        msg["To"] = email
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
        return msg

    def send(self, email: str, code: str, display_name: str | None = None) -> None:
        msg = self.build_message(email, code, display_name)
        ctx = ssl.create_default_context()
        timeout = self.settings.smtp_timeout_seconds
        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=timeout, context=ctx) as s:
                    self._deliver(s, msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=timeout) as s:
                    s.starttls(context=ctx)
                    self._deliver(s, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send OTP email: {e}") from e
        logger.info(f"OTP email sent via {self.host}")

    def _deliver(self, smtp: smtplib.SMTP, msg: EmailMessage) -> None:
        if self.username and self.password:
            smtp.login(self.username, self.password)
        smtp.send_message(msg)


class ConsoleEmailSender:
    """Development notifier that writes the code to the log instead of sending it."""

    def send(self, email: str, code: str, display_name: str | None = None) -> None:
        logger.info(f"[console email] OTP for {email}: {code}")


class CeleryEmailSender:
    """Hands delivery to a Celery worker so SMTP stays off the request path."""

    def send(self, email: str, code: str, display_name: str | None = None) -> None:
        from src.tasks.email import send_otp_email

        try:
            send_otp_email.delay(email, code, display_name)
        except Exception as e:
            raise EmailDeliveryError(f"Failed to enqueue OTP email: {e}") from e


def get_email_notifier(settings: Settings | None = None) -> EmailNotifier:
    """Build the notifier selected by configuration."""
    settings = settings or get_settings()
    if settings.email_delivery == "celery":
        return CeleryEmailSender()
    if settings.email_provider == "console":
        return ConsoleEmailSender()
    return SMTPEmailSender(settings)
