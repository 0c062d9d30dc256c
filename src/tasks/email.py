"""Celery task for background OTP email delivery."""

import logging

from src.celery_app import app as celery_app
from src.config import get_settings
from src.services.email_service import EmailDeliveryError, SMTPEmailSender

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=True,
    max_retries=3,
)
def send_otp_email(self, email: str, code: str, display_name: str | None = None) -> dict:
    """Send an OTP email over SMTP, retrying transient transport failures.

    Returns:
        dict with the delivery status
    """
    settings = get_settings()
    sender = SMTPEmailSender(settings)
    sender.send(email, code, display_name)
    logger.info(f"Delivered OTP email (attempt {self.request.retries + 1})")
    return {"status": "sent", "email": email}
