"""Email one-time password issuing and verification."""

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.mixins import as_utc, utcnow
from src.models.user import User
from src.services import errors
from src.services.auth import IssuedSession, SessionIssuer, pwd_context
from src.services.credential_store import CredentialStore, is_valid_email, normalize_email
from src.services.email_service import EmailNotifier

logger = logging.getLogger(__name__)

# ASCII digits only; fullmatch so a trailing newline is rejected
OTP_PATTERN = re.compile(r"[0-9]{6}")
OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> str:
    """Draw a 6-digit code uniformly from [100000, 999999]."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


@dataclass
class OTPIssueResult:
    """Outcome of issuing a code.

    The code is always stored when this is returned; ``delivered`` is False
    when the notifier failed and the user may need to request a resend.
    """

    email: str
    delivered: bool

    @property
    def message(self) -> str:
        if self.delivered:
            return "OTP sent to your email"
        return "OTP generated but email delivery may be delayed"


class OTPService:
    """Issues and verifies email OTP codes, creating OTP-only users lazily."""

    def __init__(
        self,
        db: Session,
        notifier: EmailNotifier,
        settings: Settings | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.store = CredentialStore(db)
        self.sessions = SessionIssuer(self.store, self.settings)

    def generate(self, email: str | None) -> OTPIssueResult:
        """Create a new code for an email and hand it to the notifier.

        Prior active codes for the email are deleted, the user is looked up
        or created unverified, and the new code row is inserted, all in one
        transaction. Delivery happens after commit.
        """
        if not email or not is_valid_email(email):
            raise errors.invalid_email()
        normalized_email = normalize_email(email)

        code = generate_otp()
        now = utcnow()
        try:
            self.store.delete_active_otp_codes(normalized_email, now)

            user = self.store.find_user_by_email(normalized_email)
            if user is None:
                user = self._create_otp_user(normalized_email)
            user_id, display_name = user.id, user.name

            self.store.create_otp_code(
                user_id,
                normalized_email,
                pwd_context.hash(code),
                now + timedelta(minutes=self.settings.otp_expiration_minutes),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        try:
            self.notifier.send(normalized_email, code, display_name)
        except Exception as e:
            logger.warning(f"OTP email delivery failed for user {user_id}: {e}")
            return OTPIssueResult(email=normalized_email, delivered=False)

        logger.info(f"Issued OTP for user {user_id}")
        return OTPIssueResult(email=normalized_email, delivered=True)

    def _create_otp_user(self, email: str) -> User:
        """Create an unverified user, or return the one a concurrent request just created."""
        try:
            with self.db.begin_nested():
                user = self.store.create_user(email, verified=False)
        except IntegrityError:
            user = self.store.find_user_by_email(email)
            if user is None:
                raise
            logger.info(f"OTP-only user {user.id} created concurrently")
            return user

        logger.info(f"Created OTP-only user {user.id}")
        return user

    def verify(self, email: str | None, otp: str | None) -> IssuedSession:
        """Check a submitted code and open a session on success.

        Failed comparisons are counted against the code; once the attempt
        cap is reached the code is burned and rejected even if correct.
        """
        if not email or not otp:
            raise errors.missing_fields("Email and OTP are required")
        if not is_valid_email(email):
            raise errors.invalid_email()
        if not OTP_PATTERN.fullmatch(otp):
            raise errors.invalid_otp_format()
        normalized_email = normalize_email(email)
        max_attempts = self.settings.otp_max_attempts

        try:
            now = utcnow()
            otp_code = self.store.find_latest_active_otp(normalized_email, now)
            if otp_code is None:
                raise errors.otp_not_found()

            if as_utc(otp_code.expires_at) < utcnow():
                raise errors.otp_expired()

            if otp_code.attempts >= max_attempts:
                self.store.mark_otp_used(otp_code.id, now)
                self.db.commit()
                logger.warning(f"Burned OTP {otp_code.id} after {otp_code.attempts} attempts")
                raise errors.too_many_attempts()

            if not pwd_context.verify(otp, otp_code.hashed_otp):
                attempts = self.store.increment_otp_attempts(otp_code.id)
                if attempts is None:
                    self.db.commit()
                    raise errors.otp_not_found()
                if attempts >= max_attempts:
                    self.store.mark_otp_used(otp_code.id, now)
                    self.db.commit()
                    logger.warning(f"Burned OTP {otp_code.id} on failed attempt {attempts}")
                    raise errors.too_many_attempts()
                self.db.commit()
                logger.warning(f"Invalid OTP for code {otp_code.id} (attempt {attempts})")
                raise errors.invalid_otp(max_attempts - attempts)

            if not self.store.mark_otp_used(otp_code.id, now, max_attempts=max_attempts):
                # Consumed or burned by a concurrent request
                self.db.commit()
                raise errors.otp_not_found()

            user = self.store.update_user(otp_code.user_id, verified=True)
            if user is None:
                raise errors.user_not_found()

            issued = self.sessions.issue(user)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Verified OTP for user {user.id}")
        return issued
