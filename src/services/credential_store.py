"""Persistence operations for users, sessions and OTP codes.

Every auth-relevant check is a query against the store; nothing is cached.
A lookup miss returns ``None`` (or 0 for deletes). The store never commits:
callers own the transaction boundary so multi-statement operations commit
or roll back as one unit.
"""

import re
from datetime import datetime

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from src.models import AuthSession, OTPCode, User
from src.models.mixins import utcnow

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Columns callers may change through update_user
UPDATABLE_USER_FIELDS = frozenset({"name", "password_hash", "verified"})


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address."""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    """Check that an email has a basic local@domain.tld shape, ignoring surrounding whitespace."""
    return bool(EMAIL_PATTERN.match(email.strip()))


class CredentialStore:
    """Store access for the authentication core."""

    def __init__(self, db: Session):
        self.db = db

    # Users

    def find_user_by_email(self, email: str) -> User | None:
        """Get a user by (normalized) email."""
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def get_user(self, user_id: int) -> User | None:
        """Get a user by id."""
        return self.db.query(User).filter(User.id == user_id).first()

    def create_user(
        self,
        email: str,
        name: str | None = None,
        password_hash: str | None = None,
        verified: bool = False,
    ) -> User:
        """Insert a new user. Uniqueness of email is enforced by the database."""
        user = User(
            email=normalize_email(email),
            name=name,
            password_hash=password_hash,
            verified=verified,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def update_user(self, user_id: int, **fields) -> User | None:
        """Update mutable user fields and refresh updated_at."""
        unknown = set(fields) - UPDATABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")

        user = self.get_user(user_id)
        if user is None:
            return None
        for key, value in fields.items():
            setattr(user, key, value)
        user.updated_at = utcnow()
        self.db.flush()
        return user

    def delete_user(self, user_id: int) -> int:
        """Delete a user with its sessions and OTP codes.

        Dependent rows are removed explicitly so nothing is orphaned on
        backends that do not enforce ON DELETE CASCADE.
        """
        for model in (AuthSession, OTPCode):
            self.db.execute(
                delete(model)
                .where(model.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
        result = self.db.execute(
            delete(User).where(User.id == user_id).execution_options(synchronize_session=False)
        )
        return result.rowcount

    # Sessions

    def find_session_by_token(self, token: str, now: datetime | None = None) -> AuthSession | None:
        """Get the session for a token unless it has expired as of ``now``."""
        now = now or utcnow()
        return (
            self.db.query(AuthSession)
            .filter(AuthSession.token == token, AuthSession.expires_at > now)
            .first()
        )

    def create_session(self, user_id: int, token: str, expires_at: datetime) -> AuthSession:
        """Insert a session row for an issued token."""
        session = AuthSession(user_id=user_id, token=token, expires_at=expires_at)
        self.db.add(session)
        self.db.flush()
        return session

    def delete_session_by_token(self, token: str) -> int:
        """Delete the session with this exact token. Returns the number of rows removed."""
        result = self.db.execute(
            delete(AuthSession)
            .where(AuthSession.token == token)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # OTP codes

    def delete_active_otp_codes(self, email: str, now: datetime | None = None) -> int:
        """Delete unused, unexpired codes for an email."""
        now = now or utcnow()
        result = self.db.execute(
            delete(OTPCode)
            .where(
                OTPCode.email == normalize_email(email),
                OTPCode.used_at.is_(None),
                OTPCode.expires_at > now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def create_otp_code(
        self, user_id: int, email: str, hashed_otp: str, expires_at: datetime
    ) -> OTPCode:
        """Insert a fresh code with no attempts recorded."""
        otp_code = OTPCode(
            user_id=user_id,
            email=normalize_email(email),
            hashed_otp=hashed_otp,
            expires_at=expires_at,
            used_at=None,
            attempts=0,
        )
        self.db.add(otp_code)
        self.db.flush()
        return otp_code

    def find_latest_active_otp(self, email: str, now: datetime | None = None) -> OTPCode | None:
        """Get the most recently created active code for an email.

        The row is locked for the rest of the transaction on backends that
        support SELECT ... FOR UPDATE.
        """
        now = now or utcnow()
        return (
            self.db.query(OTPCode)
            .filter(
                OTPCode.email == normalize_email(email),
                OTPCode.used_at.is_(None),
                OTPCode.expires_at > now,
            )
            .order_by(OTPCode.created_at.desc(), OTPCode.id.desc())
            .with_for_update()
            .first()
        )

    def increment_otp_attempts(self, otp_id: int) -> int | None:
        """Atomically record a failed attempt against an unused code.

        Returns the new attempts count, or None if the code was consumed
        concurrently.
        """
        result = self.db.execute(
            update(OTPCode)
            .where(OTPCode.id == otp_id, OTPCode.used_at.is_(None))
            .values(attempts=OTPCode.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        otp_code = self.db.get(OTPCode, otp_id)
        self.db.refresh(otp_code)
        return otp_code.attempts

    def mark_otp_used(
        self, otp_id: int, now: datetime | None = None, max_attempts: int | None = None
    ) -> bool:
        """Consume a code if it is still unused.

        With ``max_attempts`` the update only applies while the attempts count
        is below the cap. Returns True when this call consumed the code.
        """
        now = now or utcnow()
        conditions = [OTPCode.id == otp_id, OTPCode.used_at.is_(None)]
        if max_attempts is not None:
            conditions.append(OTPCode.attempts < max_attempts)
        result = self.db.execute(
            update(OTPCode)
            .where(*conditions)
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            otp_code = self.db.get(OTPCode, otp_id)
            if otp_code is not None:
                self.db.refresh(otp_code)
        return bool(result.rowcount)
