"""Authentication service for passwords, signed tokens and sessions."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.mixins import utcnow
from src.models.user import User
from src.services import errors
from src.services.credential_store import CredentialStore, is_valid_email, normalize_email

logger = logging.getLogger(__name__)
settings = get_settings()

# Password (and OTP code) hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.password_hash_rounds
)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a password against its hash."""
    if not hashed_password:
        # Burn comparable time so OTP-only accounts are not distinguishable
        pwd_context.dummy_verify()
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


@dataclass
class IssuedSession:
    """A freshly minted bearer token and the user it belongs to."""

    token: str
    expires_at: datetime
    user: User


class SessionIssuer:
    """Mints signed bearer tokens and records them as session rows.

    The signing secret comes from the injected settings, so tests and
    deployments can supply their own.
    """

    def __init__(self, store: CredentialStore, settings: Settings):
        self.store = store
        self.settings = settings

    @property
    def lifetime(self) -> timedelta:
        return timedelta(hours=self.settings.session_expiration_hours)

    def create_token(self, user_id: int, email: str, issued_at: datetime) -> str:
        """Create a signed JWT for a user."""
        to_encode = {
            "sub": str(user_id),
            "email": email,
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
            # Keeps tokens unique when two are issued within the same second
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(
            to_encode, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm
        )

    def decode(self, token: str) -> dict | None:
        """Decode and validate a JWT. Returns None on a bad signature or expiry."""
        try:
            return jwt.decode(
                token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm]
            )
        except JWTError:
            return None

    def issue(self, user: User) -> IssuedSession:
        """Sign a token for the user and persist a matching session row."""
        now = utcnow()
        token = self.create_token(user.id, user.email, now)
        expires_at = now + self.lifetime
        self.store.create_session(user.id, token, expires_at)
        logger.info(f"Issued session for user {user.id}")
        return IssuedSession(token=token, expires_at=expires_at, user=user)


class AuthService:
    """Password registration and login, logout, and request-time token checks."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.store = CredentialStore(db)
        self.sessions = SessionIssuer(self.store, self.settings)

    def register(
        self, name: str | None, email: str | None, password: str | None
    ) -> IssuedSession:
        """Create a password account and log it in.

        Validation runs in a fixed order and the first failure wins.
        Password accounts are created already verified.
        """
        if not name or not email or not password:
            raise errors.missing_fields("Name, email, and password are required")

        trimmed_name = name.strip()
        if len(trimmed_name) < self.settings.min_name_length:
            raise errors.invalid_name(self.settings.min_name_length)

        if not is_valid_email(email):
            raise errors.invalid_email()
        normalized_email = normalize_email(email)

        if len(password) < self.settings.min_password_length:
            raise errors.weak_password(self.settings.min_password_length)

        if self.store.find_user_by_email(normalized_email):
            raise errors.email_exists()

        try:
            user = self.store.create_user(
                normalized_email,
                name=trimmed_name,
                password_hash=get_password_hash(password),
                verified=True,
            )
            issued = self.sessions.issue(user)
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration for the same email
            self.db.rollback()
            raise errors.email_exists() from None
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Registered user {user.id}")
        return issued

    def login(self, email: str | None, password: str | None) -> IssuedSession:
        """Check email and password and open a new session."""
        if not email or not password:
            raise errors.missing_fields("Email and password are required")

        user = self.store.find_user_by_email(email)
        if user is None:
            pwd_context.dummy_verify()
            raise errors.invalid_credentials()
        if not verify_password(password, user.password_hash):
            raise errors.invalid_credentials()

        try:
            issued = self.sessions.issue(user)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return issued

    def logout(self, token: str | None) -> None:
        """Delete the session row holding exactly this token."""
        if not token:
            raise errors.missing_token(status_code=400)

        try:
            deleted = self.store.delete_session_by_token(token)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if not deleted:
            raise errors.session_not_found()
        logger.info("Session logged out")

    def authenticate(self, token: str | None) -> User:
        """Resolve a bearer token to its user.

        Both the token's own signature and expiry and the stored session row
        must be valid.
        """
        if not token:
            raise errors.missing_token()

        payload = self.sessions.decode(token)
        if payload is None:
            raise errors.invalid_token()

        user_id = payload.get("sub")
        if user_id is None:
            raise errors.invalid_token()
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            raise errors.invalid_token() from None

        if self.store.find_session_by_token(token) is None:
            raise errors.session_expired()

        user = self.store.get_user(user_id)
        if user is None:
            raise errors.user_not_found()
        return user
