"""FastAPI dependencies for authentication and services."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.database import get_db
from src.models.user import User
from src.services.auth import AuthService
from src.services.email_service import EmailNotifier, get_email_notifier
from src.services.otp_service import OTPService

# Missing or non-Bearer headers resolve to None and are reported as MISSING_TOKEN
security = HTTPBearer(auto_error=False)


def get_notifier(settings: Annotated[Settings, Depends(get_settings)]) -> EmailNotifier:
    """Get the configured OTP email notifier."""
    return get_email_notifier(settings)


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthService:
    """Get auth service with dependencies."""
    return AuthService(db, settings)


def get_otp_service(
    db: Annotated[Session, Depends(get_db)],
    notifier: Annotated[EmailNotifier, Depends(get_notifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OTPService:
    """Get OTP service with dependencies."""
    return OTPService(db, notifier, settings)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> User:
    """Get the current authenticated user from the bearer token and its session row."""
    token = credentials.credentials if credentials else None
    return auth_service.authenticate(token)
