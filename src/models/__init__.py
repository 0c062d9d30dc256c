"""SQLAlchemy models."""

from src.models.otp_code import OTPCode
from src.models.session import AuthSession
from src.models.user import User

__all__ = [
    "User",
    "AuthSession",
    "OTPCode",
]
