"""Authentication error taxonomy.

Every failure the auth core reports to a client carries a stable
machine-readable ``code`` next to the human-readable message. Handlers in
``src.main`` render these as ``{"error": message, "code": code, ...extra}``.
"""

from typing import Any

from fastapi import status


class AuthError(Exception):
    """A client-facing authentication failure."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        """Response body for this error."""
        return {"error": self.message, "code": self.code, **self.extra}

    def __repr__(self) -> str:
        return f"AuthError(code={self.code!r}, status_code={self.status_code})"


# Validation errors (400)


def missing_fields(message: str) -> AuthError:
    return AuthError("MISSING_FIELDS", message)


def invalid_name(min_length: int) -> AuthError:
    return AuthError("INVALID_NAME", f"Name must be at least {min_length} characters")


def invalid_email() -> AuthError:
    return AuthError("INVALID_EMAIL", "Invalid email format")


def weak_password(min_length: int) -> AuthError:
    return AuthError("WEAK_PASSWORD", f"Password must be at least {min_length} characters")


def email_exists() -> AuthError:
    return AuthError("EMAIL_EXISTS", "Email already registered")


def invalid_otp_format() -> AuthError:
    return AuthError("INVALID_OTP_FORMAT", "OTP must be 6 digits")


# OTP verification


def otp_not_found() -> AuthError:
    return AuthError(
        "OTP_NOT_FOUND", "No valid OTP found for this email", status.HTTP_404_NOT_FOUND
    )


def otp_expired() -> AuthError:
    return AuthError("OTP_EXPIRED", "OTP has expired")


def too_many_attempts() -> AuthError:
    return AuthError(
        "TOO_MANY_ATTEMPTS", "Too many failed attempts. Please request a new OTP."
    )


def invalid_otp(attempts_remaining: int) -> AuthError:
    return AuthError(
        "INVALID_OTP", "Invalid OTP", extra={"attemptsRemaining": attempts_remaining}
    )


# Credentials and sessions


def invalid_credentials() -> AuthError:
    return AuthError(
        "INVALID_CREDENTIALS", "Invalid email or password", status.HTTP_401_UNAUTHORIZED
    )


def missing_token(status_code: int = status.HTTP_401_UNAUTHORIZED) -> AuthError:
    if status_code == status.HTTP_400_BAD_REQUEST:
        return AuthError("MISSING_TOKEN", "Token is required", status_code)
    return AuthError("MISSING_TOKEN", "Authorization token required", status_code)


def invalid_token() -> AuthError:
    return AuthError("INVALID_TOKEN", "Invalid or expired token", status.HTTP_401_UNAUTHORIZED)


def session_expired() -> AuthError:
    return AuthError(
        "SESSION_EXPIRED", "Session expired or not found", status.HTTP_401_UNAUTHORIZED
    )


def session_not_found() -> AuthError:
    return AuthError("SESSION_NOT_FOUND", "Session not found", status.HTTP_404_NOT_FOUND)


def user_not_found() -> AuthError:
    return AuthError("USER_NOT_FOUND", "User not found", status.HTTP_404_NOT_FOUND)
