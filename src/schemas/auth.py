"""Authentication schemas.

Request fields are optional so that presence and format checks run in the
service layer in a fixed order and report stable error codes. Responses use
camelCase field names on the wire.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests


class UserRegister(BaseModel):
    """User registration request."""

    name: str | None = None
    email: str | None = None
    password: str | None = None


class UserLogin(BaseModel):
    """User login request."""

    email: str | None = None
    password: str | None = None


class LogoutRequest(BaseModel):
    """Logout request carrying the session token in the body."""

    token: str | None = None


class OTPGenerateRequest(BaseModel):
    """Request a one-time code for an email."""

    email: str | None = None


class OTPVerifyRequest(BaseModel):
    """Submit a one-time code."""

    email: str | None = None
    otp: str | None = None


# Responses


class UserResponse(CamelModel):
    """Public user fields returned on login and registration."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str | None
    verified: bool


class UserDetailResponse(UserResponse):
    """Public user fields returned by the current-user endpoint."""

    created_at: datetime


class AuthResponse(CamelModel):
    """Authentication response with token and user info."""

    success: bool = True
    token: str
    user: UserResponse


class CurrentUserResponse(CamelModel):
    """Current user lookup response."""

    success: bool = True
    user: UserDetailResponse


class MessageResponse(CamelModel):
    """Plain acknowledgement."""

    success: bool = True
    message: str


class OTPGenerateResponse(CamelModel):
    """OTP issue response. ``delivered`` is False when the email may not have gone out."""

    success: bool = True
    email: str
    message: str
    delivered: bool


class OTPVerifyResponse(CamelModel):
    """Successful OTP verification with a new session token."""

    success: bool = True
    token: str
    user_id: int
    email: str
    name: str | None
    verified: bool


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""

    error: str
    code: str
