"""Pydantic schemas for API requests and responses."""

from src.schemas.auth import (
    AuthResponse,
    CurrentUserResponse,
    ErrorResponse,
    LogoutRequest,
    MessageResponse,
    OTPGenerateRequest,
    OTPGenerateResponse,
    OTPVerifyRequest,
    OTPVerifyResponse,
    UserDetailResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)

__all__ = [
    "UserRegister",
    "UserLogin",
    "LogoutRequest",
    "OTPGenerateRequest",
    "OTPVerifyRequest",
    "UserResponse",
    "UserDetailResponse",
    "AuthResponse",
    "CurrentUserResponse",
    "MessageResponse",
    "OTPGenerateResponse",
    "OTPVerifyResponse",
    "ErrorResponse",
]
