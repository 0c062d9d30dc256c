"""Authentication API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from src.api.dependencies import get_auth_service, get_current_user, get_otp_service
from src.models.user import User
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
from src.services.auth import AuthService
from src.services.otp_service import OTPService

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Register a password account. The account is verified immediately."""
    issued = auth_service.register(user_data.name, user_data.email, user_data.password)
    return AuthResponse(token=issued.token, user=UserResponse.model_validate(issued.user))


@router.post(
    "/login", response_model=AuthResponse, responses={401: {"model": ErrorResponse}}
)
async def login(
    credentials: UserLogin,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Login with email and password."""
    issued = auth_service.login(credentials.email, credentials.password)
    return AuthResponse(token=issued.token, user=UserResponse.model_validate(issued.user))


@router.post(
    "/logout", response_model=MessageResponse, responses={404: {"model": ErrorResponse}}
)
async def logout(
    body: LogoutRequest,
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
):
    """Delete the session for the token given in the request body."""
    auth_service.logout(body.token)
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=CurrentUserResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Get current user information."""
    return CurrentUserResponse(user=UserDetailResponse.model_validate(current_user))


@router.post(
    "/otp/generate", response_model=OTPGenerateResponse, status_code=status.HTTP_201_CREATED
)
async def generate_otp(
    body: OTPGenerateRequest,
    otp_service: Annotated[OTPService, Depends(get_otp_service)],
):
    """Email a one-time code, creating an unverified account for unseen emails."""
    result = otp_service.generate(body.email)
    return OTPGenerateResponse(
        email=result.email, message=result.message, delivered=result.delivered
    )


@router.post(
    "/otp/verify", response_model=OTPVerifyResponse, responses={404: {"model": ErrorResponse}}
)
async def verify_otp(
    body: OTPVerifyRequest,
    otp_service: Annotated[OTPService, Depends(get_otp_service)],
):
    """Verify a one-time code and open a session."""
    issued = otp_service.verify(body.email, body.otp)
    user = issued.user
    return OTPVerifyResponse(
        token=issued.token,
        user_id=user.id,
        email=user.email,
        name=user.name,
        verified=user.verified,
    )
