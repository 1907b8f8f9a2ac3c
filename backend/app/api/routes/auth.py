import re
import uuid
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import Field, field_validator
from sqlalchemy.orm import Session
from app.api.dependencies import get_auth_service, get_current_principal, get_current_user
from app.api.schemas import ApiResponse, CamelModel
from app.core.database import get_db
from app.core.security import Principal
from app.models.user import User
from app.services.auth_service import AuthService, AuthSession
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# Deliberately loose: "name@host" without a TLD is accepted
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")


def _check_email(value: str) -> str:
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Email should be valid")
    return value


class RegisterRequest(CamelModel):
    name: str = Field(min_length=2, max_length=100)
    email: str = Field(max_length=255)
    password: str = Field(min_length=6, max_length=72)

    @field_validator("email")
    @classmethod
    def email_format(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if len(value.strip()) < 2:
            raise ValueError("Name must be between 2 and 100 characters")
        return value


class LoginRequest(CamelModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    old_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=72)


class FederatedAuthRequest(CamelModel):
    access_token: str = Field(min_length=1)
    # Accepted for client compatibility, not used
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: str = Field(max_length=255)

    @field_validator("email")
    @classmethod
    def email_format(cls, value: str) -> str:
        return _check_email(value)


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=72)


class AuthResponse(CamelModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    name: str
    email: str

    @classmethod
    def from_session(cls, session: AuthSession) -> "AuthResponse":
        return cls(
            access_token=session.access_token,
            token_type=session.token_type,
            expires_in=session.expires_in,
            name=session.name,
            email=session.email,
        )


class UserResponse(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    created_at: datetime


@router.post("/register", response_model=ApiResponse[AuthResponse])
def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Register a new local account and start a session"""
    logger.info(f"Registration request received for: {request.email}")
    session = auth.register(db, request.name, request.email, request.password)
    return ApiResponse[AuthResponse](message="User registered successfully", data=AuthResponse.from_session(session))


@router.post("/login", response_model=ApiResponse[AuthResponse])
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Login with email and password"""
    session = auth.login(db, request.email, request.password)
    return ApiResponse[AuthResponse](message="User logged in successfully", data=AuthResponse.from_session(session))


@router.post("/change-password", response_model=ApiResponse)
def change_password(
    request: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    auth.change_password(db, principal, request.old_password, request.new_password)
    return ApiResponse(message="Password changed successfully")


@router.post("/google", response_model=ApiResponse[AuthResponse])
def federated_login(
    request: FederatedAuthRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Exchange an identity provider access token for a session"""
    logger.info("Google authentication request received")
    session = auth.login_federated(db, request.access_token)
    return ApiResponse[AuthResponse](message="Google authentication successful", data=AuthResponse.from_session(session))


@router.post("/forgot-password", response_model=ApiResponse)
def forgot_password(
    request: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Always succeeds so the response does not reveal registered emails"""
    auth.forgot_password(db, request.email)
    return ApiResponse(message="If the email is registered, a password reset link has been sent")


@router.post("/reset-password", response_model=ApiResponse)
def reset_password(
    request: ResetPasswordRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    auth.reset_password(db, request.token, request.new_password)
    return ApiResponse(message="Password reset successfully")


@router.get("/me", response_model=ApiResponse[UserResponse])
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return ApiResponse[UserResponse](data=UserResponse(
        id=current_user.id,
        name=current_user.name,
        email=current_user.email,
        created_at=current_user.created_at,
    ))
