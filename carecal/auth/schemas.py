"""Pydantic schemas for authentication."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRegister(BaseModel):
    """Schema for account registration.

    Attributes:
        email: User's email address.
        password: User's password.
        display_name: Optional name shown to people the user shares with.
    """

    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    display_name: str | None = Field(None, max_length=255)


class UserLogin(BaseModel):
    """Schema for login credentials."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class Token(BaseModel):
    """Schema for an issued access token."""

    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Schema for user information."""

    id: str
    email: str
    display_name: str | None = None
    role: str | None = None
    is_email_verified: bool
    created_at: datetime | None = None
    last_login: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RegisterResponse(BaseModel):
    """Response for registration endpoint."""

    message: str
    user: UserResponse
    email_verification_required: bool = True


class LoginResponse(BaseModel):
    """Response for login endpoint."""

    message: str
    token: Token
    user: UserResponse


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
    success: bool = True
