"""Authentication API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from carecal.auth.schemas import (
    LoginResponse,
    MessageResponse,
    RegisterResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from carecal.auth.service import AuthService, get_auth_service
from carecal.config import get_settings
from carecal.dependencies import BaseUrl, CurrentUser, DbSession
from carecal.ratelimit import RateLimiter

router = APIRouter()
settings = get_settings()

register_limiter = RateLimiter(
    "register", settings.register_rate_limit, settings.register_rate_window_seconds
)
login_limiter = RateLimiter("login", settings.login_rate_limit, settings.login_rate_window_seconds)


def get_service(db: DbSession) -> AuthService:
    """Get auth service dependency."""
    return get_auth_service(db)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(register_limiter)],
)
async def register(
    data: UserRegister,
    base_url: BaseUrl,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Register a new account.

    The account cannot log in until the emailed verification link is used.

    Args:
        data: Registration data.
        base_url: Base URL for the verification link.
        service: Auth service.

    Returns:
        RegisterResponse: Created user.

    Raises:
        Conflict: If the email is already registered.
    """
    user = service.register(data, base_url)
    return RegisterResponse(
        message="Registration successful. Please check your email to verify your account.",
        user=UserResponse.model_validate(user),
    )


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(
    token: str,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Verify a user's email address.

    Args:
        token: Email verification token from the link.
        service: Auth service.

    Returns:
        MessageResponse: Verification result.
    """
    service.verify_email(token)
    return MessageResponse(message="Email verified successfully! You can now log in.")


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(login_limiter)])
async def login(
    data: UserLogin,
    service: Annotated[AuthService, Depends(get_service)],
    response: Response,
):
    """Login with email and password.

    Sets the session cookie and also returns the token for API clients.

    Args:
        data: Login credentials.
        service: Auth service.
        response: FastAPI response object.

    Returns:
        LoginResponse: Token and user.

    Raises:
        Unauthenticated: Invalid credentials.
        Forbidden: Email address not verified.
    """
    user, token = service.login(data)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=token.access_token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )

    return LoginResponse(
        message="Login successful.", token=token, user=UserResponse.model_validate(user)
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    """Logout by clearing the session cookie."""
    response.delete_cookie(settings.session_cookie_name, path="/")
    return MessageResponse(message="Logged out.")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: CurrentUser):
    """Get current user information."""
    return current_user
