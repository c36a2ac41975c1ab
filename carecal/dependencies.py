"""Dependency injection for FastAPI."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from carecal.auth.utils import decode_access_token
from carecal.config import get_settings
from carecal.db.database import get_db
from carecal.db.models import User

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def request_token(
    credentials: HTTPAuthorizationCredentials | None, request: Request
) -> str | None:
    """Access token from the Authorization header, else from the session cookie."""
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(get_settings().session_cookie_name)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    request: Request,
) -> User:
    """Resolve the caller from a Bearer token (API clients) or the session cookie.

    Args:
        credentials: HTTP Bearer token credentials.
        db: Database session.
        request: Request carrying the session cookie.

    Returns:
        User: The authenticated user.

    Raises:
        HTTPException: 401 when no valid token maps to an existing user.
    """
    token = request_token(credentials, request)
    if token is None:
        raise _unauthorized("Not authenticated")

    token_data = decode_access_token(token)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")

    user = db.get(User, token_data.user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


def get_base_url(request: Request) -> str:
    """Public base URL for links sent by email.

    Uses the configured ``base_url`` and falls back to the request URL.
    """
    configured = get_settings().base_url
    if configured:
        return configured.rstrip("/")
    return str(request.base_url).rstrip("/")


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
BaseUrl = Annotated[str, Depends(get_base_url)]
