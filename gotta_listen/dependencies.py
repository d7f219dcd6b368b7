"""Dependency injection for FastAPI."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from gotta_listen.auth.exceptions import NotAuthenticatedError, NotAuthorizedError
from gotta_listen.auth.service import AuthService
from gotta_listen.config import get_settings
from gotta_listen.db.database import get_db
from gotta_listen.db.models import User

settings = get_settings()


def get_session_token(request: Request) -> str | None:
    """Get the session token from the request cookie.

    Args:
        request: FastAPI request object.

    Returns:
        str | None: Token, or None if the cookie is absent.
    """
    return request.cookies.get(settings.session_cookie_name) or None


def get_client_ip(request: Request) -> str | None:
    """Get the client IP, preferring the first X-Forwarded-For entry.

    Args:
        request: FastAPI request object.

    Returns:
        str | None: Client IP address if known.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",", 1)[0].strip() or None
    if request.client:
        return request.client.host
    return None


def get_current_user_optional(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> User | None:
    """Get the current user if authenticated, None otherwise.

    A session cookie that no longer resolves (expired, tampered, revoked,
    or belonging to a banned user) is flagged so the outgoing response
    clears it.

    Args:
        request: FastAPI request object.
        db: Database session.

    Returns:
        User | None: The authenticated user or None.
    """
    token = get_session_token(request)
    if token is None:
        return None

    user = AuthService(db).resolve_user(token)
    if user is None:
        request.state.clear_session_cookies = True
    return user


def get_current_user(
    current_user: Annotated[User | None, Depends(get_current_user_optional)],
) -> User:
    """Get the current authenticated user.

    Args:
        current_user: User resolved from the session cookie.

    Returns:
        User: The authenticated user.

    Raises:
        NotAuthenticatedError: If there is no usable session.
    """
    if current_user is None:
        raise NotAuthenticatedError()
    return current_user


def get_current_admin_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get the current user and verify they are an admin.

    Args:
        current_user: The authenticated user.

    Returns:
        User: The admin user.

    Raises:
        NotAuthorizedError: If user is not an admin.
    """
    if not current_user.is_admin:
        raise NotAuthorizedError()
    return current_user


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db)]
SessionToken = Annotated[str | None, Depends(get_session_token)]
ClientIP = Annotated[str | None, Depends(get_client_ip)]
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentUserOptional = Annotated[User | None, Depends(get_current_user_optional)]
CurrentAdmin = Annotated[User, Depends(get_current_admin_user)]
