"""Authentication API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from gotta_listen.auth.cookies import clear_session_cookies, set_session_cookies
from gotta_listen.auth.schemas import (
    AuthErrorResponse,
    AuthSuccessResponse,
    PasswordChange,
    RefreshResponse,
    UserLogin,
    UserRegister,
    UserResponse,
)
from gotta_listen.auth.service import (
    AuthError,
    AuthErrorKind,
    AuthResult,
    AuthService,
    get_auth_service,
)
from gotta_listen.config import get_settings
from gotta_listen.dependencies import ClientIP, CurrentUser, SessionToken, get_db

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = {
    AuthErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    AuthErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    AuthErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    AuthErrorKind.BANNED: status.HTTP_403_FORBIDDEN,
}


def get_service(db: Annotated[Session, Depends(get_db)]) -> AuthService:
    """Get auth service dependency."""
    return get_auth_service(db)


def error_response(error: AuthError) -> JSONResponse:
    """Render an AuthError as a JSON body with a matching status code."""
    return JSONResponse(
        status_code=ERROR_STATUS[error.kind],
        content=AuthErrorResponse(error=error.message, field=error.field).model_dump(),
    )


def _signed_in_response(
    result: AuthResult, message: str, service: AuthService, status_code: int
) -> JSONResponse:
    payload = AuthSuccessResponse(
        message=message,
        redirect_to=result.redirect_to,
        user=service.get_user_response(result.user),
        expires_at=result.session.expires_at,
    )
    response = JSONResponse(status_code=status_code, content=payload.model_dump(mode="json"))
    set_session_cookies(response, result.session.token, result.session.max_age)
    return response


@router.post(
    "/register",
    response_model=AuthSuccessResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": AuthErrorResponse}, 409: {"model": AuthErrorResponse}},
)
def register(
    data: UserRegister,
    client_ip: ClientIP,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Register a new user and sign them in.

    Args:
        data: Registration data.
        client_ip: Client IP address.
        service: Auth service.

    Returns:
        JSONResponse: The new user and a redirect target, with session cookies set,
        or a field-level error.
    """
    result = service.register(data, client_ip=client_ip)
    if not result.ok:
        return error_response(result.error)

    return _signed_in_response(
        result, "Registration successful!", service, status.HTTP_201_CREATED
    )


@router.post(
    "/login",
    response_model=AuthSuccessResponse,
    responses={
        400: {"model": AuthErrorResponse},
        401: {"model": AuthErrorResponse},
        403: {"model": AuthErrorResponse},
    },
)
def login(
    data: UserLogin,
    client_ip: ClientIP,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Login with email and password.

    Args:
        data: Login credentials.
        client_ip: Client IP address.
        service: Auth service.

    Returns:
        JSONResponse: The user and a redirect target, with session cookies set,
        or an error.
    """
    result = service.login(data, client_ip=client_ip)
    if not result.ok:
        return error_response(result.error)

    return _signed_in_response(result, "Login successful.", service, status.HTTP_200_OK)


@router.post("/logout")
def logout(
    token: SessionToken,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Logout by revoking the current session and clearing cookies.

    Calling this without a session is not an error.

    Returns:
        RedirectResponse: Redirect to login page.
    """
    service.logout(token)
    response = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    clear_session_cookies(response)
    return response


@router.post("/logout-all")
def logout_all_devices(
    token: SessionToken,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Revoke every session of the current user and clear cookies.

    Returns:
        RedirectResponse: Redirect to login page.
    """
    service.logout_all_devices(token)
    response = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    clear_session_cookies(response)
    return response


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    token: SessionToken,
    service: Annotated[AuthService, Depends(get_service)],
    response: Response,
):
    """Extend the current session and renew its cookies.

    Returns:
        RefreshResponse: Whether the session was refreshed and its new expiry.
    """
    issued = service.refresh(token)
    if issued is None:
        return RefreshResponse(refreshed=False)

    set_session_cookies(response, issued.token, issued.max_age)
    return RefreshResponse(refreshed=True, expires_at=issued.expires_at)


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: CurrentUser,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Get current user information.

    Args:
        current_user: Current authenticated user.
        service: Auth service.

    Returns:
        UserResponse: User information.
    """
    return service.get_user_response(current_user)


@router.delete("/me")
def delete_account(
    current_user: CurrentUser,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Delete the current user's account and sign out everywhere.

    Returns:
        RedirectResponse: Redirect to the landing page.
    """
    service.delete_account(current_user)
    response = RedirectResponse(url="/", status_code=status.HTTP_303_SEE_OTHER)
    clear_session_cookies(response)
    return response


@router.post("/change-password", responses={400: {"model": AuthErrorResponse}})
def change_password(
    data: PasswordChange,
    current_user: CurrentUser,
    token: SessionToken,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Change current user's password.

    Other sessions of the user are signed out; the current one stays valid.

    Args:
        data: Password change data.
        current_user: Current authenticated user.
        token: Current session token.
        service: Auth service.

    Returns:
        dict: Success message.
    """
    error = service.change_password(
        current_user,
        data.current_password,
        data.new_password,
        keep_token=token,
    )
    if error:
        return error_response(error)

    return {"message": "Password changed successfully"}


@router.post("/purge-expired-sessions")
def purge_expired_sessions(
    db: Annotated[Session, Depends(get_db)],
    x_cron_secret: Annotated[str | None, Header()] = None,
):
    """Delete expired sessions (for cron jobs).

    Args:
        db: Database session.
        x_cron_secret: Secret key for authentication.

    Returns:
        dict: Number of sessions purged.

    Raises:
        HTTPException: If secret key is invalid.
    """
    settings = get_settings()

    # Check for cron secret if configured
    expected_secret = settings.cron_secret_key
    if expected_secret and x_cron_secret != expected_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )

    from gotta_listen.scheduler.session_cleanup import purge_expired_sessions as run_purge

    return run_purge(db)
