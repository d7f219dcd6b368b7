"""Cookie helpers for session transport."""

from starlette.responses import Response

from gotta_listen.config import get_settings

settings = get_settings()

LOGGED_IN_FLAG_VALUE = "true"


def set_session_cookies(response: Response, token: str, max_age: int) -> None:
    """Write the session token cookie and the logged-in flag cookie.

    The flag cookie is readable by scripts and only drives UI rendering;
    authorization always goes through the token cookie.

    Args:
        response: Outgoing response.
        token: Signed session token.
        max_age: Cookie lifetime in seconds.
    """
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        max_age=max_age,
        path="/",
    )
    response.set_cookie(
        key=settings.logged_in_cookie_name,
        value=LOGGED_IN_FLAG_VALUE,
        httponly=False,
        secure=settings.secure_cookies,
        samesite="lax",
        max_age=max_age,
        path="/",
    )


def clear_session_cookies(response: Response) -> None:
    """Delete both session cookies."""
    for cookie_name in (settings.session_cookie_name, settings.logged_in_cookie_name):
        response.delete_cookie(
            key=cookie_name,
            path="/",
            secure=settings.secure_cookies,
            samesite="lax",
        )
