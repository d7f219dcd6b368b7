"""Authentication module."""

from gotta_listen.auth.router import router
from gotta_listen.auth.service import AuthService
from gotta_listen.auth.sessions import SessionStore
from gotta_listen.auth.utils import (
    create_session_token,
    decode_session_token,
    get_password_hash,
    verify_password,
)

__all__ = [
    "router",
    "AuthService",
    "SessionStore",
    "create_session_token",
    "decode_session_token",
    "verify_password",
    "get_password_hash",
]
