"""Authentication utilities for password hashing and session tokens."""

import secrets
from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt
from pydantic import BaseModel

from gotta_listen.config import get_settings

settings = get_settings()

SESSION_TOKEN_TYPE = "session"

# bcrypt only looks at the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


class SessionClaims(BaseModel):
    """Verified session token payload.

    Attributes:
        user_id: User's UUID.
        expires_at: Expiry claim of the token.
    """

    user_id: str
    expires_at: datetime


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash.

    Args:
        plain_password: Plain text password.
        hashed_password: Hashed password to compare against.

    Returns:
        bool: True if password matches, False otherwise. Passwords longer than
        MAX_PASSWORD_BYTES never match.

    Raises:
        ValueError: If the stored hash is malformed.
    """
    password_bytes = plain_password.encode("utf-8")
    if len(password_bytes) > MAX_PASSWORD_BYTES:
        return False
    hash_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(password_bytes, hash_bytes)


def get_password_hash(password: str) -> str:
    """Hash a password.

    Args:
        password: Plain text password.

    Returns:
        str: Hashed password.

    Raises:
        ValueError: If the password is longer than MAX_PASSWORD_BYTES.
    """
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode("utf-8")


def session_lifetime(remember_me: bool = False) -> timedelta:
    """Get the lifetime of a new session.

    Args:
        remember_me: Whether the user asked to stay signed in.

    Returns:
        timedelta: One year for remembered sessions, one week otherwise.
    """
    if remember_me:
        return timedelta(days=settings.remember_me_duration_days)
    return timedelta(days=settings.session_duration_days)


def create_session_token(user_id: str, expires_at: datetime | None = None) -> str:
    """Create a signed session token.

    Args:
        user_id: User's UUID.
        expires_at: Optional expiry; defaults to the regular session lifetime.

    Returns:
        str: Encoded JWT token.
    """
    if expires_at is None:
        expires_at = datetime.now(UTC) + session_lifetime()

    to_encode = {
        "sub": user_id,
        "exp": expires_at,
        "type": SESSION_TOKEN_TYPE,
        "jti": secrets.token_hex(16),
    }

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_session_token(token: str) -> SessionClaims | None:
    """Decode and validate a session token.

    Args:
        token: JWT token string.

    Returns:
        SessionClaims | None: Claims if the signature and expiry are valid, None otherwise.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    exp = payload.get("exp")
    if not user_id or exp is None or payload.get("type") != SESSION_TOKEN_TYPE:
        return None

    return SessionClaims(user_id=user_id, expires_at=datetime.fromtimestamp(exp, tz=UTC))
