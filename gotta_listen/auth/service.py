"""Authentication service layer."""

import enum
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gotta_listen.auth.schemas import UserLogin, UserRegister, UserResponse
from gotta_listen.auth.sessions import SessionStore
from gotta_listen.auth.utils import (
    MAX_PASSWORD_BYTES,
    create_session_token,
    decode_session_token,
    get_password_hash,
    session_lifetime,
    verify_password,
)
from gotta_listen.db.models import User, as_utc

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6

HOME_REDIRECT = "/feed"

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
EMAIL_TAKEN_MESSAGE = "An account with this email already exists"
USERNAME_TAKEN_MESSAGE = "This username is already taken"


class AuthErrorKind(str, enum.Enum):
    """Category of an authentication failure."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    INVALID_CREDENTIALS = "invalid_credentials"
    BANNED = "banned"


@dataclass
class AuthError:
    """A user-facing authentication failure."""

    message: str
    kind: AuthErrorKind
    field: str | None = None


@dataclass
class IssuedSession:
    """A freshly issued session token and its lifetime."""

    token: str
    expires_at: datetime
    max_age: int


@dataclass
class AuthResult:
    """Outcome of register/login: either a signed-in user or an error."""

    user: User | None = None
    session: IssuedSession | None = None
    redirect_to: str | None = None
    error: AuthError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@lru_cache
def _dummy_password_hash() -> str:
    # Verified against when the email is unknown so both failure paths do the same work.
    return get_password_hash("not-a-real-password")


def validate_password_strength(password: str, label: str = "Password") -> AuthError | None:
    """Check the password length rules shared by registration and password changes.

    The upper bound is in bytes since that is what bcrypt accepts.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        return AuthError(
            f"{label} must be at least {MIN_PASSWORD_LENGTH} characters long",
            AuthErrorKind.VALIDATION,
            "password",
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return AuthError(
            f"{label} is too long (at most {MAX_PASSWORD_BYTES} bytes)",
            AuthErrorKind.VALIDATION,
            "password",
        )
    return None


def validate_username(username: str) -> AuthError | None:
    """Check the username length and character rules."""
    if len(username) < MIN_USERNAME_LENGTH:
        return AuthError(
            f"Username must be at least {MIN_USERNAME_LENGTH} characters long",
            AuthErrorKind.VALIDATION,
            "username",
        )
    if not USERNAME_PATTERN.match(username):
        return AuthError(
            "Username can only contain letters, numbers and underscores",
            AuthErrorKind.VALIDATION,
            "username",
        )
    return None


class AuthService:
    """Service class for authentication operations."""

    def __init__(self, db: Session):
        """Initialize auth service.

        Args:
            db: Database session.
        """
        self.db = db
        self.sessions = SessionStore(db)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def _validate_registration(self, data: UserRegister) -> AuthError | None:
        """Validate registration input before touching the database.

        Args:
            data: Registration data (already stripped).

        Returns:
            AuthError | None: First failing rule, or None if the input is valid.
        """
        if not data.email or not data.username or not data.display_name or not data.password:
            return AuthError("All required fields must be filled out", AuthErrorKind.VALIDATION)

        error = validate_password_strength(data.password)
        if error:
            return error

        if "@" not in data.email:
            return AuthError(
                "Please enter a valid email address", AuthErrorKind.VALIDATION, "email"
            )

        return validate_username(data.username)

    def find_conflict(
        self, email: str | None, username: str | None, exclude_user_id: str | None = None
    ) -> AuthError | None:
        """Check email and username uniqueness.

        Comparison is case-sensitive; the unique constraints in the database
        catch anything this check lets through.

        Args:
            email: Email to check.
            username: Username to check.
            exclude_user_id: User allowed to already own the values (for updates).

        Returns:
            AuthError | None: Field-specific conflict, or None.
        """
        if email:
            query = self.db.query(User.id).filter(User.email == email)
            if exclude_user_id:
                query = query.filter(User.id != exclude_user_id)
            if query.first():
                return AuthError(EMAIL_TAKEN_MESSAGE, AuthErrorKind.CONFLICT, "email")

        if username:
            query = self.db.query(User.id).filter(User.username == username)
            if exclude_user_id:
                query = query.filter(User.id != exclude_user_id)
            if query.first():
                return AuthError(USERNAME_TAKEN_MESSAGE, AuthErrorKind.CONFLICT, "username")

        return None

    def _open_session(self, user: User, remember_me: bool = False) -> IssuedSession:
        """Issue a token and store its session row (commits pending changes).

        Args:
            user: User to sign in.
            remember_me: Use the long session lifetime.

        Returns:
            IssuedSession: Token and expiry for the cookie transport.
        """
        lifetime = session_lifetime(remember_me)
        expires_at = (self._now() + lifetime).replace(microsecond=0)
        token = create_session_token(user.id, expires_at)
        self.sessions.create(user.id, token, expires_at, is_persistent=remember_me)
        return IssuedSession(
            token=token,
            expires_at=expires_at,
            max_age=int(lifetime.total_seconds()),
        )

    def register(self, data: UserRegister, client_ip: str | None = None) -> AuthResult:
        """Register a new user and sign them in.

        The user row and its first session are committed together, so a
        rejected registration leaves nothing behind.

        Args:
            data: Registration data.
            client_ip: Client IP address, recorded as the last login IP.

        Returns:
            AuthResult: Signed-in user and session, or a validation/conflict error.
        """
        data = data.model_copy(
            update={
                "email": data.email.strip(),
                "username": data.username.strip(),
                "display_name": data.display_name.strip(),
            }
        )

        error = self._validate_registration(data)
        if error:
            return AuthResult(error=error)

        conflict = self.find_conflict(data.email, data.username)
        if conflict:
            logger.info(f"Registration rejected: {conflict.field} already in use")
            return AuthResult(error=conflict)

        user = User(
            email=data.email,
            username=data.username,
            display_name=data.display_name,
            password_hash=get_password_hash(data.password),
            country=(data.country or "").strip() or None,
            state=(data.state or "").strip() or None,
            city=(data.city or "").strip() or None,
            is_admin=False,
            is_banned=False,
            last_login_ip=client_ip,
            last_login_at=self._now(),
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # Lost a race with a concurrent registration
            self.db.rollback()
            conflict = self.find_conflict(data.email, data.username) or AuthError(
                "An account with this email or username already exists",
                AuthErrorKind.CONFLICT,
            )
            logger.info(f"Registration rejected by unique constraint: {conflict.field}")
            return AuthResult(error=conflict)

        issued = self._open_session(user)
        logger.info(f"Registered user {user.username} ({user.id})")

        return AuthResult(user=user, session=issued, redirect_to=HOME_REDIRECT)

    def _ban_message(self, user: User) -> str:
        if user.banned_until is None:
            return "Your account has been permanently banned."
        banned_until = as_utc(user.banned_until)
        return f"You are banned until {banned_until:%Y-%m-%d %H:%M} UTC."

    def _invalid_credentials(self) -> AuthResult:
        return AuthResult(
            error=AuthError(INVALID_CREDENTIALS_MESSAGE, AuthErrorKind.INVALID_CREDENTIALS)
        )

    def _record_login(self, user: User, client_ip: str | None) -> None:
        """Store login time and IP; failures are logged and ignored."""
        try:
            user.last_login_at = self._now()
            if client_ip:
                user.last_login_ip = client_ip
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Failed to record login for user {user.id}: {e}")

    def _purge_expired_sessions(self) -> None:
        try:
            self.sessions.purge_expired()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Failed to purge expired sessions: {e}")

    def login(self, data: UserLogin, client_ip: str | None = None) -> AuthResult:
        """Authenticate user and open a session.

        Unknown emails and wrong passwords produce the same message. Bans are
        checked before the password so a banned user learns nothing about it.

        Args:
            data: Login credentials.
            client_ip: Client IP address.

        Returns:
            AuthResult: Signed-in user and session, or an error.
        """
        email = data.email.strip()
        if not email or not data.password:
            return AuthResult(
                error=AuthError("Please enter both email and password", AuthErrorKind.VALIDATION)
            )
        if "@" not in email:
            return AuthResult(
                error=AuthError(
                    "Please enter a valid email address", AuthErrorKind.VALIDATION, "email"
                )
            )

        user = self.db.query(User).filter(User.email == email).first()

        if not user:
            verify_password(data.password, _dummy_password_hash())
            logger.info("Failed login attempt for unknown email")
            return self._invalid_credentials()

        if user.is_currently_banned():
            logger.info(f"Refused login for banned user {user.id}")
            return AuthResult(error=AuthError(self._ban_message(user), AuthErrorKind.BANNED))

        if not verify_password(data.password, user.password_hash):
            logger.info(f"Failed login attempt for user {user.id}")
            return self._invalid_credentials()

        self._record_login(user, client_ip)
        issued = self._open_session(user, remember_me=data.remember_me)
        self._purge_expired_sessions()

        return AuthResult(user=user, session=issued, redirect_to=HOME_REDIRECT)

    def _resolve_user_id(self, token: str) -> str | None:
        """Check the token signature, then the stored session row."""
        claims = decode_session_token(token)
        if claims is None:
            return None

        owner_id = self.sessions.find_active(token)
        if owner_id is None or owner_id != claims.user_id:
            return None
        return owner_id

    def resolve_user(self, token: str | None) -> User | None:
        """Get the user behind a session token.

        A banned user's session is revoked here, so bans take effect on the
        next request rather than at the next login.

        Args:
            token: Session token from the cookie.

        Returns:
            User | None: The user, or None if the session is not usable.
        """
        if not token:
            return None

        user_id = self._resolve_user_id(token)
        if user_id is None:
            return None

        user = self.db.get(User, user_id)
        if user is None:
            return None

        if user.is_currently_banned():
            logger.info(f"Dropping session of banned user {user.id}")
            self.sessions.delete(token)
            return None

        return user

    def logout(self, token: str | None) -> bool:
        """Revoke the current session.

        Args:
            token: Session token from the cookie, if any.

        Returns:
            bool: True if a session row was deleted.
        """
        if not token:
            return False
        return self.sessions.delete(token) > 0

    def logout_all_devices(self, token: str | None) -> int:
        """Revoke every session of the user owning ``token``.

        Args:
            token: Session token from the cookie, if any.

        Returns:
            int: Number of sessions revoked (0 if the token is not usable).
        """
        if not token:
            return 0

        user_id = self._resolve_user_id(token)
        if user_id is None:
            return 0

        deleted = self.sessions.delete_all_for_user(user_id)
        logger.info(f"Signed out user {user_id} from {deleted} sessions")
        return deleted

    def refresh(self, token: str | None) -> IssuedSession | None:
        """Extend a valid session, rotating its token.

        The new expiry uses the lifetime the session was issued with and never
        moves backwards; a second refresh within the same second still rotates.

        Args:
            token: Session token from the cookie, if any.

        Returns:
            IssuedSession | None: Replacement token, or None if nothing was refreshed.
        """
        user = self.resolve_user(token)
        if user is None:
            return None

        row = self.sessions.get(token)
        if row is None:
            return None

        lifetime = session_lifetime(row.is_persistent)
        expires_at = (self._now() + lifetime).replace(microsecond=0)
        new_token = create_session_token(user.id, expires_at)
        if not self.sessions.extend(token, expires_at, new_token=new_token):
            return None

        return IssuedSession(
            token=new_token,
            expires_at=expires_at,
            max_age=int(lifetime.total_seconds()),
        )

    def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        keep_token: str | None = None,
    ) -> AuthError | None:
        """Change user's password and sign out their other sessions.

        Args:
            user: User model.
            current_password: Current password.
            new_password: New password.
            keep_token: Session token that stays valid (the caller's own).

        Returns:
            AuthError | None: Failure, or None on success.
        """
        if not verify_password(current_password, user.password_hash):
            return AuthError(
                "Current password is incorrect", AuthErrorKind.VALIDATION, "current_password"
            )

        error = validate_password_strength(new_password, label="New password")
        if error:
            error.field = "new_password"
            return error

        user.password_hash = get_password_hash(new_password)
        self.db.commit()
        self.sessions.delete_all_for_user_except(user.id, keep_token)
        logger.info(f"Password changed for user {user.id}")
        return None

    def delete_account(self, user: User) -> None:
        """Delete a user together with all of their sessions.

        Args:
            user: User model.
        """
        user_id = user.id
        self.sessions.delete_all_for_user(user_id)
        self.db.delete(user)
        self.db.commit()
        logger.info(f"Deleted account {user_id}")

    def get_user_response(self, user: User) -> UserResponse:
        """Convert user model to response schema.

        Args:
            user: User model.

        Returns:
            UserResponse: User response schema.
        """
        return UserResponse.model_validate(user)


def get_auth_service(db: Session) -> AuthService:
    """Factory function for AuthService.

    Args:
        db: Database session.

    Returns:
        AuthService: Auth service instance.
    """
    return AuthService(db)
