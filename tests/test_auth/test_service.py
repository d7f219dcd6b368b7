"""Tests for the authentication service."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.orm import Session

from gotta_listen.auth.schemas import UserLogin, UserRegister
from gotta_listen.auth.service import (
    INVALID_CREDENTIALS_MESSAGE,
    AuthErrorKind,
    AuthService,
)
from gotta_listen.auth.utils import decode_session_token, verify_password
from gotta_listen.db.models import User, UserSession, as_utc

from conftest import USER_PASSWORD


@pytest.fixture
def service(db: Session) -> AuthService:
    return AuthService(db)


def _register(service: AuthService, **overrides):
    data = {
        "email": "alice@example.com",
        "username": "alice",
        "display_name": "Alice",
        "password": "secret1",
    }
    data.update(overrides)
    return service.register(UserRegister(**data), client_ip="203.0.113.7")


class TestRegister:
    """Tests for registration."""

    def test_register_success(self, service: AuthService, db: Session):
        result = _register(service)

        assert result.ok
        assert result.redirect_to == "/feed"
        assert result.user.username == "alice"
        assert result.user.last_login_ip == "203.0.113.7"
        assert verify_password("secret1", result.user.password_hash)

        claims = decode_session_token(result.session.token)
        assert claims.user_id == result.user.id
        assert db.query(UserSession).filter(UserSession.user_id == result.user.id).count() == 1

    def test_register_strips_whitespace(self, service: AuthService):
        result = _register(service, email="  alice@example.com ", username=" alice ")
        assert result.ok
        assert result.user.email == "alice@example.com"
        assert result.user.username == "alice"

    def test_register_stores_location(self, service: AuthService):
        result = _register(service, country="Italy", state="", city="Rome")
        assert result.user.country == "Italy"
        assert result.user.state is None
        assert result.user.city == "Rome"

    @pytest.mark.parametrize(
        "overrides, field, message",
        [
            ({"display_name": ""}, None, "All required fields must be filled out"),
            ({"password": "short"}, "password", "Password must be at least 6 characters long"),
            ({"password": "x" * 100}, "password", "Password is too long (at most 72 bytes)"),
            ({"password": "\u00e9" * 40}, "password", "Password is too long (at most 72 bytes)"),
            ({"email": "alice.example.com"}, "email", "Please enter a valid email address"),
            ({"username": "al"}, "username", "Username must be at least 3 characters long"),
            (
                {"username": "alice!"},
                "username",
                "Username can only contain letters, numbers and underscores",
            ),
        ],
    )
    def test_register_validation(
        self, service: AuthService, db: Session, overrides, field, message
    ):
        result = _register(service, **overrides)

        assert not result.ok
        assert result.error.kind == AuthErrorKind.VALIDATION
        assert result.error.field == field
        assert result.error.message == message
        assert db.query(User).count() == 0

    def test_register_duplicate_email(self, service: AuthService, db: Session):
        assert _register(service).ok

        result = _register(service, username="alice2")

        assert result.error.kind == AuthErrorKind.CONFLICT
        assert result.error.field == "email"
        assert result.error.message == "An account with this email already exists"
        assert db.query(User).count() == 1

    def test_register_duplicate_username(self, service: AuthService):
        assert _register(service).ok

        result = _register(service, email="other@example.com")

        assert result.error.kind == AuthErrorKind.CONFLICT
        assert result.error.field == "username"
        assert result.error.message == "This username is already taken"

    def test_register_unique_constraint_race(
        self, service: AuthService, db: Session, test_user: User, monkeypatch
    ):
        """A duplicate that slips past the pre-check becomes a conflict error."""
        real_find_conflict = AuthService.find_conflict
        calls = []

        def racing_find_conflict(self, email, username, exclude_user_id=None):
            calls.append(email)
            if len(calls) == 1:
                return None
            return real_find_conflict(self, email, username, exclude_user_id)

        monkeypatch.setattr(AuthService, "find_conflict", racing_find_conflict)

        result = _register(service, email=test_user.email, username="racer")

        assert result.error.kind == AuthErrorKind.CONFLICT
        assert result.error.field == "email"
        assert db.query(User).count() == 1
        assert db.query(UserSession).count() == 0


class TestLogin:
    """Tests for login."""

    def test_login_success(self, service: AuthService, test_user: User):
        result = service.login(
            UserLogin(email=test_user.email, password=USER_PASSWORD), client_ip="198.51.100.2"
        )

        assert result.ok
        assert result.user.id == test_user.id
        assert result.redirect_to == "/feed"
        assert result.session.max_age == 7 * 24 * 3600
        assert result.user.last_login_ip == "198.51.100.2"
        assert result.user.last_login_at is not None

    def test_login_remember_me(self, service: AuthService, db: Session, test_user: User):
        result = service.login(
            UserLogin(email=test_user.email, password=USER_PASSWORD, remember_me=True)
        )

        assert result.session.max_age == 365 * 24 * 3600
        row = db.query(UserSession).filter(UserSession.session_token == result.session.token).one()
        assert row.is_persistent is True

    def test_unknown_email_and_wrong_password_look_the_same(
        self, service: AuthService, test_user: User
    ):
        unknown = service.login(UserLogin(email="nobody@example.com", password=USER_PASSWORD))
        wrong = service.login(UserLogin(email=test_user.email, password="wrongpass"))

        assert unknown.error.message == wrong.error.message == INVALID_CREDENTIALS_MESSAGE
        assert unknown.error.kind == wrong.error.kind == AuthErrorKind.INVALID_CREDENTIALS
        assert unknown.error.field is None and wrong.error.field is None

    def test_login_with_too_long_password(self, service: AuthService, test_user: User):
        known = service.login(UserLogin(email=test_user.email, password="y" * 100))
        unknown = service.login(UserLogin(email="nobody@example.com", password="y" * 100))

        assert known.error.kind == unknown.error.kind == AuthErrorKind.INVALID_CREDENTIALS
        assert known.error.message == unknown.error.message == INVALID_CREDENTIALS_MESSAGE

    def test_login_requires_both_fields(self, service: AuthService):
        result = service.login(UserLogin(email="", password=""))
        assert result.error.kind == AuthErrorKind.VALIDATION
        assert result.error.message == "Please enter both email and password"

    def test_login_rejects_invalid_email(self, service: AuthService):
        result = service.login(UserLogin(email="alice", password="secret1"))
        assert result.error.field == "email"

    def test_login_banned_until_future(self, service: AuthService, db: Session, test_user: User):
        banned_until = datetime(2999, 1, 2, 3, 4, tzinfo=UTC)
        test_user.is_banned = True
        test_user.banned_until = banned_until
        db.commit()

        result = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))

        assert result.error.kind == AuthErrorKind.BANNED
        assert result.error.message == "You are banned until 2999-01-02 03:04 UTC."
        assert db.query(UserSession).count() == 0

    def test_login_banned_permanently(self, service: AuthService, db: Session, test_user: User):
        test_user.is_banned = True
        test_user.banned_until = None
        db.commit()

        result = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))

        assert result.error.kind == AuthErrorKind.BANNED
        assert result.error.message == "Your account has been permanently banned."

    def test_login_ban_checked_before_password(
        self, service: AuthService, db: Session, test_user: User
    ):
        test_user.is_banned = True
        db.commit()

        result = service.login(UserLogin(email=test_user.email, password="wrongpass"))

        assert result.error.kind == AuthErrorKind.BANNED

    def test_login_after_ban_expired(self, service: AuthService, db: Session, test_user: User):
        test_user.is_banned = True
        test_user.banned_until = datetime.now(UTC) - timedelta(days=1)
        db.commit()

        result = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))

        assert result.ok

    def test_login_purges_expired_sessions(
        self, service: AuthService, db: Session, test_user: User
    ):
        db.add(
            UserSession(
                user_id=test_user.id,
                session_token="stale-token",
                expires_at=datetime.now(UTC) - timedelta(days=1),
            )
        )
        db.commit()

        service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))

        assert db.query(UserSession).filter(UserSession.session_token == "stale-token").count() == 0


class TestResolveUser:
    """Tests for turning a session token into a user."""

    def test_resolve_valid_session(self, service: AuthService):
        result = _register(service)
        assert service.resolve_user(result.session.token).username == "alice"

    def test_resolve_missing_token(self, service: AuthService):
        assert service.resolve_user(None) is None
        assert service.resolve_user("") is None

    def test_resolve_revoked_session(self, service: AuthService):
        result = _register(service)
        service.logout(result.session.token)
        assert service.resolve_user(result.session.token) is None

    def test_resolve_expired_row(self, service: AuthService, db: Session):
        result = _register(service)
        row = db.query(UserSession).one()
        row.expires_at = datetime.now(UTC) - timedelta(seconds=1)
        db.commit()

        assert service.resolve_user(result.session.token) is None

    def test_resolve_rejects_token_stored_for_another_user(
        self, service: AuthService, db: Session, test_user: User
    ):
        result = _register(service)
        row = db.query(UserSession).one()
        row.user_id = test_user.id
        db.commit()

        assert service.resolve_user(result.session.token) is None

    def test_ban_invalidates_live_session(self, service: AuthService, db: Session):
        result = _register(service)
        user = result.user
        user.is_banned = True
        user.banned_until = None
        db.commit()

        assert service.resolve_user(result.session.token) is None
        # The banned user's session row is revoked
        assert db.query(UserSession).count() == 0


class TestLogout:
    """Tests for logout and logout-all."""

    def test_logout_twice(self, service: AuthService):
        result = _register(service)
        assert service.logout(result.session.token) is True
        assert service.logout(result.session.token) is False
        assert service.logout(None) is False

    def test_logout_all_devices(self, service: AuthService, test_user: User):
        first = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))
        second = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))

        assert service.logout_all_devices(first.session.token) == 2

        assert service.resolve_user(first.session.token) is None
        assert service.resolve_user(second.session.token) is None

    def test_logout_all_with_invalid_token(self, service: AuthService, test_user: User):
        other = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))

        assert service.logout_all_devices("garbage") == 0
        assert service.logout_all_devices(None) == 0
        assert service.resolve_user(other.session.token) is not None


class TestRefresh:
    """Tests for session refresh."""

    def _age_session(self, db: Session, token: str, days: int = 1) -> None:
        row = db.query(UserSession).filter(UserSession.session_token == token).one()
        row.expires_at = datetime.now(UTC) + timedelta(days=days)
        db.commit()

    def test_refresh_rotates_and_extends(self, service: AuthService, db: Session):
        result = _register(service)
        self._age_session(db, result.session.token)

        issued = service.refresh(result.session.token)

        assert issued is not None
        assert issued.token != result.session.token
        assert service.resolve_user(result.session.token) is None
        assert service.resolve_user(issued.token).id == result.user.id
        assert issued.expires_at > datetime.now(UTC) + timedelta(days=6)

    def test_refresh_keeps_remember_me_lifetime(
        self, service: AuthService, db: Session, test_user: User
    ):
        result = service.login(
            UserLogin(email=test_user.email, password=USER_PASSWORD, remember_me=True)
        )
        self._age_session(db, result.session.token, days=10)

        issued = service.refresh(result.session.token)

        assert issued.max_age == 365 * 24 * 3600
        row = db.query(UserSession).filter(UserSession.session_token == issued.token).one()
        assert row.is_persistent is True
        assert as_utc(row.expires_at) > datetime.now(UTC) + timedelta(days=300)

    def test_refresh_in_same_second_as_login(self, service: AuthService):
        result = _register(service)

        issued = service.refresh(result.session.token)

        assert issued is not None
        assert issued.expires_at >= result.session.expires_at
        assert service.resolve_user(issued.token).id == result.user.id

    def test_refresh_never_shortens(self, service: AuthService, db: Session):
        result = _register(service)
        self._age_session(db, result.session.token, days=30)

        assert service.refresh(result.session.token) is None
        assert service.resolve_user(result.session.token) is not None

    def test_refresh_invalid_session(self, service: AuthService):
        assert service.refresh(None) is None
        assert service.refresh("garbage") is None


class TestChangePassword:
    """Tests for password changes."""

    def test_change_password_signs_out_other_sessions(
        self, service: AuthService, test_user: User
    ):
        current = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))
        other = service.login(UserLogin(email=test_user.email, password=USER_PASSWORD))

        error = service.change_password(
            test_user, USER_PASSWORD, "newpassword1", keep_token=current.session.token
        )

        assert error is None
        assert verify_password("newpassword1", test_user.password_hash)
        assert service.resolve_user(current.session.token) is not None
        assert service.resolve_user(other.session.token) is None

    def test_change_password_wrong_current(self, service: AuthService, test_user: User):
        error = service.change_password(test_user, "wrongpass", "newpassword1")
        assert error.field == "current_password"
        assert verify_password(USER_PASSWORD, test_user.password_hash)

    def test_change_password_too_short(self, service: AuthService, test_user: User):
        error = service.change_password(test_user, USER_PASSWORD, "short")
        assert error.kind == AuthErrorKind.VALIDATION
        assert error.field == "new_password"

    def test_change_password_too_long(self, service: AuthService, test_user: User):
        error = service.change_password(test_user, USER_PASSWORD, "z" * 73)

        assert error.field == "new_password"
        assert error.message == "New password is too long (at most 72 bytes)"
        assert verify_password(USER_PASSWORD, test_user.password_hash)


class TestDeleteAccount:
    """Tests for account deletion."""

    def test_delete_account_removes_sessions(self, service: AuthService, db: Session):
        result = _register(service)

        service.delete_account(result.user)

        assert db.query(User).count() == 0
        assert db.query(UserSession).count() == 0
        assert service.resolve_user(result.session.token) is None
