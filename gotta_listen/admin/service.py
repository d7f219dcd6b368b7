"""Admin service layer for account lifecycle operations."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gotta_listen.admin.schemas import UserAdminResponse, UserUpdateAdmin
from gotta_listen.auth.service import (
    AuthService,
    validate_password_strength,
    validate_username,
)
from gotta_listen.auth.sessions import SessionStore
from gotta_listen.auth.utils import get_password_hash
from gotta_listen.db.models import User

logger = logging.getLogger(__name__)


class AdminService:
    """Service class for admin operations on user accounts.

    Role and ban changes revoke the affected user's sessions where needed;
    an admin can never demote, ban or delete their own account.
    """

    def __init__(self, db: Session, admin: User):
        """Initialize admin service.

        Args:
            db: Database session.
            admin: The admin performing the operations.
        """
        self.db = db
        self.admin_id = admin.id
        self.sessions = SessionStore(db)

    def _ensure_not_self(self, user_id: str, action: str) -> None:
        if user_id == self.admin_id:
            raise ValueError(f"You cannot {action} your own account")

    def to_response(self, user: User) -> UserAdminResponse:
        """Convert user model to admin response schema."""
        response = UserAdminResponse.model_validate(user)
        response.active_sessions = self.sessions.count_for_user(user.id)
        return response

    def list_users(self) -> list[UserAdminResponse]:
        """List all users, newest first.

        Returns:
            list: Users with ban state and session counts.
        """
        users = self.db.query(User).order_by(User.created_at.desc()).all()
        return [self.to_response(u) for u in users]

    def get_user(self, user_id: str) -> User | None:
        """Get a user by ID.

        Args:
            user_id: User UUID.

        Returns:
            User | None: User if found.
        """
        return self.db.query(User).filter(User.id == user_id).first()

    def update_user(self, user_id: str, data: UserUpdateAdmin) -> User | None:
        """Update a user's profile, role or password.

        Args:
            user_id: User UUID.
            data: Update data.

        Returns:
            User | None: Updated user if found.

        Raises:
            ValueError: If a value is invalid, already taken, or the admin
                tries to remove their own admin rights.
        """
        user = self.get_user(user_id)
        if not user:
            return None

        email = data.email.strip() if data.email is not None else None
        username = data.username.strip() if data.username is not None else None

        if email is not None and "@" not in email:
            raise ValueError("Please enter a valid email address")
        if username is not None:
            error = validate_username(username)
            if error:
                raise ValueError(error.message)

        conflict = AuthService(self.db).find_conflict(
            email if email != user.email else None,
            username if username != user.username else None,
            exclude_user_id=user.id,
        )
        if conflict:
            raise ValueError(conflict.message)

        if data.is_admin is False and user.id == self.admin_id:
            raise ValueError("You cannot remove your own admin rights")

        revoke_sessions = False
        if data.new_password:
            error = validate_password_strength(data.new_password, label="New password")
            if error:
                raise ValueError(error.message)
            user.password_hash = get_password_hash(data.new_password)
            revoke_sessions = True

        if email is not None:
            user.email = email
        if username is not None:
            user.username = username
        if data.display_name is not None:
            user.display_name = data.display_name.strip()
        for field in ("bio", "country", "state", "city"):
            value = getattr(data, field)
            if value is not None:
                setattr(user, field, value.strip() or None)
        if data.is_admin is not None:
            user.is_admin = data.is_admin

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ValueError("An account with this email or username already exists") from e

        if revoke_sessions:
            self.sessions.delete_all_for_user(user.id)

        self.db.refresh(user)
        logger.info(f"Admin {self.admin_id} updated user {user.id}")
        return user

    def set_admin(self, user_id: str, is_admin: bool) -> User | None:
        """Grant or revoke admin rights.

        Args:
            user_id: User UUID.
            is_admin: New role flag.

        Returns:
            User | None: Updated user if found.

        Raises:
            ValueError: If the admin tries to demote themselves.
        """
        if not is_admin:
            self._ensure_not_self(user_id, "remove admin rights from")

        user = self.get_user(user_id)
        if not user:
            return None

        user.is_admin = is_admin
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Admin {self.admin_id} set is_admin={is_admin} for user {user.id}")
        return user

    def ban_user(self, user_id: str, duration_days: int, ip_ban: bool = False) -> User | None:
        """Ban a user and revoke all of their sessions.

        Args:
            user_id: User UUID.
            duration_days: Length of the ban in days; 0 bans permanently.
            ip_ban: Record the user's last login IP as banned.

        Returns:
            User | None: Banned user if found.

        Raises:
            ValueError: If the admin tries to ban themselves.
        """
        self._ensure_not_self(user_id, "ban")

        user = self.get_user(user_id)
        if not user:
            return None

        user.is_banned = True
        if duration_days > 0:
            user.banned_until = datetime.now(UTC) + timedelta(days=duration_days)
        else:
            user.banned_until = None

        if ip_ban:
            if user.last_login_ip:
                user.banned_ip = user.last_login_ip
            else:
                logger.warning(
                    f"Could not retrieve last_login_ip for user {user.id}. "
                    "IP ban might not be effective."
                )
        else:
            user.banned_ip = None

        self.db.commit()
        revoked = self.sessions.delete_all_for_user(user.id)
        self.db.refresh(user)

        logger.info(
            f"Admin {self.admin_id} banned user {user.id} "
            f"({'permanently' if duration_days == 0 else f'{duration_days} days'}), "
            f"revoked {revoked} sessions"
        )
        return user

    def unban_user(self, user_id: str) -> User | None:
        """Lift a ban.

        Args:
            user_id: User UUID.

        Returns:
            User | None: Unbanned user if found.
        """
        user = self.get_user(user_id)
        if not user:
            return None

        user.is_banned = False
        user.banned_until = None
        user.banned_ip = None
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Admin {self.admin_id} unbanned user {user.id}")
        return user

    def delete_user(self, user_id: str) -> bool:
        """Delete a user and all of their sessions.

        Args:
            user_id: User UUID.

        Returns:
            bool: True if deleted, False if not found.

        Raises:
            ValueError: If the admin tries to delete themselves.
        """
        self._ensure_not_self(user_id, "delete")

        user = self.get_user(user_id)
        if not user:
            return False

        AuthService(self.db).delete_account(user)
        logger.info(f"Admin {self.admin_id} deleted user {user_id}")
        return True


def get_admin_service(db: Session, admin: User) -> AdminService:
    """Factory function for AdminService.

    Args:
        db: Database session.
        admin: The admin performing the operations.

    Returns:
        AdminService: Admin service instance.
    """
    return AdminService(db, admin)
