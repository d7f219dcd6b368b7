"""Server-side session store."""

import logging
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gotta_listen.auth.exceptions import SessionConflictError
from gotta_listen.db.models import UserSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Persistence for issued session tokens.

    Every write is a single statement so that concurrent requests never
    observe a half-applied revocation.
    """

    def __init__(self, db: Session):
        """Initialize session store.

        Args:
            db: Database session.
        """
        self.db = db

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def create(
        self,
        user_id: str,
        token: str,
        expires_at: datetime,
        is_persistent: bool = False,
    ) -> UserSession:
        """Insert a session row and commit it.

        Any pending changes on the database session (e.g. a freshly added
        user) are committed in the same transaction.

        Args:
            user_id: Owning user's UUID.
            token: Signed session token.
            expires_at: Expiry timestamp.
            is_persistent: Whether the session was issued with "remember me".

        Returns:
            UserSession: The created row.

        Raises:
            SessionConflictError: If the token is already stored.
        """
        session = UserSession(
            user_id=user_id,
            session_token=token,
            expires_at=expires_at,
            is_persistent=is_persistent,
        )
        self.db.add(session)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Session token conflict for user {user_id}: {e}")
            raise SessionConflictError("Session token already exists") from e
        return session

    def get(self, token: str) -> UserSession | None:
        """Get the session row for a token, expired or not."""
        return self.db.query(UserSession).filter(UserSession.session_token == token).first()

    def find_active(self, token: str) -> str | None:
        """Resolve a token to its owner if the session has not expired.

        Args:
            token: Session token.

        Returns:
            str | None: Owning user's UUID, or None if absent or expired.
        """
        row = (
            self.db.query(UserSession.user_id)
            .filter(
                UserSession.session_token == token,
                UserSession.expires_at > self._now(),
            )
            .first()
        )
        return row.user_id if row else None

    def delete(self, token: str) -> int:
        """Delete the session for a token.

        Returns:
            int: Number of rows deleted (0 if the token was unknown).
        """
        deleted = (
            self.db.query(UserSession)
            .filter(UserSession.session_token == token)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def delete_all_for_user(self, user_id: str) -> int:
        """Delete every session of a user in one statement.

        Returns:
            int: Number of rows deleted.
        """
        deleted = (
            self.db.query(UserSession)
            .filter(UserSession.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def delete_all_for_user_except(self, user_id: str, token: str | None) -> int:
        """Delete every session of a user apart from the one carrying ``token``."""
        query = self.db.query(UserSession).filter(UserSession.user_id == user_id)
        if token:
            query = query.filter(UserSession.session_token != token)
        deleted = query.delete(synchronize_session=False)
        self.db.commit()
        return deleted

    def extend(self, token: str, new_expires_at: datetime, new_token: str | None = None) -> bool:
        """Push a session's expiry forward, optionally rotating its token.

        The update only matches rows whose expiry is not later than
        ``new_expires_at``, so a session is never shortened. An equal expiry
        still matches, which lets a refresh in the same second rotate the token.

        Args:
            token: Current session token.
            new_expires_at: Requested expiry.
            new_token: Replacement token to store, if rotating.

        Returns:
            bool: True if a row was updated, False if the session is gone.
        """
        values = {UserSession.expires_at: new_expires_at}
        if new_token is not None:
            values[UserSession.session_token] = new_token

        try:
            updated = (
                self.db.query(UserSession)
                .filter(
                    UserSession.session_token == token,
                    UserSession.expires_at <= new_expires_at,
                )
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise SessionConflictError("Session token already exists") from e
        return updated > 0

    def purge_expired(self) -> int:
        """Delete all sessions whose expiry has passed.

        Returns:
            int: Number of rows deleted.
        """
        deleted = (
            self.db.query(UserSession)
            .filter(UserSession.expires_at <= self._now())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"Purged {deleted} expired sessions")
        return deleted

    def count_for_user(self, user_id: str) -> int:
        """Count the stored sessions of a user."""
        return self.db.query(UserSession).filter(UserSession.user_id == user_id).count()
