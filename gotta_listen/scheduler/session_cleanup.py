"""Expired session cleanup job."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from gotta_listen.auth.sessions import SessionStore
from gotta_listen.db.database import get_database

logger = logging.getLogger(__name__)


def purge_expired_sessions(db: Session | None = None) -> dict[str, Any]:
    """Delete all expired session rows.

    Logins already purge opportunistically; this function is called by the
    cron endpoint so that quiet periods do not leave rows behind.

    Args:
        db: Database session; one is opened on the application database
            and closed again if omitted.

    Returns:
        dict: Number of sessions purged.
    """
    owns_session = db is None
    if owns_session:
        db = get_database().session_factory()

    try:
        purged = SessionStore(db).purge_expired()
    finally:
        if owns_session:
            db.close()

    logger.info(f"Session cleanup removed {purged} rows")
    return {"sessions_purged": purged}
