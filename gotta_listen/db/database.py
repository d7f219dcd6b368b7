"""Database handle with an explicit open/close lifecycle.

The application opens the database in its lifespan and disposes the engine
on shutdown. Request handlers get sessions through the ``get_db`` dependency,
which tests override with their own session.
"""

import logging
from collections.abc import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from gotta_listen.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Build an engine suited to the database backend.

    Args:
        database_url: SQLAlchemy database URL.
        echo: Log every SQL statement.

    Returns:
        Engine: Configured engine.
    """
    engine_kwargs = {"echo": echo}

    if database_url.startswith("sqlite"):
        # Connections are used from the request threadpool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs.update(
            {
                "pool_pre_ping": True,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_recycle": 3600,
            }
        )

    return create_engine(database_url, **engine_kwargs)


def config_file_url(database_url: str) -> str:
    """Escape a database URL for ini-style configs such as alembic.ini.

    configparser treats "%" as interpolation, and URL-encoded passwords contain it.
    """
    return database_url.replace("%", "%%")


class Database:
    """An engine plus the session factory bound to it.

    Attributes:
        engine: SQLAlchemy engine.
        session_factory: Factory producing sessions bound to ``engine``.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(autoflush=False, bind=engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Create a database handle from application settings."""
        return cls(create_db_engine(settings.database_url, echo=settings.debug))

    def create_all(self) -> None:
        """Create all tables that do not exist yet (development only)."""
        from gotta_listen.db.models import Base

        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()


_database: Database | None = None


def open_database(settings: Settings | None = None) -> Database:
    """Open the application database if it is not open already.

    Tables are created directly only in debug mode; other environments run
    Alembic migrations.

    Args:
        settings: Settings to use, defaults to ``get_settings()``.

    Returns:
        Database: The open database.
    """
    global _database

    if _database is None:
        settings = settings or get_settings()
        database = Database.from_settings(settings)
        if settings.debug:
            database.create_all()
        _database = database
        logger.info(f"Opened database ({database.engine.url.get_backend_name()})")
    return _database


def close_database() -> None:
    """Dispose the application database; a no-op when it is not open."""
    global _database

    if _database is not None:
        _database.dispose()
        _database = None
        logger.info("Closed database")


def get_database() -> Database:
    """Get the open application database.

    Raises:
        RuntimeError: If ``open_database()`` has not been called.
    """
    if _database is None:
        raise RuntimeError("Database is not open; call open_database() first")
    return _database


def get_db() -> Generator[Session, None, None]:
    """Get database session.

    Yields:
        Session: SQLAlchemy session.
    """
    db = get_database().session_factory()
    try:
        yield db
    finally:
        db.close()
