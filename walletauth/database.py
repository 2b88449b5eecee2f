"""
Database connection and session management for wallet authentication.

PostgreSQL in production, SQLite for tests and local development.
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Mapping, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from walletauth.config import get_config
from walletauth.models import Base

logger = logging.getLogger(__name__)

# Global database engine and session factory
_engine: Optional[Engine] = None
_SessionFactory = None


def get_database_url(config: Optional[Mapping[str, Any]] = None) -> str:
    """
    Get database URL from configuration.

    Returns:
        Database connection URL
    """
    config = config or get_config()
    db_url = config.get("DATABASE_URL")

    if not db_url:
        # Build from components if DATABASE_URL not provided
        db_host = config.get("DB_HOST", "localhost")
        db_port = config.get("DB_PORT", 5432)
        db_user = config.get("DB_USER", "walletauth")
        db_password = config.get("DB_PASSWORD") or ""
        db_name = config.get("DB_NAME", "walletauth")

        db_url = f"postgresql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"

    return db_url


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_database(db_url: Optional[str] = None, echo: bool = False, create_tables: bool = False) -> None:
    """
    Initialize database engine and session factory.

    Args:
        db_url: Connection URL, defaults to the configured one
        echo: If True, log all SQL statements
        create_tables: If True, create all tables (use migrations in production)
    """
    global _engine, _SessionFactory

    if _engine is not None:
        logger.warning("Database already initialized")
        return

    db_url = db_url or get_database_url()

    engine_kwargs = {
        "echo": echo,
        "pool_pre_ping": True,
    }

    if db_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in db_url or db_url in ("sqlite://", "sqlite:///"):
            # One shared connection, otherwise every thread sees an empty database
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs.update(
            {
                "pool_size": 10,
                "max_overflow": 20,
                "pool_recycle": 3600,
                "connect_args": {"connect_timeout": 10, "options": "-c timezone=utc"},
            }
        )

    _engine = create_engine(db_url, **engine_kwargs)

    if db_url.startswith("sqlite"):
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)

    # Scoped sessions are thread-local
    _SessionFactory = scoped_session(sessionmaker(bind=_engine, expire_on_commit=False))

    if create_tables:
        logger.warning("Creating database tables - use migrations in production!")
        Base.metadata.create_all(_engine)

    logger.info(f"Database initialized: {db_url.split('@')[1] if '@' in db_url else db_url}")


def is_initialized() -> bool:
    return _engine is not None


def get_session() -> Session:
    """
    Get a database session.

    Raises:
        RuntimeError: If database not initialized
    """
    if _SessionFactory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")

    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope for database operations.

    Usage:
        with session_scope() as session:
            user = session.get(User, user_id)
            session.add(new_object)
            # Automatically commits on success, rolls back on error
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database transaction failed: {e}")
        raise
    finally:
        session.close()


def close_database() -> None:
    """
    Close database connections and clean up.
    """
    global _engine, _SessionFactory

    if _SessionFactory:
        _SessionFactory.remove()
        _SessionFactory = None

    if _engine:
        _engine.dispose()
        _engine = None

    logger.info("Database connections closed")


def check_database_health() -> dict:
    """
    Check database connection health.

    Returns:
        Dictionary with health status
    """
    try:
        with session_scope() as session:
            session.execute(text("SELECT 1"))

        return {"status": "healthy", "connected": True}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "connected": False, "error": str(e)}
