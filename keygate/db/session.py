"""
Database session management.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from keygate.core.config import get_settings

settings = get_settings()


def build_engine(database_url: str, connect_timeout: int = 5):
    """
    Create an engine with bounded connect/lock waits.

    SQLite gets a busy timeout (so concurrent binds queue instead of failing) and
    thread sharing for FastAPI's threadpool; other backends get a connect timeout.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": connect_timeout},
        )

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        connect_args={"connect_timeout": connect_timeout},
    )


engine = build_engine(settings.DATABASE_URL, settings.DB_CONNECT_TIMEOUT_SECONDS)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
