"""
Database connection and session management module.

Uses SQLAlchemy for ORM operations. Supports PostgreSQL (production/Docker)
and SQLite (local development and tests).
Provides the session factory, the FastAPI session dependency and the
`transaction()` boundary used by every multi-row mutation.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from app.config import DATABASE_URL, DB_STATEMENT_TIMEOUT_MS
from app.errors import DuplicateKey, TransientStoreError
from app.logging_config import get_logger, log_with_context

logger = get_logger("db")


def build_engine(url: str):
    """
    Create an engine with pool and timeout settings suited to the backend.

    PostgreSQL gets a connection pool and a server-side statement_timeout so
    a stuck statement aborts instead of holding row locks. SQLite gets a busy
    timeout and foreign keys.
    """
    engine_kwargs = {"echo": False}

    if url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "connect_args": {
                "options": "-c statement_timeout={}".format(DB_STATEMENT_TIMEOUT_MS)
            },
        })
    elif url.startswith("sqlite"):
        # SQLite needs check_same_thread=False for FastAPI (multi-threaded)
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": DB_STATEMENT_TIMEOUT_MS / 1000,
        }

    new_engine = create_engine(url, **engine_kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(DATABASE_URL)

# Session factory - creates new database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def get_db():
    """
    FastAPI dependency that provides a database session.

    Yields a session and ensures proper cleanup after request completion.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Run the enclosed block as one atomic unit of work.

    Commits when the block finishes; on any error the session is rolled back
    before the error propagates, so callers never observe a partial change.
    Store-level failures are translated into domain errors:

    - IntegrityError  -> DuplicateKey
    - OperationalError / other DBAPIError -> TransientStoreError
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        log_with_context(logger, "WARNING", "Transaction rolled back on integrity error",
                         extra_data={"error": str(e.orig)})
        raise DuplicateKey("Record already exists") from e
    except (OperationalError, DBAPIError) as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Transaction rolled back on store error",
                         extra_data={"error": str(e)})
        raise TransientStoreError("Database temporarily unavailable") from e
    except Exception:
        db.rollback()
        raise


def create_tables():
    """
    Create all database tables directly (used for SQLite local dev).
    For PostgreSQL, use Alembic migrations instead.
    """
    Base.metadata.create_all(bind=engine)
