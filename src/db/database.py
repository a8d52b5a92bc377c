from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from src.core.errors import NotesError, OperationCancelledError, StoreError
from src.db.models.base import Base

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None
_init_lock = threading.Lock()


def create_store_engine(url: str, echo: bool = False, busy_timeout: int = 30) -> Engine:
    """
    Create an engine for the learning store.

    SQLite files get their parent directory created, a busy timeout so
    concurrent writers wait instead of failing, and enforced foreign keys.
    """
    if url.startswith("sqlite"):
        db_path = url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_engine() -> Engine:
    """Get the process-wide engine (created lazily from settings)."""
    global _engine
    with _init_lock:
        if _engine is None:
            settings = get_settings()
            _engine = create_store_engine(
                settings.database_url,
                echo=settings.database_echo,
                busy_timeout=settings.sqlite_busy_timeout_seconds,
            )
    return _engine


def get_session_factory() -> sessionmaker:
    """Get the process-wide session factory bound to ``get_engine()``."""
    global _SessionLocal
    engine = get_engine()
    with _init_lock:
        if _SessionLocal is None:
            _SessionLocal = make_session_factory(engine)
    return _SessionLocal


def reset_engine() -> None:
    """Dispose the process-wide engine (for testing)."""
    global _engine, _SessionLocal
    with _init_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _SessionLocal = None


def init_db(engine: Engine | None = None) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables initialized")


@contextmanager
def session_scope(
    factory: sessionmaker | None = None,
    cancel: threading.Event | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success; rolls back on any exception and re-raises.
    Store failures surface as StoreError. A set ``cancel`` token aborts
    the transaction before commit.
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("operation cancelled before commit")
        session.commit()
    except NotesError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreError(f"store failure: {e}") from e
    except BaseException:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def read_scope(factory: sessionmaker | None = None) -> Generator[Session, None, None]:
    """Session for read-only work; never commits."""
    session = (factory or get_session_factory())()
    try:
        yield session
    except SQLAlchemyError as e:
        raise StoreError(f"store failure: {e}") from e
    finally:
        session.close()
