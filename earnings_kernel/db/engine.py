"""
Module: earnings_kernel.db.engine
Responsibility: the one place the ledger store's database connection is
    configured. Holds a module-level engine and session factory, and
    provides the transactional ``session_scope()`` used by the CLI.

Invariants enforced:
    - The store only flushes. ``session_scope()`` or the caller commits.
    - In-memory SQLite uses a single shared connection (StaticPool), so
      every session in the process sees the same tables.

Failure modes:
    - RuntimeError when a session or the engine is requested before
      init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from earnings_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Ledger store engine not initialized. Call init_engine_from_url() first."


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    (Re)initialize the engine for ``database_url``.

    Any SQLAlchemy URL works; ``sqlite://`` gives a throwaway in-memory
    ledger. A previous engine is disposed first.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    url = make_url(database_url)
    kwargs: dict = {"echo": echo, "pool_pre_ping": True}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool

    _engine = create_engine(url, **kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on success, roll back on any exception.

        with session_scope() as session:
            service = EarningsService(SqlLedgerStore(session), SystemClock())
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _metadata():
    from earnings_kernel.db.base import Base
    import earnings_kernel.models  # noqa: F401  registers users/payments on Base.metadata

    return Base.metadata


def create_tables() -> None:
    """Create the ``users`` and ``payments`` tables if missing."""
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def _atexit_dispose() -> None:
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
