"""
Module: storefront_kernel.db.engine
Responsibility: Owns the process-wide SQLAlchemy engine and session factory
    for the storefront database, plus schema setup/teardown helpers.
Architecture position: Kernel > DB.  Imports models and triggers lazily,
    inside create_tables/drop_tables only.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  Stock and order
      read-modify-writes take explicit row locks (SELECT ... FOR UPDATE)
      in the ledger and order store, not here.
    - SQLite (tests, local tooling) has no row locks; writers are
      serialized by the database file lock.  SQLAlchemy emits BEGIN itself
      so the checkout and tracking-number SAVEPOINTs nest inside the outer
      transaction.
    - Sessions do not expire attributes on commit: services return DTOs
      built after commit, and the fulfillment scheduler reads ids after
      closing its sessions.

Failure modes:
    - RuntimeError from any accessor before init_engine_from_url().
    - OperationalError if PostgreSQL trigger installation keeps
      deadlocking (three attempts).
"""

import atexit
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from storefront_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_TRIGGER_INSTALL_ATTEMPTS = 3


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let SQLAlchemy, not pysqlite, emit BEGIN.

    pysqlite defers BEGIN until the first DML statement, so a SAVEPOINT
    issued earlier would open (and RELEASE would commit) its own
    transaction.  Taking over BEGIN keeps nested transactions nested.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _sqlite_engine(url: URL, echo: bool, timeout: int) -> Engine:
    if url.database in (None, "", ":memory:"):
        # One shared connection, or every session would see its own empty database
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
    _enable_sqlite_savepoints(engine)
    return engine


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory used by every later accessor.

    Calling it again replaces the previous engine without disposing it;
    call reset_engine() first when that matters (tests do).

    Args:
        database_url: ``postgresql://...`` in production, ``sqlite://``
            (in-memory) or ``sqlite:///path`` otherwise.
        echo: Log every SQL statement through SQLAlchemy's logger.
        pool_size, max_overflow, pool_pre_ping, pool_recycle: QueuePool
            settings, PostgreSQL only.
        pool_timeout: Seconds to wait for a pooled connection (PostgreSQL)
            or for the database lock (SQLite file).
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        _engine = _sqlite_engine(url, echo, pool_timeout)
    else:
        _engine = create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "database": url.database,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def _require_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """A new session bound to the current engine."""
    return _require_factory()()


def get_session_factory() -> sessionmaker[Session]:
    """
    The factory itself, for code that opens many sessions.

    The fulfillment scheduler and the concurrency tests open one session
    per worker thread; sessions are never shared across threads.
    """
    return _require_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Commit on clean exit, roll back and re-raise on error, always close.

    Usage:
        with session_scope() as session:
            InventoryLedger(session).manual_adjust(product_id, 5, reason="recount")
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(install_triggers: bool = True) -> None:
    """
    Create every storefront table; on PostgreSQL also install the
    append-only triggers, retrying when concurrent installs deadlock.
    """
    from storefront_kernel.db.base import Base
    import storefront_kernel.models  # noqa: F401  (registers all tables)

    engine = get_engine()
    Base.metadata.create_all(engine)

    if not (install_triggers and engine.dialect.name == "postgresql"):
        return

    from storefront_kernel.db.triggers import install_immutability_triggers

    for attempt in range(1, _TRIGGER_INSTALL_ATTEMPTS + 1):
        try:
            install_immutability_triggers(engine)
            return
        except OperationalError as exc:
            if "deadlock" not in str(exc).lower() or attempt == _TRIGGER_INSTALL_ATTEMPTS:
                raise
            logger.warning(
                "trigger_install_deadlock_retry",
                extra={"attempt": attempt, "max_attempts": _TRIGGER_INSTALL_ATTEMPTS},
            )
            engine.dispose()
            time.sleep(0.5 * attempt)


def drop_tables() -> None:
    """Drop every storefront table (and triggers on PostgreSQL).  Tests only."""
    from storefront_kernel.db.base import Base
    import storefront_kernel.models  # noqa: F401

    engine = get_engine()
    if engine.dialect.name == "postgresql":
        from storefront_kernel.db.triggers import uninstall_immutability_triggers

        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget it and its session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
