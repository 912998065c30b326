"""
Engine setup and transaction scopes.

Responsibility:
    Build the one process-wide SQLAlchemy engine from a URL and hand out
    sessions and transactional scopes.  The ledger, the reconciliation
    routines and the operator CLI all connect through here.

Architecture position:
    Kernel > DB.  Imports db/base.py and, lazily, the models for table
    creation.  Nothing above the kernel configures connections itself.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED; projection rows are serialized
      with ``SELECT ... FOR UPDATE`` by the projection store.
    - On SQLite the driver's implicit transactions are switched off and
      ``BEGIN`` is emitted by hand so that SAVEPOINT (used by the writer's
      insert-or-skip) behaves.  Foreign keys are enforced.
    - ``unit_of_work`` is the only place a transaction is committed.

Failure modes:
    - RuntimeError when a session is requested before
      ``init_engine_from_url()``.
    - Exceptions raised inside a unit of work propagate after rollback.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from inventory_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _install_sqlite_hooks(engine: Engine) -> None:

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> Engine:
    """
    Create the engine and session factory, replacing any previous ones.

    ``pool_size``/``max_overflow`` apply to server backends only; SQLite
    uses SQLAlchemy's default pool for file databases.
    """
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        _engine = create_engine(database_url, echo=echo)
        _install_sqlite_hooks(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    # Movements and projections are read after commit by reports and tests
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"backend": backend, "echo": echo, "pool_size": None if backend == "sqlite" else pool_size},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The factory routines draw from.

    Reconciliation routines take a factory rather than a session because
    they open one short transaction per unit of work.
    """
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def unit_of_work(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    One transaction: commit on normal exit, roll back on any exception.

    The session is always closed.  Stores and services inside the block
    only flush.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("unit_of_work_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def session_scope(factory: sessionmaker[Session] | None = None):
    """``unit_of_work`` on ``factory``, or on the module factory when omitted."""
    return unit_of_work(factory if factory is not None else get_session_factory())


def create_tables() -> None:
    """Create every ledger table and the order-effect unique indexes."""
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the factory. Used by tests."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
