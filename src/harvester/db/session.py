"""
Database Session Management

Engine construction, the process-wide session factory and the
transactional session scope used by repositories and the property store.
Every component accepts an explicit session factory so tests can point
the engine at SQLite.
"""
import threading
import time
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Generator, Optional, Tuple, Type

from sqlalchemy import create_engine, event, exc, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], Session]

TRANSIENT_ERRORS: Tuple[Type[Exception], ...] = (exc.OperationalError, exc.DisconnectionError)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None
_engine_lock = threading.Lock()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite engines skip the pool sizing options and allow use from the
    worker threads that run collections concurrently.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
        )

    @event.listens_for(engine, "invalidate")
    def _on_invalidate(dbapi_conn, connection_record, exception):
        logger.warning(
            "database_connection_dropped",
            dialect=engine.dialect.name,
            error=str(exception) if exception else None
        )

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    # Snapshots are read after commit, so instances must keep their state.
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_engine() -> Engine:
    """Return the process-wide engine, creating it from settings on first use."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = build_engine(settings.database_url, echo=settings.database_echo)
            logger.info("database_engine_created", dialect=_engine.dialect.name)
        return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    engine = get_engine()
    with _engine_lock:
        if _session_factory is None:
            _session_factory = build_session_factory(engine)
        return _session_factory


@contextmanager
def get_db_session(session_factory: Optional[SessionFactory] = None) -> Generator[Session, None, None]:
    """
    Transactional session scope: commit on success, roll back and re-raise
    on any error, always close.

    Usage:
        with get_db_session() as session:
            session.add(row)

    Args:
        session_factory: Factory to open the session with (defaults to the
            settings-configured factory)
    """
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(
            "database_transaction_rolled_back",
            error=str(e),
            error_type=type(e).__name__,
            database_error=isinstance(e, exc.SQLAlchemyError)
        )
        raise
    finally:
        session.close()


def health_check(session_factory: Optional[SessionFactory] = None) -> bool:
    """Return True when a trivial query succeeds against the database."""
    try:
        with get_db_session(session_factory) as session:
            session.execute(text("SELECT 1"))
    except exc.SQLAlchemyError as e:
        logger.error("database_unreachable", error=str(e), error_type=type(e).__name__)
        return False
    logger.debug("database_reachable")
    return True


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """Create every mapped table. Production schemas are managed by Alembic."""
    from src.harvester.db.base import Base, import_all_models

    import_all_models()
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("database_tables_created", tables=sorted(Base.metadata.tables))


def drop_all_tables(engine: Optional[Engine] = None) -> None:
    """Drop every mapped table, data included."""
    from src.harvester.db.base import Base, import_all_models

    import_all_models()
    engine = engine or get_engine()
    Base.metadata.drop_all(bind=engine)
    logger.warning("database_tables_dropped", tables=sorted(Base.metadata.tables))


def with_retry(max_retries: int = 3, retry_delay: int = 1, sleep: Callable[[float], None] = time.sleep):
    """
    Retry a database operation on transient connection errors, waiting
    retry_delay * attempt seconds between attempts.

    Usage:
        @with_retry(max_retries=3)
        def save(record):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except TRANSIENT_ERRORS as e:
                    if attempt == max_retries:
                        logger.error("database_retries_exhausted", operation=func.__name__, attempts=attempt, error=str(e))
                        raise
                    logger.warning("database_operation_retrying", operation=func.__name__, attempt=attempt, error=str(e))
                    sleep(retry_delay * attempt)
        return wrapper
    return decorator
