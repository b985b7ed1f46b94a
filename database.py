import logging
import re
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from config import DB_TIMEOUT_SECONDS, EMBEDDED_POOL_SIZE, REMOTE_POOL_SIZE

logger = logging.getLogger(__name__)

REMOTE_PREFIXES = ("postgres://", "postgresql://")

Base = declarative_base()


def regexp(pattern, value):
    """SQLite `regexp(pattern, value)`: backs the `value REGEXP pattern` operator."""
    if pattern is None or value is None:
        return False
    return re.search(pattern, value) is not None


class Store:
    """
    Handle on the backing engine.

    `single_writer` is True for the embedded SQLite engine and False for a
    PostgreSQL server; repositories use it to pick the SQL dialect variant.
    The flag is also copied into every session's `info` dict so code that
    only holds a Session can make the same choice.
    """

    def __init__(self, engine, single_writer: bool):
        self.engine = engine
        self.single_writer = single_writer
        self.secret = None
        # expire_on_commit=False keeps rows readable after the scope closes
        self.SessionLocal = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
            info={"single_writer": single_writer},
        )

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope: commit on success, rollback on error."""
        db: Session = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def close(self):
        self.engine.dispose()


def _open_remote(uri: str) -> Store:
    _, rest = uri.split("://", 1)
    timeout_ms = int(DB_TIMEOUT_SECONDS * 1000)
    engine = create_engine(
        f"postgresql+psycopg2://{rest}",
        pool_size=REMOTE_POOL_SIZE,
        max_overflow=0,
        pool_timeout=DB_TIMEOUT_SECONDS,
        pool_pre_ping=True,
        connect_args={"options": f"-c statement_timeout={timeout_ms}"},
    )
    return Store(engine, single_writer=False)


def _open_embedded(path: str) -> Store:
    engine = create_engine(
        f"sqlite:///{path}",
        poolclass=QueuePool,
        pool_size=EMBEDDED_POOL_SIZE,
        max_overflow=0,
        pool_timeout=DB_TIMEOUT_SECONDS,
        connect_args={"check_same_thread": False, "timeout": DB_TIMEOUT_SECONDS},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("regexp", 2, regexp, deterministic=True)
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return Store(engine, single_writer=True)


def open_store(uri: str) -> Store:
    """
    Open the store named by `uri`.

    postgres:// URIs open a pooled PostgreSQL engine (50 connections);
    anything else is treated as a SQLite file path opened in WAL mode
    behind a single pooled connection.
    """
    if uri.startswith(REMOTE_PREFIXES):
        store = _open_remote(uri)
    else:
        store = _open_embedded(uri)
    logger.info(
        "opened %s store (pool size %d)",
        store.engine.dialect.name,
        REMOTE_POOL_SIZE if not store.single_writer else EMBEDDED_POOL_SIZE,
    )
    return store


def insert(db: Session, table):
    """Dialect INSERT construct for `table` that supports on_conflict_do_nothing()."""
    if db.info.get("single_writer", True):
        return sqlite.insert(table)
    return postgresql.insert(table)


def get_db(request: Request):
    """
    FastAPI dependency that provides a database session from the
    application's store and makes sure it is closed after the request.
    """
    db = request.app.state.store.SessionLocal()
    try:
        yield db
    finally:
        db.close()
