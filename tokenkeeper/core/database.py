"""Database engine configuration.

The token tables live in a relational store reached through SQLModel. Each
store call opens its own session and commits once, so the engine is the
only shared object.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: lets request threads read credentials
      while the reaper deletes expired authorization attempts.

    - **Foreign Keys**: enforced so pending authorizations and credentials
      cannot point at a principal that does not exist.

    - **check_same_thread=False**: FastAPI runs sync handlers in a
      threadpool and the reaper runs on its own thread.
"""

from sqlalchemy import event as sa_event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from tokenkeeper.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, applying SQLite pragmas when the URL is SQLite."""
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    new_engine = create_engine(database_url, connect_args=connect_args, echo=echo)
    if is_sqlite:
        sa_event.listen(new_engine, "connect", set_sqlite_pragma)
    return new_engine


def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine(settings.database_url, echo=settings.debug)


def create_db_and_tables(target: Engine | None = None):
    """Create all database tables."""
    # Import models so their tables are registered on the metadata
    import tokenkeeper.models  # noqa: F401

    SQLModel.metadata.create_all(target or engine)
