"""Database engine and session management for opsflow.

`DATABASE_URL` selects the backend. SQLite (the default) serves local runs and
tests; PostgreSQL is used when several engine instances share one store.
"""

import os
from typing import Iterator
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./opsflow.db")


def _is_sqlite_url(database_url: str) -> bool:
    return (database_url or "").startswith("sqlite")


def _is_memory_url(database_url: str) -> bool:
    return _is_sqlite_url(database_url) and (":memory:" in database_url or database_url.rstrip("/") == "sqlite:")


def get_engine_kwargs(database_url: str) -> dict:
    """Keyword arguments for `create_engine`, derived from the URL and environment.

    Kept separate from engine creation so it can be checked without a
    database.
    """
    kwargs: dict = {
        "echo": os.getenv("OPSFLOW_SQL_ECHO", "false").lower() == "true",
        "pool_pre_ping": True,
    }
    if _is_sqlite_url(database_url):
        # Sessions are opened from FastAPI's threadpool.
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_url(database_url):
            # One shared connection, or every session would see its own empty database.
            kwargs["poolclass"] = StaticPool
        return kwargs

    kwargs.update(
        pool_size=int(os.getenv("OPSFLOW_DB_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("OPSFLOW_DB_MAX_OVERFLOW", "5")),
        pool_timeout=int(os.getenv("OPSFLOW_DB_POOL_TIMEOUT_SEC", "30")),
    )
    return kwargs


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **get_engine_kwargs(database_url))


engine = build_engine(DATABASE_URL)


@event.listens_for(Engine, "connect")
def _configure_sqlite(dbapi_conn, connection_record):
    if "sqlite" not in type(dbapi_conn).__module__:
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    if not _is_memory_url(DATABASE_URL):
        cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """Request-scoped session (FastAPI dependency)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def alembic_config(database_url: str = DATABASE_URL):
    """Alembic config pointed at `database_url` (ini path from `ALEMBIC_INI`)."""
    from alembic.config import Config

    cfg = Config(os.getenv("ALEMBIC_INI", "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def init_db():
    """Create or migrate the schema.

    With `RUN_MIGRATIONS=true` on a server database the schema is brought to
    the Alembic head; otherwise tables are created directly from the ORM
    metadata.
    """
    if os.getenv("RUN_MIGRATIONS", "false").lower() == "true" and not _is_sqlite_url(DATABASE_URL):
        from alembic import command

        command.upgrade(alembic_config(), "head")
        return

    from opsflow.database import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
