"""
Database Engine and Schema.

Two tables, defined with SQLAlchemy Core:

    users        id (PK), account_status, character_count, character_limit
    user_secret  users_id (PK), token

``user_secret`` has no foreign key to ``users``: a token is registered at
login, before the first authenticated request lazily creates the user row.

Dialect-specific upserts (``ON CONFLICT``) are built by ``dialect_insert``
for SQLite and PostgreSQL, the two back ends the service is run against.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from tts_api.core.config import DatabaseConfig
from tts_api.core.logging import get_logger, info

_LOG = get_logger("tts-api.store")

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("account_status", Integer, nullable=False, default=0),
    Column("character_count", BigInteger, nullable=False, default=0),
    Column("character_limit", BigInteger, nullable=False),
)

user_secret = Table(
    "user_secret",
    metadata,
    Column("users_id", BigInteger, primary_key=True, autoincrement=False),
    Column("token", String(128), nullable=False),
)


def create_db_engine(config: DatabaseConfig) -> Engine:
    """
    Create the SQLAlchemy engine for ``config.url``.

    SQLite connections get a busy timeout and are allowed to cross
    threads, since FastAPI handles sync routes on a worker pool.
    """
    is_sqlite = config.url.startswith("sqlite")
    connect_args: dict[str, Any] = {}
    if is_sqlite:
        connect_args = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(
        config.url,
        echo=config.echo,
        pool_pre_ping=config.pool_pre_ping,
        connect_args=connect_args,
    )

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):  # pragma: no cover - driver hook
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    """Create missing tables. Existing tables are left untouched."""
    metadata.create_all(bind=engine)
    info(_LOG, "db_initialized", dialect=engine.dialect.name)


def dialect_insert(engine: Engine, table: Table):
    """
    Return a dialect ``insert()`` supporting ``on_conflict_*``, or None.

    None means the caller must fall back to catching IntegrityError.
    """
    name = engine.dialect.name
    if name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert(table)
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert(table)
    return None
