from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from newsdesk.core.config import settings


def make_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite") and ":memory:" in db_url:
        # For in-memory SQLite we need a single shared connection across threads.
        # StaticPool makes the same connection reused for the whole process.
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            pool_pre_ping=True,
        )
    if db_url.startswith("sqlite"):
        # File-backed SQLite: one connection per session, writers wait on the db lock.
        return create_engine(db_url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(db_url, pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)


def dialect_name(db: Session) -> str:
    return db.get_bind().dialect.name


def insert_ignore(db: Session, table):
    """INSERT ... ON CONFLICT DO NOTHING for the session's dialect."""
    if dialect_name(db) == "postgresql":
        return pg_insert(table).on_conflict_do_nothing()
    return sqlite_insert(table).on_conflict_do_nothing()


def begin_exclusive(db: Session) -> None:
    """Take the write lock up front on SQLite.

    SQLite has no row locks, so FOR UPDATE SKIP LOCKED is a no-op there;
    BEGIN IMMEDIATE serialises claimers on the database lock instead.
    Must be the first statement of the session's transaction.
    """
    if dialect_name(db) == "sqlite":
        db.execute(text("BEGIN IMMEDIATE"))
