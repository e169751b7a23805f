from __future__ import annotations

from datetime import timedelta

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from newsdesk.core.config import settings
from newsdesk.core.db import SessionLocal
from newsdesk.idempotency import IdempotencyStore


def get_session_factory() -> sessionmaker[Session]:
    return SessionLocal


def get_db(session_factory: sessionmaker[Session] = Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_idempotency_store(
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
) -> IdempotencyStore:
    return IdempotencyStore(session_factory, ttl=timedelta(hours=settings.IDEMPOTENCY_TTL_HOURS))
