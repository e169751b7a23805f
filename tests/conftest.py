from __future__ import annotations

import os

# Settings() is built at import time; give it a database before anything imports newsdesk.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

import pytest

from tests.utils_seed import RecordingEmailSender


@pytest.fixture
def engine(tmp_path):
    from newsdesk.core.db import make_engine
    from newsdesk.models import tables  # noqa: F401
    from newsdesk.models.base import Base

    # File-backed so that separate sessions really are separate connections.
    eng = make_engine(f"sqlite+pysqlite:///{tmp_path / 'newsdesk.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    from newsdesk.core.db import make_session_factory

    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    from newsdesk.idempotency import IdempotencyStore

    return IdempotencyStore(session_factory)


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def client(session_factory, monkeypatch):
    from fastapi.testclient import TestClient

    from newsdesk.api.deps import get_session_factory
    from newsdesk.core.config import settings
    from newsdesk.main import app

    monkeypatch.setattr(settings, "ADMIN_TOKEN", "test-admin-token")
    monkeypatch.setattr(settings, "AUTH_DISABLED", False)

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
