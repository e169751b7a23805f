from __future__ import annotations

import json
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from newsdesk.idempotency import IdempotencyStore, InvalidIdempotencyKey
from newsdesk.models.tables import (
    SUBSCRIPTION_PENDING,
    IdempotencyRecord,
    IssueDeliveryTask,
    NewsletterIssue,
)
from newsdesk.newsletters.service import PUBLISH_ACCEPTED_MESSAGE, publish_newsletter
from newsdesk.util.time import now_utc
from tests.utils_seed import OPERATOR_HEADERS, add_subscriber


def _body(key: str | None = None) -> dict:
    return {
        "title": "Newsletter title",
        "text_content": "Newsletter body as plain text",
        "html_content": "<p>Newsletter body as HTML</p>",
        "idempotency_key": key or str(uuid.uuid4()),
    }


def _seed_subscribers(session_factory) -> None:
    with session_factory() as db:
        add_subscriber(db, email="a@x.com")
        add_subscriber(db, email="b@x.com")
        add_subscriber(db, email="pending@x.com", status=SUBSCRIPTION_PENDING)
        db.commit()


def _queued(session_factory) -> list[tuple[str, str]]:
    with session_factory() as db:
        return [
            (r.newsletter_issue_id, r.subscriber_email)
            for r in db.execute(select(IssueDeliveryTask)).scalars().all()
        ]


def _issue_count(session_factory) -> int:
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(NewsletterIssue)).scalar_one()


def test_publish_queues_one_delivery_per_confirmed_subscriber(store, session_factory):
    _seed_subscribers(session_factory)

    saved = publish_newsletter(store, owner="op", **_body())

    assert saved.status_code == 200
    payload = json.loads(saved.body)
    assert payload["success"] is True
    assert payload["message"] == PUBLISH_ACCEPTED_MESSAGE

    queued = _queued(session_factory)
    assert sorted(email for _, email in queued) == ["a@x.com", "b@x.com"]
    assert {issue_id for issue_id, _ in queued} == {payload["newsletter_issue_id"]}


def test_publish_rejects_malformed_key_before_touching_storage(store, session_factory):
    with pytest.raises(InvalidIdempotencyKey):
        publish_newsletter(store, owner="op", **_body(key="not a key"))

    with session_factory() as db:
        assert db.execute(select(func.count()).select_from(IdempotencyRecord)).scalar_one() == 0


def test_retry_replays_without_publishing_again(store, session_factory):
    _seed_subscribers(session_factory)
    body = _body()

    first = publish_newsletter(store, owner="op", **body)
    second = publish_newsletter(store, owner="op", **body)

    assert second == first
    assert _issue_count(session_factory) == 1
    assert len(_queued(session_factory)) == 2


def test_replay_is_logged_once(store, session_factory, caplog):
    body = _body()
    publish_newsletter(store, owner="op", **body)

    with caplog.at_level(logging.INFO, logger="newsdesk"):
        publish_newsletter(store, owner="op", **body)

    replays = [r for r in caplog.records if "saved response" in r.getMessage()]
    assert len(replays) == 1
    assert replays[0].name == "newsdesk.idempotency"


def test_failed_publish_rolls_back_everything(store, session_factory, monkeypatch):
    _seed_subscribers(session_factory)

    def boom(db, *, newsletter_issue_id):
        raise RuntimeError("enqueue failed")

    monkeypatch.setattr("newsdesk.newsletters.service.enqueue_delivery_tasks", boom)
    body = _body()
    with pytest.raises(RuntimeError):
        publish_newsletter(store, owner="op", **body)

    assert _issue_count(session_factory) == 0
    assert _queued(session_factory) == []

    monkeypatch.undo()
    saved = publish_newsletter(store, owner="op", **body)
    assert json.loads(saved.body)["success"] is True
    assert len(_queued(session_factory)) == 2


def test_concurrent_publishes_with_same_key_run_once(store, session_factory):
    _seed_subscribers(session_factory)
    body = _body()

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(publish_newsletter, store, owner="op", **body) for _ in range(2)]
        r1, r2 = (f.result(timeout=60) for f in futures)

    assert r1.status_code == r2.status_code == 200
    assert r1.body == r2.body
    assert _issue_count(session_factory) == 1
    assert sorted(email for _, email in _queued(session_factory)) == ["a@x.com", "b@x.com"]


# --- HTTP surface ---------------------------------------------------------------------------------


def test_http_publish_requires_authentication(client):
    r = client.post("/admin/newsletters", json=_body())
    assert r.status_code == 401

    r = client.post("/admin/newsletters", json=_body(), headers={**OPERATOR_HEADERS, "X-Admin-Token": "wrong"})
    assert r.status_code == 401


def test_http_publish_rejects_invalid_payloads(client):
    r = client.post("/admin/newsletters", json={"title": "Newsletter!"}, headers=OPERATOR_HEADERS)
    assert r.status_code == 422

    r = client.post("/admin/newsletters", json=_body(key="   "), headers=OPERATOR_HEADERS)
    assert r.status_code == 400


def test_http_publish_is_idempotent(client, session_factory):
    _seed_subscribers(session_factory)
    body = _body()

    r1 = client.post("/admin/newsletters", json=body, headers=OPERATOR_HEADERS)
    r2 = client.post("/admin/newsletters", json=body, headers=OPERATOR_HEADERS)

    assert r1.status_code == r2.status_code == 200
    assert r1.content == r2.content
    assert r1.headers.get("content-type") == r2.headers.get("content-type") == "application/json"
    assert r1.json()["success"] is True

    queue = client.get("/admin/newsletters/queue", headers=OPERATOR_HEADERS).json()
    assert queue["pending_total"] == 2
    assert queue["issues"] == [{"newsletter_issue_id": r1.json()["newsletter_issue_id"], "pending": 2}]


def test_http_concurrent_submissions_are_handled_gracefully(client, session_factory):
    _seed_subscribers(session_factory)
    body = _body()

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(client.post, "/admin/newsletters", json=body, headers=OPERATOR_HEADERS) for _ in range(2)
        ]
        r1, r2 = (f.result(timeout=60) for f in futures)

    assert r1.status_code == r2.status_code == 200
    assert r1.content == r2.content
    assert _issue_count(session_factory) == 1
    assert len(_queued(session_factory)) == 2


def test_http_same_key_for_another_operator_publishes_again(client, session_factory):
    _seed_subscribers(session_factory)
    body = _body()

    r1 = client.post("/admin/newsletters", json=body, headers=OPERATOR_HEADERS)
    r2 = client.post("/admin/newsletters", json=body, headers={**OPERATOR_HEADERS, "X-User-Id": "operator-2"})

    assert r1.json()["newsletter_issue_id"] != r2.json()["newsletter_issue_id"]
    assert _issue_count(session_factory) == 2


def test_http_publish_runs_again_after_key_expiry(client, session_factory):
    _seed_subscribers(session_factory)
    body = _body()

    r1 = client.post("/admin/newsletters", json=body, headers=OPERATOR_HEADERS)

    with session_factory() as db:
        db.execute(
            update(IdempotencyRecord)
            .where(IdempotencyRecord.idempotency_key == body["idempotency_key"])
            .values(created_at=now_utc() - timedelta(hours=25))
        )
        db.commit()

    r2 = client.post("/admin/newsletters", json=body, headers=OPERATOR_HEADERS)

    assert r1.status_code == r2.status_code == 200
    assert r1.json()["message"] == r2.json()["message"]
    assert r1.json()["newsletter_issue_id"] != r2.json()["newsletter_issue_id"]
    assert len(_queued(session_factory)) == 4


def test_http_storage_failure_is_opaque(client):
    from newsdesk.api.deps import get_idempotency_store
    from newsdesk.main import app

    def broken_session():
        raise OperationalError("INSERT", {}, Exception("database is down"))

    app.dependency_overrides[get_idempotency_store] = lambda: IdempotencyStore(broken_session)

    r = client.post("/admin/newsletters", json=_body(), headers=OPERATOR_HEADERS)
    assert r.status_code == 500
    assert r.json() == {"detail": "Something went wrong"}
