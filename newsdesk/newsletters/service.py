from __future__ import annotations

import logging

from fastapi.responses import JSONResponse

from newsdesk.idempotency import IdempotencyKey, IdempotencyStore, Replay, SavedResponse
from newsdesk.outbox.service import enqueue_delivery_tasks, insert_newsletter_issue

log = logging.getLogger("newsdesk.newsletters")

PUBLISH_ACCEPTED_MESSAGE = "The newsletter issue has been accepted - emails will go out shortly."


def publish_newsletter(
    store: IdempotencyStore,
    *,
    owner: str,
    idempotency_key: str,
    title: str,
    text_content: str,
    html_content: str,
) -> SavedResponse:
    """Persist an issue and queue its deliveries, at most once per (owner, key).

    Raises InvalidIdempotencyKey before touching storage.
    """

    key = IdempotencyKey.parse(idempotency_key)

    action = store.claim(owner, key)
    if isinstance(action, Replay):
        return action.response

    db = action.db
    try:
        issue_id = insert_newsletter_issue(db, title=title, text_content=text_content, html_content=html_content)
        queued = enqueue_delivery_tasks(db, newsletter_issue_id=issue_id)
        log.info("Publishing newsletter issue %s to %s confirmed subscribers", issue_id, queued)

        response = SavedResponse.from_response(
            JSONResponse(
                status_code=200,
                content={"success": True, "message": PUBLISH_ACCEPTED_MESSAGE, "newsletter_issue_id": issue_id},
            )
        )
    except Exception:
        store.abandon(db)
        raise

    return store.finalize(db, owner, key, response)
