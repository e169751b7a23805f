from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from newsdesk.api.deps import get_db, get_idempotency_store
from newsdesk.core.security import require_operator
from newsdesk.idempotency import IdempotencyStore, InvalidIdempotencyKey
from newsdesk.newsletters.service import publish_newsletter
from newsdesk.outbox.service import pending_deliveries

log = logging.getLogger("newsdesk.api")

router = APIRouter()


class PublishNewsletterIn(BaseModel):
    title: str
    text_content: str
    html_content: str
    idempotency_key: str


@router.post("")
def publish(
    body: PublishNewsletterIn,
    operator: str = Depends(require_operator),
    store: IdempotencyStore = Depends(get_idempotency_store),
) -> Response:
    try:
        saved = publish_newsletter(
            store,
            owner=operator,
            idempotency_key=body.idempotency_key,
            title=body.title,
            text_content=body.text_content,
            html_content=body.html_content,
        )
    except InvalidIdempotencyKey as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError:
        log.exception("Failed to publish newsletter issue (user=%s)", operator)
        raise HTTPException(status_code=500, detail="Something went wrong")

    return saved.to_response()


@router.get("/queue")
def delivery_queue(operator: str = Depends(require_operator), db: Session = Depends(get_db)) -> dict:
    pending = pending_deliveries(db)
    return {
        "pending_total": sum(pending.values()),
        "issues": [{"newsletter_issue_id": issue_id, "pending": n} for issue_id, n in pending.items()],
    }
