from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from redis import Redis
from sqlalchemy import text

from newsdesk.api.routers.newsletters import router as newsletters_router
from newsdesk.core.config import settings
from newsdesk.core.db import engine
from newsdesk.core.logging import configure_logging

configure_logging(settings.LOG_LEVEL)
log = logging.getLogger("newsdesk")

app = FastAPI(title=settings.APP_NAME)


def _check_database() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        log.warning("Health: database unreachable", exc_info=True)
        return False


def _check_redis() -> bool:
    try:
        r = Redis.from_url(settings.REDIS_URL, socket_connect_timeout=1, socket_timeout=1)
        return bool(r.ping())
    except Exception:
        log.warning("Health: redis unreachable", exc_info=True)
        return False


@app.get("/health")
def health() -> dict[str, Any]:
    deps = {
        "database": _check_database(),
        "redis": _check_redis(),
    }
    return {"ok": all(deps.values()), "deps": deps, "app": settings.APP_NAME}


app.include_router(newsletters_router, prefix="/admin/newsletters", tags=["newsletters"])
