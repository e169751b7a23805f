from __future__ import annotations

import secrets

from fastapi import Header, HTTPException

from newsdesk.core.config import settings

_CHALLENGE = {"WWW-Authenticate": 'Token realm="publish"'}


def require_operator(
    x_admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """Authenticated operator id; idempotency keys are scoped to it."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required", headers=_CHALLENGE)
    if settings.AUTH_DISABLED:
        return x_user_id
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        raise HTTPException(status_code=401, detail="Authentication failed", headers=_CHALLENGE)
    return x_user_id
