from newsdesk.idempotency.key import IdempotencyKey, InvalidIdempotencyKey
from newsdesk.idempotency.store import (
    Completed,
    Expired,
    IdempotencyStore,
    NewTransaction,
    NotFound,
    Replay,
    SavedResponse,
)

__all__ = [
    "Completed",
    "Expired",
    "IdempotencyKey",
    "IdempotencyStore",
    "InvalidIdempotencyKey",
    "NewTransaction",
    "NotFound",
    "Replay",
    "SavedResponse",
]
