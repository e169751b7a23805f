from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Union

from sqlalchemy import delete, update
from sqlalchemy.orm import Session, sessionmaker
from starlette.responses import Response

from newsdesk.core.db import insert_ignore
from newsdesk.idempotency.key import IdempotencyKey
from newsdesk.models.tables import IdempotencyRecord
from newsdesk.util.time import as_utc, now_utc

log = logging.getLogger("newsdesk.idempotency")

DEFAULT_TTL = timedelta(hours=24)


@dataclass(frozen=True)
class SavedResponse:
    """HTTP-shaped response as persisted: raw header pairs, duplicates kept."""

    status_code: int
    headers: list[tuple[bytes, bytes]]
    body: bytes

    @classmethod
    def from_response(cls, response: Response) -> "SavedResponse":
        return cls(
            status_code=response.status_code,
            headers=[(bytes(k), bytes(v)) for k, v in response.raw_headers],
            body=bytes(response.body),
        )

    def to_response(self) -> Response:
        response = Response(content=self.body, status_code=self.status_code)
        response.raw_headers = list(self.headers)
        return response


def _encode_headers(headers: list[tuple[bytes, bytes]]) -> list[list[str]]:
    # latin-1 maps every byte to one code point, so this is lossless.
    return [[k.decode("latin-1"), v.decode("latin-1")] for k, v in headers]


def _decode_headers(raw: list | None) -> list[tuple[bytes, bytes]]:
    return [(k.encode("latin-1"), v.encode("latin-1")) for k, v in raw or []]


# Claim outcomes.
@dataclass
class NewTransaction:
    """The caller owns `db` and must finalize() or abandon() it."""

    db: Session


@dataclass(frozen=True)
class Replay:
    response: SavedResponse


# Fetch outcomes.
@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Expired:
    pass


@dataclass(frozen=True)
class Completed:
    response: SavedResponse


ClaimResult = Union[NewTransaction, Replay]
FetchResult = Union[NotFound, Expired, Completed]


class IdempotencyStore:
    """Per-(owner, key) deduplication of write requests.

    Claim inserts the key with ON CONFLICT DO NOTHING inside a fresh
    transaction. Whoever inserted the row runs the business logic on that
    transaction and completes it with finalize(), which commits the
    business writes and the saved response together. Everyone else replays
    the saved response.
    """

    def __init__(self, session_factory: sessionmaker[Session], *, ttl: timedelta = DEFAULT_TTL) -> None:
        self._session_factory = session_factory
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def claim(self, owner: str, key: IdempotencyKey) -> ClaimResult:
        db = self._session_factory()
        try:
            if self._insert_claim(db, owner, key):
                return NewTransaction(db)

            # The competing writer may hold an uncommitted row: read on a separate session.
            state = self._read(owner, key, discard_expired=False)

            if isinstance(state, Expired):
                log.info("Idempotency key expired - deleting idempotency record (user=%s key=%s)", owner, key)
                db.execute(self._where(delete(IdempotencyRecord), owner, key))
                if self._insert_claim(db, owner, key):
                    return NewTransaction(db)
                # Another request reclaimed the key first.
                state = self._read(owner, key, discard_expired=False)

            if isinstance(state, Completed):
                self.abandon(db)
                log.info("Returning saved response (user=%s key=%s status=%s)", owner, key, state.response.status_code)
                return Replay(state.response)

            # TODO: make this a blocking read (SELECT ... FOR UPDATE) once we accept readers queueing behind writers.
            log.warning("Saved response could not be retrieved (user=%s key=%s); processing again", owner, key)
            return NewTransaction(db)
        except Exception:
            self.abandon(db)
            raise

    def fetch(self, owner: str, key: IdempotencyKey) -> FetchResult:
        return self._read(owner, key, discard_expired=True)

    def finalize(self, db: Session, owner: str, key: IdempotencyKey, response: SavedResponse) -> SavedResponse:
        try:
            result = db.execute(
                self._where(update(IdempotencyRecord), owner, key).values(
                    response_status_code=response.status_code,
                    response_headers=_encode_headers(response.headers),
                    response_body=response.body,
                )
            )
            if result.rowcount == 0:
                # Only reachable through the in-flight race in claim(): our row was deleted and
                # not re-inserted. Business writes still commit without a saved response, so a
                # retry with this key is processed again. Blocking reads would close this.
                log.warning("No idempotency record to complete (user=%s key=%s)", owner, key)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
        return response

    def abandon(self, db: Session) -> None:
        """Roll back a claimed transaction; the key becomes claimable again."""
        try:
            db.rollback()
        finally:
            db.close()

    def _insert_claim(self, db: Session, owner: str, key: IdempotencyKey) -> bool:
        stmt = insert_ignore(db, IdempotencyRecord.__table__).values(
            user_id=owner,
            idempotency_key=str(key),
            created_at=now_utc(),
        )
        return db.execute(stmt).rowcount > 0

    def _read(self, owner: str, key: IdempotencyKey, *, discard_expired: bool) -> FetchResult:
        with self._session_factory() as db:
            record = (
                db.query(IdempotencyRecord)
                .filter(IdempotencyRecord.user_id == owner, IdempotencyRecord.idempotency_key == str(key))
                .one_or_none()
            )
            if record is None:
                return NotFound()

            if as_utc(record.created_at) < now_utc() - self._ttl:
                if discard_expired:
                    log.info("Idempotency key expired - deleting idempotency record (user=%s key=%s)", owner, key)
                    db.execute(self._where(delete(IdempotencyRecord), owner, key))
                    db.commit()
                return Expired()

            if record.response_status_code is None:
                # Claimed, still in flight.
                return NotFound()

            return Completed(
                SavedResponse(
                    status_code=record.response_status_code,
                    headers=_decode_headers(record.response_headers),
                    body=bytes(record.response_body or b""),
                )
            )

    @staticmethod
    def _where(stmt, owner: str, key: IdempotencyKey):
        return stmt.where(
            IdempotencyRecord.user_id == owner,
            IdempotencyRecord.idempotency_key == str(key),
        )
