from __future__ import annotations

from dataclasses import dataclass

MAX_KEY_LENGTH = 50


class InvalidIdempotencyKey(ValueError):
    pass


@dataclass(frozen=True)
class IdempotencyKey:
    value: str

    @classmethod
    def parse(cls, raw: str | None) -> "IdempotencyKey":
        """Validate a caller-supplied key before it touches storage.

        Accepted: 1..50 printable ASCII characters, no whitespace.
        """
        s = (raw or "").strip()
        if not s:
            raise InvalidIdempotencyKey("The idempotency key cannot be empty")
        if len(s) > MAX_KEY_LENGTH:
            raise InvalidIdempotencyKey(f"The idempotency key must be at most {MAX_KEY_LENGTH} characters long")
        if any(not ("!" <= ch <= "~") for ch in s):
            raise InvalidIdempotencyKey("The idempotency key must be printable ASCII without whitespace")
        return cls(s)

    def __str__(self) -> str:
        return self.value
