from __future__ import annotations

from pydantic import EmailStr, TypeAdapter, ValidationError

_adapter = TypeAdapter(EmailStr)


class InvalidSubscriberEmail(ValueError):
    pass


def parse_subscriber_email(raw: str) -> str:
    try:
        return _adapter.validate_python(raw)
    except ValidationError as e:
        raise InvalidSubscriberEmail(f"{raw!r} is not a valid subscriber email") from e
