from __future__ import annotations

from typing import Protocol

import httpx

from newsdesk.core.config import Settings


class EmailSendError(Exception):
    pass


class EmailSender(Protocol):
    def send_email(self, *, recipient: str, subject: str, html_content: str, text_content: str) -> None: ...


class EmailClient:
    """Postmark-style transactional email API client."""

    def __init__(
        self,
        *,
        base_url: str,
        sender: str,
        authorization_token: str,
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.sender = sender
        self._authorization_token = authorization_token
        self._http = httpx.Client(timeout=timeout_s, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailClient":
        return cls(
            base_url=settings.EMAIL_API_BASE,
            sender=settings.EMAIL_SENDER,
            authorization_token=settings.EMAIL_AUTH_TOKEN,
            timeout_s=settings.EMAIL_TIMEOUT_MS / 1000.0,
        )

    def send_email(self, *, recipient: str, subject: str, html_content: str, text_content: str) -> None:
        payload = {
            "From": self.sender,
            "To": recipient,
            "Subject": subject,
            "HtmlBody": html_content,
            "TextBody": text_content,
        }
        try:
            r = self._http.post(
                f"{self.base_url}/email",
                json=payload,
                headers={"X-Postmark-Server-Token": self._authorization_token},
            )
        except httpx.HTTPError as e:
            raise EmailSendError(f"Failed to reach email API: {e}") from e

        if r.status_code >= 400:
            raise EmailSendError(f"Email API rejected message: status={r.status_code} body={r.text[:200]}")

    def close(self) -> None:
        self._http.close()
