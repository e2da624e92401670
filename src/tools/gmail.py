"""Gmail API client — sends order emails and searches for replies.

Authenticates as the bot's own Google account with a long-lived refresh
token (obtained once out of band). aiogoogle refreshes the access token
before a request whenever it has expired.
"""

import asyncio
import base64
import logging
from datetime import UTC, datetime
from email.message import EmailMessage

from aiogoogle import Aiogoogle
from aiogoogle.auth.creds import ClientCreds, UserCreds
from aiogoogle.excs import AiogoogleError

from src.core.config import Settings
from src.core.exceptions import ConfigurationError, MailboxError
from src.orders.types import MailMessage
from src.tools.base import MAX_SEARCH_RESULTS

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
]

# Forces a token refresh on the first request
_EXPIRED = "1970-01-01T00:00:00"


class GmailMailbox:
    """Mailbox capability over the Gmail REST API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        *,
        logger: logging.Logger | None = None,
    ):
        if not (client_id and client_secret and refresh_token):
            raise ConfigurationError(
                "Gmail credentials not configured. Set GMAIL_CLIENT_ID, "
                "GMAIL_CLIENT_SECRET and GMAIL_REFRESH_TOKEN"
            )
        self._logger = logger or logging.getLogger(__name__)
        self._aiogoogle = Aiogoogle(
            user_creds=UserCreds(
                access_token="",
                refresh_token=refresh_token,
                expires_at=_EXPIRED,
                scopes=GMAIL_SCOPES,
            ),
            client_creds=ClientCreds(
                client_id=client_id,
                client_secret=client_secret,
                scopes=GMAIL_SCOPES,
            ),
        )
        self._api = None
        # One aiohttp session per Aiogoogle instance at a time
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GmailMailbox":
        return cls(
            settings.gmail_client_id,
            settings.gmail_client_secret,
            settings.gmail_refresh_token,
            **kwargs,
        )

    # ── helpers ─────────────────────────────────────────────────────────

    async def _request(self, build) -> dict:
        """Run one Gmail API call; ``build`` receives the discovered API."""
        try:
            async with self._lock, self._aiogoogle as aiogoogle:
                if self._api is None:
                    self._api = await aiogoogle.discover("gmail", "v1")
                return await aiogoogle.as_user(build(self._api)) or {}
        except (AiogoogleError, OSError) as e:
            raise MailboxError(f"Gmail request failed: {e}") from e

    async def _fetch(self, message_id: str) -> MailMessage:
        data = await self._request(
            lambda gmail: gmail.users.messages.get(userId="me", id=message_id, format="full")
        )
        return parse_message(data)

    async def _list_ids(self, query: str, max_results: int) -> list[str]:
        data = await self._request(
            lambda gmail: gmail.users.messages.list(userId="me", q=query, maxResults=max_results)
        )
        return [m["id"] for m in data.get("messages", [])[:max_results]]

    # ── Mailbox ───────────────────────────────────────────────────────

    async def send(self, to: str, subject: str, body: str) -> str:
        """Send a plain-text email and return its Gmail message id."""
        raw = build_raw_message(to, subject, body)
        data = await self._request(
            lambda gmail: gmail.users.messages.send(userId="me", json={"raw": raw})
        )
        message_id = data.get("id", "")
        self._logger.info("Email sent to %s (id %s)", to, message_id)
        return message_id

    async def search(
        self,
        sender: str,
        subject_contains: str,
        after: datetime,
        max_results: int = MAX_SEARCH_RESULTS,
    ) -> list[MailMessage]:
        """Messages from ``sender`` whose subject contains ``subject_contains``.

        Gmail filters ``after:`` by calendar day, so a message from earlier on
        the same day as ``after`` can be returned. Results are newest first.
        """
        query = build_reply_query(sender, subject_contains, after)
        self._logger.debug("Gmail search: %s", query)
        ids = await self._list_ids(query, max_results)
        return [await self._fetch(message_id) for message_id in ids]

    async def latest_from(self, sender: str) -> MailMessage | None:
        ids = await self._list_ids(f"from:{sender}", 1)
        if not ids:
            return None
        return await self._fetch(ids[0])


def build_reply_query(sender: str, subject_contains: str, after: datetime) -> str:
    """Gmail search query for replies to an order email."""
    day = after.astimezone(UTC).strftime("%Y/%m/%d")
    subject = subject_contains.replace('"', "")
    return f'from:{sender} subject:"{subject}" after:{day}'


def build_raw_message(to: str, subject: str, body: str) -> str:
    """RFC 2822 text/plain message, base64url-encoded for messages.send."""
    msg = EmailMessage()
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body, charset="utf-8")
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")


def parse_message(data: dict) -> MailMessage:
    """Extract headers and plain-text body from a ``format=full`` message."""
    payload = data.get("payload", {})
    headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}
    return MailMessage(
        id=data.get("id", ""),
        date=headers.get("date", ""),
        subject=headers.get("subject", "No subject"),
        body=extract_body(payload) or "No content",
        sender=headers.get("from", "Unknown sender"),
    )


def extract_body(payload: dict) -> str:
    """Body text: inline data, else text/plain part, else text/html part.

    Nested multiparts are searched depth-first.
    """
    data = payload.get("body", {}).get("data")
    if data:
        return _decode(data)

    body = ""
    for part in payload.get("parts", []):
        part_data = part.get("body", {}).get("data")
        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain" and part_data:
            return _decode(part_data)
        if mime_type == "text/html" and part_data and not body:
            body = _decode(part_data)
        elif part.get("parts"):
            nested = extract_body(part)
            if nested:
                return nested
    return body


def _decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
