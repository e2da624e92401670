"""Tests for the Gmail mailbox."""

import base64
from datetime import UTC, datetime
from email import message_from_bytes
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiogoogle.excs import AiogoogleError

from src.core.exceptions import ConfigurationError, MailboxError
from src.tools.gmail import (
    GmailMailbox,
    build_raw_message,
    build_reply_query,
    extract_body,
    parse_message,
)

MODULE = "src.tools.gmail"


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def _full_message(msg_id: str, body: str, subject: str = "Re: Water Delivery Order") -> dict:
    return {
        "id": msg_id,
        "payload": {
            "headers": [
                {"name": "From", "value": "orders@water.example"},
                {"name": "Subject", "value": subject},
                {"name": "Date", "value": "Tue, 2 Jan 2024 09:00:00 +0000"},
            ],
            "mimeType": "multipart/alternative",
            "parts": [{"mimeType": "text/plain", "body": {"data": _b64(body)}}],
        },
    }


def _mailbox_with(responses):
    """GmailMailbox whose Aiogoogle client answers ``responses`` in order."""
    client = MagicMock()
    client.discover = AsyncMock(return_value=MagicMock())
    client.as_user = AsyncMock(side_effect=responses)
    aiogoogle = MagicMock()
    aiogoogle.__aenter__ = AsyncMock(return_value=client)
    aiogoogle.__aexit__ = AsyncMock(return_value=False)

    with patch(f"{MODULE}.Aiogoogle", return_value=aiogoogle):
        mailbox = GmailMailbox("client-id", "secret", "refresh-token")
    return mailbox, client


# ------------------------------------------------------------------
# Pure helpers
# ------------------------------------------------------------------


def test_reply_query():
    after = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
    query = build_reply_query("orders@water.example", 'Water "Delivery" Order', after)
    assert query == 'from:orders@water.example subject:"Water Delivery Order" after:2024/01/01'


def test_raw_message_decodes_to_email():
    raw = build_raw_message("orders@water.example", "Water Delivery Order", "Please deliver")
    msg = message_from_bytes(base64.urlsafe_b64decode(raw + "=" * (-len(raw) % 4)))
    assert msg["To"] == "orders@water.example"
    assert msg["Subject"] == "Water Delivery Order"
    assert "Please deliver" in msg.get_payload(decode=True).decode()


def test_extract_body_inline():
    assert extract_body({"body": {"data": _b64("inline text")}}) == "inline text"


def test_extract_body_prefers_plain_over_html():
    payload = {
        "parts": [
            {"mimeType": "text/html", "body": {"data": _b64("<p>html</p>")}},
            {"mimeType": "text/plain", "body": {"data": _b64("plain")}},
        ]
    }
    assert extract_body(payload) == "plain"


def test_extract_body_html_fallback():
    payload = {"parts": [{"mimeType": "text/html", "body": {"data": _b64("<p>only</p>")}}]}
    assert extract_body(payload) == "<p>only</p>"


def test_extract_body_nested_multipart():
    payload = {
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [{"mimeType": "text/plain", "body": {"data": _b64("nested")}}],
            },
            {"mimeType": "application/pdf", "body": {"attachmentId": "a1"}},
        ]
    }
    assert extract_body(payload) == "nested"


def test_parse_message_defaults():
    msg = parse_message({"id": "m1", "payload": {}})
    assert msg.subject == "No subject"
    assert msg.sender == "Unknown sender"
    assert msg.body == "No content"


# ------------------------------------------------------------------
# API calls
# ------------------------------------------------------------------


def test_missing_credentials():
    with pytest.raises(ConfigurationError):
        GmailMailbox("client-id", "", "refresh-token")


@pytest.mark.asyncio
async def test_send_returns_message_id():
    mailbox, client = _mailbox_with([{"id": "sent-1"}])
    message_id = await mailbox.send("orders@water.example", "Water Delivery Order", "Hi")
    assert message_id == "sent-1"
    client.discover.assert_awaited_once_with("gmail", "v1")


@pytest.mark.asyncio
async def test_search_fetches_each_result_newest_first():
    mailbox, client = _mailbox_with(
        [
            {"messages": [{"id": "m2"}, {"id": "m1"}]},
            _full_message("m2", "newest"),
            _full_message("m1", "oldest"),
        ]
    )
    replies = await mailbox.search(
        "orders@water.example",
        "Water Delivery Order",
        datetime(2024, 1, 1, tzinfo=UTC),
    )
    assert [r.id for r in replies] == ["m2", "m1"]
    assert replies[0].body == "newest"
    assert replies[0].sender == "orders@water.example"
    # Discovery document is fetched once and reused
    client.discover.assert_awaited_once()


@pytest.mark.asyncio
async def test_search_single_result_fetches_one_message():
    mailbox, client = _mailbox_with(
        [{"messages": [{"id": "m2"}, {"id": "m1"}]}, _full_message("m2", "newest")]
    )
    replies = await mailbox.search(
        "orders@water.example",
        "Water Delivery Order",
        datetime(2024, 1, 1, tzinfo=UTC),
        max_results=1,
    )
    assert [r.id for r in replies] == ["m2"]
    # One list call plus one get
    assert client.as_user.await_count == 2


@pytest.mark.asyncio
async def test_search_no_results():
    mailbox, _ = _mailbox_with([{}])
    replies = await mailbox.search("x@example.com", "Order", datetime(2024, 1, 1, tzinfo=UTC))
    assert replies == []


@pytest.mark.asyncio
async def test_latest_from():
    mailbox, _ = _mailbox_with(
        [{"messages": [{"id": "m9"}]}, _full_message("m9", "Latest news", subject="Hello")]
    )
    email = await mailbox.latest_from("orders@water.example")
    assert email.subject == "Hello"
    assert email.body == "Latest news"


@pytest.mark.asyncio
async def test_latest_from_empty_mailbox():
    mailbox, _ = _mailbox_with([{"messages": []}])
    assert await mailbox.latest_from("orders@water.example") is None


@pytest.mark.asyncio
async def test_api_error_wrapped():
    mailbox, _ = _mailbox_with(AiogoogleError("403 Forbidden"))
    with pytest.raises(MailboxError):
        await mailbox.send("orders@water.example", "Water Delivery Order", "Hi")
