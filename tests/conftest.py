"""Test fixtures for Water Order Bot."""

import os
from datetime import UTC, datetime

import pytest

# Set test environment before importing app modules
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "test_token")
os.environ.setdefault("DATABASE_URL", "memory://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/1")
os.environ.setdefault("APP_ENV", "testing")

from src.gateway.mock import MockGateway
from src.gateway.types import IncomingMessage, MessageType
from src.orders.store import InMemoryOrderStore
from src.orders.types import MailMessage, PendingOrder

SUPPLIER = "orders@water.example"
SUBJECT = "Water Delivery Order"


class FakeMailbox:
    """In-memory mailbox: replies are registered per sender, newest first."""

    def __init__(self):
        self.replies: dict[str, list[MailMessage]] = {}
        self.sent: list[tuple[str, str, str]] = []
        self.searches: list[str] = []
        self.limits: list[int] = []
        self.fail_for: set[str] = set()

    async def send(self, to: str, subject: str, body: str) -> str:
        self.sent.append((to, subject, body))
        return f"msg-{len(self.sent)}"

    async def search(self, sender, subject_contains, after, max_results=5):
        self.searches.append(sender)
        self.limits.append(max_results)
        if sender in self.fail_for:
            raise ConnectionError(f"mailbox unreachable for {sender}")
        return self.replies.get(sender, [])[:max_results]

    async def latest_from(self, sender):
        replies = self.replies.get(sender, [])
        return replies[0] if replies else None


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the reply check lock."""

    def __init__(self):
        self.data: dict[str, str] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _reply(body: str, msg_id: str = "r1", sender: str = SUPPLIER) -> MailMessage:
    return MailMessage(
        id=msg_id,
        date="Mon, 1 Jan 2024 12:00:00 +0000",
        subject=f"Re: {SUBJECT}",
        body=body,
        sender=sender,
    )


def _order(sent_at: datetime, *, chat_id: int = 42, user_id: int = 7, **kwargs) -> PendingOrder:
    return PendingOrder(
        chat_id=chat_id,
        user_id=user_id,
        message_id=kwargs.pop("message_id", 100),
        email_sent_to=kwargs.pop("email_sent_to", SUPPLIER),
        email_subject=kwargs.pop("email_subject", SUBJECT),
        sent_at=sent_at,
        **kwargs,
    )


@pytest.fixture
def make_reply():
    """Factory for mailbox replies from the supplier."""
    return _reply


@pytest.fixture
def make_order():
    """Factory for pending orders sent to the supplier."""
    return _order


@pytest.fixture
def mock_gateway():
    """Mock gateway for testing."""
    return MockGateway()


@pytest.fixture
def mailbox():
    return FakeMailbox()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, 10, 0, tzinfo=UTC))


@pytest.fixture
def store(clock):
    return InMemoryOrderStore(clock=clock)


@pytest.fixture
def text_message():
    """Sample text incoming message."""
    return IncomingMessage(
        id="123",
        user_id="7",
        chat_id="42",
        type=MessageType.text,
        text="Order water",
        message_id="123",
    )


@pytest.fixture
def callback_message():
    """Sample callback incoming message."""
    return IncomingMessage(
        id="125",
        user_id="7",
        chat_id="42",
        type=MessageType.callback,
        callback_data="confirm_order",
        message_id="124",
    )
