from dataclasses import dataclass
from datetime import datetime


@dataclass
class PendingOrder:
    """An order email that was sent on behalf of a chat user and awaits a reply."""

    chat_id: int
    user_id: int
    message_id: int
    email_sent_to: str
    email_subject: str
    sent_at: datetime
    email_message_id: str | None = None
    last_reminder_at: datetime | None = None


@dataclass
class MailMessage:
    """A message returned by a mailbox search, already decoded to plain text."""

    id: str
    date: str
    subject: str
    body: str
    sender: str
