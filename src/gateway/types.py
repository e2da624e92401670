from dataclasses import dataclass
from enum import StrEnum


class MessageType(StrEnum):
    text = "text"
    callback = "callback"


@dataclass
class IncomingMessage:
    """Transport-agnostic incoming message."""

    id: str
    user_id: str
    chat_id: str
    type: MessageType
    text: str | None = None
    callback_data: str | None = None
    # Chat message a callback button belongs to (edited in place on reply)
    message_id: str | None = None
    username: str | None = None
    raw: object = None


@dataclass
class OutgoingMessage:
    """Universal outgoing message."""

    text: str
    chat_id: str
    buttons: list[dict] | None = None
    buttons_per_row: int = 1
    parse_mode: str = "HTML"

    # Persistent reply keyboard, one button per row
    reply_keyboard: list[str] | None = None
    remove_reply_keyboard: bool = False

    # Replace the text of an earlier bot message instead of sending a new one
    edit_message_id: str | None = None
