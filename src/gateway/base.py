from collections.abc import Awaitable, Callable
from typing import Protocol

from src.gateway.types import IncomingMessage, OutgoingMessage


class Notifier(Protocol):
    """Delivers a formatted message to a chat."""

    async def send(self, message: OutgoingMessage) -> None: ...


class MessageGateway(Notifier, Protocol):
    """Chat transport interface. Implementations: Telegram, mock."""

    def on_message(self, handler: Callable[[IncomingMessage], Awaitable[None]]) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...
