from datetime import datetime
from typing import Protocol

from src.orders.types import MailMessage

MAX_SEARCH_RESULTS = 5


class Mailbox(Protocol):
    """Mail account the bot sends orders from and reads replies in."""

    async def send(self, to: str, subject: str, body: str) -> str: ...

    async def search(
        self,
        sender: str,
        subject_contains: str,
        after: datetime,
        max_results: int = MAX_SEARCH_RESULTS,
    ) -> list[MailMessage]: ...

    async def latest_from(self, sender: str) -> MailMessage | None: ...
