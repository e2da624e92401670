"""Read email skill — shows the latest message from the delivery service."""

import logging

from src.core.exceptions import MailboxError
from src.core.formatting import escape_html, truncate
from src.gateway.types import IncomingMessage
from src.skills.base import SkillResult
from src.tools.base import Mailbox

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 100


class ReadEmailSkill:
    name = "read_email"
    intents = ["read_email"]

    def __init__(self, mailbox: Mailbox | None, *, sender: str):
        self._mailbox = mailbox
        self._sender = sender

    async def execute(self, message: IncomingMessage, intent: str) -> SkillResult:
        if not self._sender:
            return SkillResult(response_text="Error: EMAIL_SENDER_FILTER not configured")
        if self._mailbox is None:
            return SkillResult(response_text="Error: Gmail is not configured")

        logger.info("Querying latest email from %s", self._sender)
        try:
            email = await self._mailbox.latest_from(self._sender)
        except MailboxError as e:
            logger.error("Error reading email: %s", e)
            return SkillResult(
                response_text="Failed to fetch email. Please check the logs for details."
            )

        if email is None:
            return SkillResult(response_text=f"No emails found from {escape_html(self._sender)}")

        return SkillResult(
            response_text=(
                "📧 <b>Latest Email</b>\n\n"
                f"📅 <b>Date:</b> {escape_html(email.date)}\n"
                f"👤 <b>From:</b> {escape_html(email.sender)}\n"
                f"📝 <b>Subject:</b> {escape_html(email.subject)}\n\n"
                f"<b>Body:</b>\n{escape_html(truncate(email.body, MAX_BODY_LENGTH))}"
            )
        )
