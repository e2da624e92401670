"""Order water skill — confirms, sends the order email and tracks the reply."""

import logging

from src.core.exceptions import ConfigurationError, DatabaseError, MailboxError
from src.gateway.types import IncomingMessage
from src.orders.store import Clock, OrderStore, utcnow
from src.orders.types import PendingOrder
from src.skills.base import SkillResult
from src.tools.base import Mailbox

logger = logging.getLogger(__name__)

CONFIRM_BUTTONS = [
    {"text": "Yes, send email", "callback": "confirm_order"},
    {"text": "Cancel", "callback": "cancel_order"},
]


class OrderWaterSkill:
    name = "order_water"
    intents = ["order_water", "confirm_order", "cancel_order"]

    def __init__(
        self,
        mailbox: Mailbox | None,
        store: OrderStore,
        *,
        recipient: str,
        subject: str,
        body: str,
        clock: Clock = utcnow,
    ):
        self._mailbox = mailbox
        self._store = store
        self._recipient = recipient
        self._subject = subject
        self._body = body
        self._clock = clock

    async def execute(self, message: IncomingMessage, intent: str) -> SkillResult:
        if intent == "confirm_order":
            return await self._confirm(message)
        if intent == "cancel_order":
            return SkillResult(
                response_text="Delivery not confirmed",
                edit_message_id=message.message_id,
            )
        return SkillResult(
            response_text="Do you want to order water now?",
            buttons=CONFIRM_BUTTONS,
            buttons_per_row=2,
        )

    def _require_config(self) -> Mailbox:
        if not self._recipient:
            raise ConfigurationError("Email recipient not configured")
        if self._mailbox is None:
            raise ConfigurationError("Gmail is not configured")
        return self._mailbox

    async def _confirm(self, message: IncomingMessage) -> SkillResult:
        try:
            mailbox = self._require_config()
        except ConfigurationError as e:
            logger.error("Cannot place order: %s", e)
            return SkillResult(response_text=f"Error: {e}", edit_message_id=message.message_id)

        logger.info("Sending order email to %s (subject %r)", self._recipient, self._subject)
        try:
            email_message_id = await mailbox.send(self._recipient, self._subject, self._body)
        except MailboxError as e:
            logger.error("Error sending order email: %s", e)
            return SkillResult(
                response_text="❌ Failed to send email. Please try again or contact support.",
                edit_message_id=message.message_id,
            )

        order = PendingOrder(
            chat_id=int(message.chat_id),
            user_id=int(message.user_id),
            message_id=int(message.message_id or 0),
            email_sent_to=self._recipient,
            email_subject=self._subject,
            sent_at=self._clock(),
            email_message_id=email_message_id or None,
        )
        try:
            await self._store.create(order)
        except DatabaseError as e:
            logger.error("Order email sent but tracking failed: %s", e)
            return self._untracked(message)
        if not self._store.available:
            logger.warning("Order email sent but order storage is unavailable")
            return self._untracked(message)

        return SkillResult(
            response_text=(
                "✅ Email sent! Your water delivery order has been submitted.\n\n"
                "💡 I'll notify you when you receive a reply."
            ),
            edit_message_id=message.message_id,
        )

    @staticmethod
    def _untracked(message: IncomingMessage) -> SkillResult:
        return SkillResult(
            response_text=(
                "✅ Email sent! Your water delivery order has been submitted.\n\n"
                "⚠️ I can't track the reply right now. "
                "Use “Read latest email” to check for an answer."
            ),
            edit_message_id=message.message_id,
        )
