"""Message router — whitelist, rate limit, intent → skill → response."""

import logging
from collections.abc import Collection

from src.core.rate_limit import check_rate_limit
from src.gateway.base import Notifier
from src.gateway.types import IncomingMessage, MessageType, OutgoingMessage
from src.skills.base import SkillRegistry
from src.skills.start.handler import ORDER_WATER, READ_LATEST_EMAIL

logger = logging.getLogger(__name__)

TEXT_INTENTS = {
    ORDER_WATER: "order_water",
    READ_LATEST_EMAIL: "read_email",
}

CALLBACK_INTENTS = {
    "confirm_order": "confirm_order",
    "cancel_order": "cancel_order",
    # Buttons attached to reply notifications
    "action_order_water": "order_water",
    "action_read_email": "read_email",
}

# Shown in place of the clicked message while the skill runs
PROGRESS_TEXT = {
    "confirm_order": "Sending email...",
}


def detect_intent(message: IncomingMessage) -> str | None:
    if message.type == MessageType.callback:
        return CALLBACK_INTENTS.get(message.callback_data or "")
    text = (message.text or "").strip()
    if text.split(maxsplit=1)[:1] == ["/start"]:
        return "start"
    return TEXT_INTENTS.get(text)


def is_authorized(user_id: str, whitelist: Collection[int]) -> bool:
    """An empty whitelist denies everyone."""
    try:
        return int(user_id) in whitelist
    except ValueError:
        return False


async def handle_message(
    message: IncomingMessage,
    registry: SkillRegistry,
    whitelist: Collection[int],
    notifier: Notifier | None = None,
) -> OutgoingMessage | None:
    """Route one incoming message; None means nothing to answer."""
    if not is_authorized(message.user_id, whitelist):
        reason = "no whitelist configured" if not whitelist else "user not whitelisted"
        logger.warning(
            "Access denied (%s): user %s (@%s)",
            reason,
            message.user_id,
            message.username or "N/A",
        )
        return OutgoingMessage(text="User not recognized", chat_id=message.chat_id)

    if not await check_rate_limit(message.user_id):
        return OutgoingMessage(
            text="Too many requests. Please wait a minute.", chat_id=message.chat_id
        )

    intent = detect_intent(message)
    if intent is None:
        logger.debug("Ignoring message from user %s: no intent", message.user_id)
        return None

    skill = registry.get(intent)
    if skill is None:
        logger.warning("No skill registered for intent %s", intent)
        return None

    logger.info("User %s (@%s): %s", message.user_id, message.username or "N/A", intent)
    progress = PROGRESS_TEXT.get(intent)
    if progress and notifier is not None and message.message_id:
        await notifier.send(
            OutgoingMessage(
                text=progress, chat_id=message.chat_id, edit_message_id=message.message_id
            )
        )

    result = await skill.execute(message, intent)
    return OutgoingMessage(
        text=result.response_text,
        chat_id=message.chat_id,
        buttons=result.buttons,
        buttons_per_row=result.buttons_per_row,
        reply_keyboard=result.reply_keyboard,
        edit_message_id=result.edit_message_id,
    )
