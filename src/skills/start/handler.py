"""Start skill — greets the user and shows the main keyboard."""

from src.gateway.types import IncomingMessage
from src.skills.base import SkillResult

ORDER_WATER = "Order water"
READ_LATEST_EMAIL = "Read latest email"

MAIN_KEYBOARD = [ORDER_WATER, READ_LATEST_EMAIL]


class StartSkill:
    name = "start"
    intents = ["start"]

    async def execute(self, message: IncomingMessage, intent: str) -> SkillResult:
        return SkillResult(
            response_text="This bot can order water delivery for you",
            reply_keyboard=MAIN_KEYBOARD,
        )
