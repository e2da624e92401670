from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.gateway.types import IncomingMessage


@dataclass
class SkillResult:
    """Result of skill execution."""

    response_text: str
    buttons: list[dict] | None = None
    buttons_per_row: int = 1
    reply_keyboard: list[str] | None = None
    # Set when the answer replaces the message the user clicked on
    edit_message_id: str | None = None


class BaseSkill(Protocol):
    """Interface for all skill modules."""

    name: str
    intents: list[str]

    async def execute(self, message: IncomingMessage, intent: str) -> SkillResult: ...


class SkillRegistry:
    """Maps intents to the skill that handles them."""

    def __init__(self):
        self._skills: dict[str, BaseSkill] = {}

    def register(self, skill: BaseSkill) -> None:
        for intent in skill.intents:
            self._skills[intent] = skill

    def get(self, intent: str) -> BaseSkill | None:
        return self._skills.get(intent)

    def all_skills(self) -> list[BaseSkill]:
        return list({id(s): s for s in self._skills.values()}.values())
