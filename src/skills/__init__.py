from src.core.config import Settings
from src.orders.store import OrderStore
from src.skills.base import SkillRegistry
from src.skills.order_water.handler import OrderWaterSkill
from src.skills.read_email.handler import ReadEmailSkill
from src.skills.start.handler import StartSkill
from src.tools.base import Mailbox


def create_registry(
    settings: Settings, mailbox: Mailbox | None, store: OrderStore
) -> SkillRegistry:
    """Create and populate the skill registry."""
    registry = SkillRegistry()
    registry.register(StartSkill())
    registry.register(
        OrderWaterSkill(
            mailbox,
            store,
            recipient=settings.email_sender_filter,
            subject=settings.email_order_subject,
            body=settings.email_order_body,
        )
    )
    registry.register(ReadEmailSkill(mailbox, sender=settings.email_sender_filter))
    return registry
