"""Process-level wiring: builds the store, mailbox, skills and engine once.

The webhook process and the taskiq worker each call ``build_services`` at
startup and pass the result to whatever needs it.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from src.core.config import Settings
from src.core.db import redis
from src.core.exceptions import ConfigurationError
from src.core.locks import RedisPassLock
from src.gateway.base import Notifier
from src.orders.reconciler import ReconciliationEngine
from src.orders.store import MEMORY_URL, OrderStore, create_order_store
from src.skills import create_registry
from src.skills.base import SkillRegistry
from src.tools.base import Mailbox
from src.tools.gmail import GmailMailbox

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    store: OrderStore
    mailbox: Mailbox | None
    registry: SkillRegistry
    engine: ReconciliationEngine | None


async def build_services(
    settings: Settings,
    notifier: Notifier,
    *,
    mailbox: Mailbox | None = None,
    store: OrderStore | None = None,
) -> AppServices:
    if store is None:
        store = await create_order_store(settings.async_database_url)

    if settings.database_url == MEMORY_URL and settings.reply_monitor_mode != "inprocess":
        logger.error(
            "DATABASE_URL=memory:// keeps orders inside this process, but "
            "REPLY_MONITOR_MODE=%s checks replies in the taskiq worker. "
            "Set REPLY_MONITOR_MODE=inprocess or configure a database.",
            settings.reply_monitor_mode,
        )

    if mailbox is None:
        try:
            mailbox = GmailMailbox.from_settings(settings)
        except ConfigurationError as e:
            logger.error("%s. Ordering and reply checks are disabled.", e)

    if not settings.email_sender_filter:
        logger.error("EMAIL_SENDER_FILTER not configured")
    logger.info("Email sender filter: %s", settings.email_sender_filter or "NOT CONFIGURED")
    logger.info("Email order subject: %s", settings.email_order_subject)
    logger.info(
        "Whitelisted user IDs: %s",
        ", ".join(map(str, settings.whitelisted_user_ids)) or "None (all users DENIED)",
    )

    engine = None
    if mailbox is not None:
        retention = (
            timedelta(hours=settings.order_retention_hours)
            if settings.order_retention_hours > 0
            else None
        )
        engine = ReconciliationEngine(
            store,
            mailbox,
            notifier,
            reminder_interval=timedelta(hours=settings.reminder_interval_hours),
            retention=retention,
            lock=RedisPassLock(redis, ttl=settings.reply_lock_ttl_seconds),
        )

    return AppServices(
        store=store,
        mailbox=mailbox,
        registry=create_registry(settings, mailbox, store),
        engine=engine,
    )


async def close_services(services: AppServices) -> None:
    await services.store.close()
