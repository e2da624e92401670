"""Reply check cron task — reconciles pending orders against Gmail.

The worker builds one set of services at startup and keeps it in the
broker state, so every run in the worker shares one engine. Overlapping
runs, in this process or another worker process, are skipped by the
engine's flag and its Redis lock.
"""

import logging

from taskiq import Context, TaskiqDepends, TaskiqEvents, TaskiqState

from src.core.config import settings
from src.core.services import build_services, close_services
from src.core.tasks.broker import broker
from src.gateway.telegram import TelegramGateway

logger = logging.getLogger(__name__)


@broker.on_event(TaskiqEvents.WORKER_STARTUP)
async def startup(state: TaskiqState) -> None:
    state.gateway = TelegramGateway(token=settings.telegram_bot_token)
    state.services = await build_services(settings, state.gateway)


@broker.on_event(TaskiqEvents.WORKER_SHUTDOWN)
async def shutdown(state: TaskiqState) -> None:
    await close_services(state.services)
    await state.gateway.stop()


@broker.task(schedule=[{"cron": f"*/{settings.reply_check_interval_minutes} * * * *"}])
async def check_order_replies(context: Context = TaskiqDepends()) -> None:
    """Check all pending orders for email replies and due reminders."""
    engine = context.state.services.engine
    if engine is None:
        logger.error("Reply check skipped: Gmail is not configured")
        return

    report = await engine.run_once()
    if report.skipped:
        return
    logger.info(
        "Reply check: %d orders checked, %d replied, %d reminded, %d errors",
        report.checked,
        report.replied,
        report.reminded,
        report.errors,
    )
