"""Water Order Bot — FastAPI entrypoint (webhook + health check)."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from src.core.config import settings
from src.core.db import redis
from src.core.exceptions import NotificationError
from src.core.router import handle_message
from src.core.services import AppServices, build_services, close_services
from src.gateway.base import MessageGateway
from src.gateway.telegram import TelegramGateway
from src.gateway.types import IncomingMessage
from src.orders.monitor import ReplyMonitor

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def make_message_handler(services: AppServices, gateway: MessageGateway):
    async def on_message(incoming: IncomingMessage) -> None:
        try:
            response = await handle_message(
                incoming, services.registry, settings.whitelisted_user_ids, gateway
            )
            if response is not None:
                await gateway.send(response)
        except NotificationError as e:
            logger.error("Failed to answer chat %s: %s", incoming.chat_id, e)

    return on_message


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Water Order Bot...")

    gateway = TelegramGateway(
        token=settings.telegram_bot_token,
        webhook_url=settings.telegram_webhook_url,
    )
    services = await build_services(settings, gateway)
    gateway.on_message(make_message_handler(services, gateway))
    await gateway.start()

    monitor = None
    if settings.reply_monitor_mode == "inprocess" and services.engine is not None:
        monitor = ReplyMonitor(services.engine, settings.reply_check_interval_minutes)
        monitor.start()

    app.state.gateway = gateway
    app.state.services = services
    app.state.monitor = monitor

    yield

    if monitor:
        await monitor.stop()
    await gateway.stop()
    await close_services(services)
    await redis.aclose()
    logger.info("Shutting down Water Order Bot...")


app = FastAPI(title="Water Order Bot", lifespan=lifespan)


@app.get("/")
async def index():
    return {"name": "water-order-bot", "version": VERSION}


@app.get("/health")
async def health(request: Request):
    checks = {"api": "ok"}
    try:
        await redis.ping()
        checks["redis"] = "ok"
    except Exception:
        checks["redis"] = "error"
    checks["database"] = "ok" if request.app.state.services.store.available else "degraded"
    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {"status": status, **checks}


# ------------------------------------------------------------------
# Telegram webhook
# ------------------------------------------------------------------
@app.post("/telegram-webhook")
async def telegram_webhook(request: Request):
    data = await request.json()
    try:
        await request.app.state.gateway.feed_update(data)
    except Exception:
        logger.exception("Error processing webhook update")
        return Response(status_code=500)
    return Response(status_code=200)


@app.get("/monitor/status")
async def monitor_status(request: Request):
    services: AppServices = request.app.state.services
    monitor: ReplyMonitor | None = request.app.state.monitor
    engine_status = (
        monitor.status()
        if monitor
        else services.engine.status()
        if services.engine
        else {"running": False, "last_report": None}
    )
    return {
        "mode": settings.reply_monitor_mode,
        "gmail_configured": services.mailbox is not None,
        "pending_orders": await services.store.count(),
        **engine_status,
    }
