"""Tests for the reply check cron task."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.orders.reconciler import ReconciliationReport


def _context(engine):
    context = MagicMock()
    context.state.services.engine = engine
    return context


@pytest.mark.asyncio
async def test_check_runs_engine_once():
    engine = MagicMock()
    engine.run_once = AsyncMock(return_value=ReconciliationReport(checked=2, replied=1))

    from src.core.tasks.reply_tasks import check_order_replies

    await check_order_replies(context=_context(engine))

    engine.run_once.assert_awaited_once()


@pytest.mark.asyncio
async def test_check_skipped_without_gmail(caplog):
    from src.core.tasks.reply_tasks import check_order_replies

    await check_order_replies(context=_context(None))

    assert "Gmail is not configured" in caplog.text


def test_task_scheduled_every_interval():
    from src.core.config import settings
    from src.core.tasks.reply_tasks import check_order_replies

    schedule = check_order_replies.labels["schedule"]
    assert schedule == [{"cron": f"*/{settings.reply_check_interval_minutes} * * * *"}]
