"""Tests for the in-process reply monitor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.orders.monitor import ReplyMonitor
from src.orders.reconciler import ReconciliationReport


def _engine():
    engine = MagicMock()
    engine.run_once = AsyncMock(return_value=ReconciliationReport())
    engine.status.return_value = {"running": False, "last_report": None}
    return engine


@pytest.mark.asyncio
async def test_monitor_runs_immediately_and_stops():
    engine = _engine()
    monitor = ReplyMonitor(engine, interval_minutes=60)

    monitor.start()
    assert monitor.running
    await asyncio.sleep(0)
    await monitor.stop()

    engine.run_once.assert_awaited_once()
    assert not monitor.running


@pytest.mark.asyncio
async def test_monitor_repeats_on_interval():
    engine = _engine()
    monitor = ReplyMonitor(engine, interval_minutes=0.0005)  # 30ms

    monitor.start()
    await asyncio.sleep(0.2)
    await monitor.stop()

    assert engine.run_once.await_count >= 2


@pytest.mark.asyncio
async def test_monitor_start_twice_keeps_one_loop():
    engine = _engine()
    monitor = ReplyMonitor(engine, interval_minutes=60)

    monitor.start()
    task = monitor._task
    monitor.start()
    assert monitor._task is task
    await monitor.stop()


@pytest.mark.asyncio
async def test_monitor_status():
    engine = _engine()
    monitor = ReplyMonitor(engine)
    assert monitor.status() == {"monitor_running": False, "running": False, "last_report": None}


@pytest.mark.asyncio
async def test_stop_without_start_is_noop():
    await ReplyMonitor(_engine()).stop()
