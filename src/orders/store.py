"""Pending order storage.

Two implementations share the ``OrderStore`` protocol:

- ``InMemoryOrderStore`` keeps orders in a dict (tests, local runs). Orders
  are lost on restart.
- ``SqlOrderStore`` persists them in the ``pending_orders`` table. When the
  database is not configured or cannot be reached at startup it runs degraded:
  the condition is logged once, reads return empty results and writes are
  skipped, so the chat flow keeps answering.

Tracking ids have the form ``{chat_id}_{user_id}_{epoch_ms}``. The user id is
the partition key of the persisted row.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from src.core.db import create_engine, create_session_factory
from src.core.exceptions import DatabaseError
from src.core.models.base import Base
from src.core.models.pending_order import PendingOrderRecord
from src.orders.types import PendingOrder

MEMORY_URL = "memory://"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


class OrderStore(Protocol):
    """Durable keyed store of orders awaiting an email reply."""

    @property
    def available(self) -> bool: ...

    async def create(self, order: PendingOrder) -> str: ...

    async def list_pending(self) -> dict[str, PendingOrder]: ...

    async def get(self, tracking_id: str) -> PendingOrder | None: ...

    async def complete(self, tracking_id: str) -> None: ...

    async def update_reminder(self, tracking_id: str, timestamp: datetime) -> None: ...

    async def count(self) -> int: ...

    async def purge_older_than(self, cutoff: datetime) -> int: ...

    async def close(self) -> None: ...


class TrackingIdGenerator:
    """Build tracking ids from chat, user and the current instant.

    The millisecond part never repeats within one generator: when the clock
    has not moved past the previous id it is bumped by one.
    """

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._last_ms = 0

    def __call__(self, chat_id: int, user_id: int) -> str:
        ms = int(self._clock().timestamp() * 1000)
        if ms <= self._last_ms:
            ms = self._last_ms + 1
        self._last_ms = ms
        return f"{chat_id}_{user_id}_{ms}"


def partition_key_for(tracking_id: str) -> str:
    """Return the user partition encoded in a tracking id ("" if malformed)."""
    # "_" never occurs inside the numeric parts, a negative chat id keeps its "-"
    parts = tracking_id.split("_")
    return parts[1] if len(parts) == 3 else ""


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class InMemoryOrderStore:
    """Process-local order store."""

    def __init__(self, *, clock: Clock = utcnow, logger: logging.Logger | None = None):
        self._orders: dict[str, PendingOrder] = {}
        self._new_id = TrackingIdGenerator(clock)
        self._logger = logger or logging.getLogger(__name__)

    @property
    def available(self) -> bool:
        return True

    async def create(self, order: PendingOrder) -> str:
        tracking_id = self._new_id(order.chat_id, order.user_id)
        self._orders[tracking_id] = replace(order)
        self._logger.info(
            "Tracking new order %s (chat %s, user %s, sent to %s)",
            tracking_id,
            order.chat_id,
            order.user_id,
            order.email_sent_to,
        )
        return tracking_id

    async def list_pending(self) -> dict[str, PendingOrder]:
        return {tid: replace(order) for tid, order in self._orders.items()}

    async def get(self, tracking_id: str) -> PendingOrder | None:
        order = self._orders.get(tracking_id)
        return replace(order) if order else None

    async def complete(self, tracking_id: str) -> None:
        if self._orders.pop(tracking_id, None) is not None:
            self._logger.info("Completed order %s", tracking_id)

    async def update_reminder(self, tracking_id: str, timestamp: datetime) -> None:
        order = self._orders.get(tracking_id)
        if order is None:
            return
        if timestamp < order.sent_at:
            self._logger.warning(
                "Ignoring reminder time %s before send time of order %s", timestamp, tracking_id
            )
            return
        order.last_reminder_at = timestamp
        self._logger.info("Updated reminder time for order %s", tracking_id)

    async def count(self) -> int:
        return len(self._orders)

    async def purge_older_than(self, cutoff: datetime) -> int:
        expired = [tid for tid, order in self._orders.items() if order.sent_at < cutoff]
        for tid in expired:
            del self._orders[tid]
        if expired:
            self._logger.info("Expired %d orders sent before %s", len(expired), cutoff)
        return len(expired)

    async def close(self) -> None:
        pass


class SqlOrderStore:
    """Order store backed by the ``pending_orders`` table."""

    def __init__(
        self,
        engine: AsyncEngine | None,
        *,
        clock: Clock = utcnow,
        logger: logging.Logger | None = None,
    ):
        self._engine = engine
        self._session_factory = create_session_factory(engine) if engine else None
        self._new_id = TrackingIdGenerator(clock)
        self._logger = logger or logging.getLogger(__name__)
        self._available = False
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        return self._available

    async def initialize(self) -> None:
        """Connect and create the table if it does not exist yet.

        Runs once. On failure the store stays in degraded mode for the rest
        of the process lifetime.
        """
        async with self._init_lock:
            if self._initialized:
                return
            self._initialized = True

            if self._engine is None:
                self._logger.error(
                    "DATABASE_URL not configured, order persistence disabled. "
                    "Orders will not survive restarts."
                )
                return

            try:
                async with self._engine.begin() as conn:
                    await conn.run_sync(
                        Base.metadata.create_all, tables=[PendingOrderRecord.__table__]
                    )
            except (SQLAlchemyError, OSError) as e:
                self._logger.error(
                    "Failed to initialize order storage, persistence disabled: %s", e
                )
                return

            self._available = True
            self._logger.info("Order storage ready (table %s)", PendingOrderRecord.__tablename__)

    async def create(self, order: PendingOrder) -> str:
        await self.initialize()
        tracking_id = self._new_id(order.chat_id, order.user_id)
        if not self._available:
            return tracking_id

        record = PendingOrderRecord(
            partition_key=str(order.user_id),
            tracking_id=tracking_id,
            chat_id=order.chat_id,
            user_id=order.user_id,
            message_id=order.message_id,
            email_sent_to=order.email_sent_to,
            email_subject=order.email_subject,
            sent_at=_as_utc(order.sent_at),
            email_message_id=order.email_message_id,
            last_reminder_at=_as_utc(order.last_reminder_at) if order.last_reminder_at else None,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            self._logger.error("Failed to persist order %s: %s", tracking_id, e)
            raise DatabaseError(f"Failed to persist order {tracking_id}") from e

        self._logger.info(
            "Tracking new order %s (chat %s, user %s, sent to %s)",
            tracking_id,
            order.chat_id,
            order.user_id,
            order.email_sent_to,
        )
        return tracking_id

    async def list_pending(self) -> dict[str, PendingOrder]:
        await self.initialize()
        if not self._available:
            return {}
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PendingOrderRecord).order_by(
                        PendingOrderRecord.sent_at, PendingOrderRecord.tracking_id
                    )
                )
                return {r.tracking_id: _to_order(r) for r in result.scalars()}
        except SQLAlchemyError as e:
            self._logger.error("Failed to list pending orders: %s", e)
            return {}

    async def get(self, tracking_id: str) -> PendingOrder | None:
        await self.initialize()
        if not self._available:
            return None
        try:
            async with self._session_factory() as session:
                record = await session.scalar(
                    select(PendingOrderRecord).where(
                        PendingOrderRecord.partition_key == partition_key_for(tracking_id),
                        PendingOrderRecord.tracking_id == tracking_id,
                    )
                )
                return _to_order(record) if record else None
        except SQLAlchemyError as e:
            self._logger.error("Failed to fetch order %s: %s", tracking_id, e)
            return None

    async def complete(self, tracking_id: str) -> None:
        await self.initialize()
        if not self._available:
            return
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(PendingOrderRecord).where(
                        PendingOrderRecord.partition_key == partition_key_for(tracking_id),
                        PendingOrderRecord.tracking_id == tracking_id,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            self._logger.error("Failed to delete order %s: %s", tracking_id, e)
            return
        if result.rowcount:
            self._logger.info("Completed order %s", tracking_id)

    async def update_reminder(self, tracking_id: str, timestamp: datetime) -> None:
        await self.initialize()
        if not self._available:
            return
        timestamp = _as_utc(timestamp)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(PendingOrderRecord)
                    .where(
                        PendingOrderRecord.partition_key == partition_key_for(tracking_id),
                        PendingOrderRecord.tracking_id == tracking_id,
                        PendingOrderRecord.sent_at <= timestamp,
                    )
                    .values(last_reminder_at=timestamp)
                )
                await session.commit()
        except SQLAlchemyError as e:
            self._logger.error("Failed to update reminder for order %s: %s", tracking_id, e)
            return
        if result.rowcount:
            self._logger.info("Updated reminder time for order %s", tracking_id)

    async def count(self) -> int:
        await self.initialize()
        if not self._available:
            return 0
        try:
            async with self._session_factory() as session:
                total = await session.scalar(
                    select(func.count()).select_from(PendingOrderRecord)
                )
                return total or 0
        except SQLAlchemyError as e:
            self._logger.error("Failed to count pending orders: %s", e)
            return 0

    async def purge_older_than(self, cutoff: datetime) -> int:
        await self.initialize()
        if not self._available:
            return 0
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(PendingOrderRecord).where(
                        PendingOrderRecord.sent_at < _as_utc(cutoff)
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            self._logger.error("Failed to expire old orders: %s", e)
            return 0
        if result.rowcount:
            self._logger.info("Expired %d orders sent before %s", result.rowcount, cutoff)
        return result.rowcount or 0

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


def _to_order(record: PendingOrderRecord) -> PendingOrder:
    return PendingOrder(
        chat_id=record.chat_id,
        user_id=record.user_id,
        message_id=record.message_id,
        email_sent_to=record.email_sent_to,
        email_subject=record.email_subject,
        sent_at=_as_utc(record.sent_at),
        email_message_id=record.email_message_id,
        last_reminder_at=_as_utc(record.last_reminder_at) if record.last_reminder_at else None,
    )


async def create_order_store(
    database_url: str,
    *,
    clock: Clock = utcnow,
    logger: logging.Logger | None = None,
) -> OrderStore:
    """Build the order store for a database URL.

    ``memory://`` selects the in-memory store. An empty or unusable URL yields
    a degraded ``SqlOrderStore``.
    """
    if database_url == MEMORY_URL:
        return InMemoryOrderStore(clock=clock, logger=logger)

    engine = None
    if database_url:
        try:
            engine = create_engine(database_url)
        except (SQLAlchemyError, ImportError) as e:
            (logger or logging.getLogger(__name__)).error("Invalid DATABASE_URL: %s", e)

    store = SqlOrderStore(engine, clock=clock, logger=logger)
    await store.initialize()
    return store
