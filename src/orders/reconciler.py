"""Reply reconciliation — matches pending orders against the mailbox.

One pass (``run_once``) walks every pending order in sequence:

1. Search the mailbox for a reply from the order's recipient.
2. Reply found: push the newest reply to the chat, then complete the order.
   The order is completed even when the push fails.
3. No reply: remind the chat once per reminder window (24h by default,
   measured from the last reminder or, before the first one, from sending).

A failure on one order is logged and never stops the rest of the pass.
Passes never overlap: a call made while another pass is running returns
immediately with ``skipped=True``. With a ``lock`` the same holds across
processes that share it.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Protocol

from src.core.formatting import escape_html, truncate
from src.gateway.base import Notifier
from src.gateway.types import OutgoingMessage
from src.orders.store import Clock, OrderStore, utcnow
from src.orders.types import MailMessage, PendingOrder
from src.tools.base import Mailbox

MAX_REPLY_LENGTH = 500
REMINDER_INTERVAL = timedelta(hours=24)

ORDER_BUTTONS = [
    {"text": "💧 Order water", "callback": "action_order_water"},
    {"text": "📧 Read latest email", "callback": "action_read_email"},
]


class PassLock(Protocol):
    """Lock shared by every engine that reads the same store."""

    async def acquire(self) -> bool: ...

    async def release(self) -> None: ...


@dataclass
class ReconciliationReport:
    """Outcome counters for one reconciliation pass."""

    checked: int = 0
    replied: int = 0
    reminded: int = 0
    expired: int = 0
    errors: int = 0
    skipped: bool = False


def reminder_due(
    order: PendingOrder, now: datetime, interval: timedelta = REMINDER_INTERVAL
) -> bool:
    reference = order.last_reminder_at or order.sent_at
    return now - reference >= interval


def format_reply(body: str, max_len: int = MAX_REPLY_LENGTH) -> str:
    return (
        "📨 <b>Reply Received!</b>\n\n"
        "You have a new reply to your water delivery order:\n\n"
        f"{escape_html(truncate(body, max_len))}"
    )


def format_reminder(order: PendingOrder, now: datetime) -> str:
    hours = int((now - order.sent_at).total_seconds() // 3600)
    return (
        "⏰ <b>No answer yet</b>\n\n"
        f"Your water delivery order sent {hours} hours ago has not been answered yet.\n\n"
        "I'll keep checking and notify you when a reply arrives."
    )


class ReconciliationEngine:
    """Periodic job that resolves pending orders from mailbox replies."""

    def __init__(
        self,
        store: OrderStore,
        mailbox: Mailbox,
        notifier: Notifier,
        *,
        logger: logging.Logger | None = None,
        clock: Clock = utcnow,
        reminder_interval: timedelta = REMINDER_INTERVAL,
        retention: timedelta | None = None,
        max_reply_length: int = MAX_REPLY_LENGTH,
        lock: PassLock | None = None,
    ):
        self._store = store
        self._mailbox = mailbox
        self._notifier = notifier
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._reminder_interval = reminder_interval
        self._retention = retention
        self._max_reply_length = max_reply_length
        self._lock = lock
        self._running = False
        self.last_report: ReconciliationReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    def status(self) -> dict:
        return {
            "running": self._running,
            "last_report": asdict(self.last_report) if self.last_report else None,
        }

    async def run_once(self, now: datetime | None = None) -> ReconciliationReport:
        """Reconcile every pending order once."""
        # No await between the check and the set: atomic on the event loop
        if self._running:
            self._logger.info("Skipping reply check, previous pass still running")
            return ReconciliationReport(skipped=True)
        self._running = True

        report = ReconciliationReport()
        locked = False
        try:
            if self._lock is not None:
                locked = await self._lock.acquire()
                if not locked:
                    self._logger.info("Skipping reply check, another process is running one")
                    report.skipped = True
                    return report
            await self._run(now or self._clock(), report)
        except Exception:
            report.errors += 1
            self._logger.exception("Reply check failed")
        finally:
            if locked:
                await self._lock.release()
            self._running = False

        self.last_report = report
        return report

    async def _run(self, now: datetime, report: ReconciliationReport) -> None:
        pending = await self._store.list_pending()
        if not pending:
            self._logger.debug("No pending orders to check")
            return

        self._logger.info("Checking %d pending orders for replies", len(pending))
        for tracking_id, order in pending.items():
            report.checked += 1
            try:
                await self._reconcile(tracking_id, order, now, report)
            except Exception as e:
                report.errors += 1
                self._logger.error("Error checking order %s: %s", tracking_id, e)

        if self._retention is not None:
            report.expired = await self._store.purge_older_than(now - self._retention)

        self._logger.info(
            "Reply check done: %d checked, %d replied, %d reminded, %d errors",
            report.checked,
            report.replied,
            report.reminded,
            report.errors,
        )

    async def _reconcile(
        self,
        tracking_id: str,
        order: PendingOrder,
        now: datetime,
        report: ReconciliationReport,
    ) -> None:
        self._logger.debug(
            "Checking order %s (sent to %s, subject %r, at %s)",
            tracking_id,
            order.email_sent_to,
            order.email_subject,
            order.sent_at.isoformat(),
        )
        replies = await self._mailbox.search(
            sender=order.email_sent_to,
            subject_contains=order.email_subject,
            after=order.sent_at,
            max_results=1,
        )

        if replies:
            # Newest first, so one result is the latest matching message
            await self._resolve(tracking_id, order, replies[0])
            report.replied += 1
            return

        self._logger.debug("No reply yet for order %s", tracking_id)
        if reminder_due(order, now, self._reminder_interval):
            try:
                await self._notifier.send(
                    OutgoingMessage(text=format_reminder(order, now), chat_id=str(order.chat_id))
                )
                # Only advanced after a successful send: a failed one retries next tick
                await self._store.update_reminder(tracking_id, now)
                report.reminded += 1
                self._logger.info("Reminder sent for order %s", tracking_id)
            except Exception as e:
                report.errors += 1
                self._logger.error("Error sending reminder for order %s: %s", tracking_id, e)

    async def _resolve(self, tracking_id: str, order: PendingOrder, reply: MailMessage) -> None:
        self._logger.info("Reply received for order %s", tracking_id)
        try:
            await self._notifier.send(
                OutgoingMessage(
                    text=format_reply(reply.body, self._max_reply_length),
                    chat_id=str(order.chat_id),
                    buttons=ORDER_BUTTONS,
                )
            )
            self._logger.info("Reply notification sent to chat %s", order.chat_id)
        except Exception as e:
            self._logger.error(
                "Failed to send reply notification for order %s: %s", tracking_id, e
            )
            self._logger.warning(
                "Order %s will still be completed despite notification failure", tracking_id
            )
        await self._store.complete(tracking_id)
