"""Pending order rows — one per email awaiting a reply."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.models.base import Base, TimestampMixin


class PendingOrderRecord(Base, TimestampMixin):
    __tablename__ = "pending_orders"

    # Partition by user, row key is the tracking id
    partition_key: Mapped[str] = mapped_column(String(32), index=True)
    tracking_id: Mapped[str] = mapped_column(String(96), primary_key=True)
    chat_id: Mapped[int] = mapped_column(BigInteger)
    user_id: Mapped[int] = mapped_column(BigInteger)
    message_id: Mapped[int] = mapped_column(BigInteger)
    email_sent_to: Mapped[str] = mapped_column(String(320))
    email_subject: Mapped[str] = mapped_column(String(500))
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    email_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_reminder_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
