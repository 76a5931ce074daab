import uuid
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Date, Numeric, Text, ForeignKey, Index
from booking_core.core.base import Base, TimestampedMixin

class SlotRow(Base, TimestampedMixin):
    __tablename__ = "slot"
    __table_args__ = (Index("ix_slot_provider_date", "provider_id", "date"),)

    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"))
    service_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    date: Mapped[dt.date] = mapped_column(Date)
    start_minute: Mapped[int] = mapped_column(Integer)
    end_minute: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(32), default="available", index=True)
    max_participants: Mapped[int] = mapped_column(Integer, default=1)
    current_participants: Mapped[int] = mapped_column(Integer, default=0)
    booking_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)  # single-participant slots only
    is_recurring: Mapped[bool] = mapped_column(default=False)
    recurrence_group: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    is_private: Mapped[bool] = mapped_column(default=False)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="")
    timezone: Mapped[str] = mapped_column(String(64), default="Asia/Kolkata")
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
