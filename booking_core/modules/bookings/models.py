import uuid
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, JSON, Date, Numeric, ForeignKey, Index
from booking_core.core.base import Base, TimestampedMixin

class BookingRow(Base, TimestampedMixin):
    __tablename__ = "booking"
    __table_args__ = (Index("ix_booking_provider_date", "provider_id", "date"),)

    booking_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    provider_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("provider.id"), nullable=True)
    service_id: Mapped[str] = mapped_column(String(100))
    slot_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("slot.id"), nullable=True)
    date: Mapped[dt.date] = mapped_column(Date)
    start_minute: Mapped[int] = mapped_column(Integer)
    end_minute: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(32), default="pending", index=True)
    payment_status: Mapped[str] = mapped_column(String(32), default="pending")
    total_amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), default=0)
    currency: Mapped[str] = mapped_column(String(8), default="INR")
    cancellation: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    reschedule_requests: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[list] = mapped_column(JSON, default=list)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
