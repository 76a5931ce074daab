import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, JSON, TIMESTAMP, ForeignKey
from booking_core.core.base import Base, TimestampedMixin

# One row per provider. Weekly days are a 7-item list indexed 0=Mon..6=Sun,
# windows stored as {"start": "HH:MM", "end": "HH:MM"}.
class AvailabilityRow(Base, TimestampedMixin):
    __tablename__ = "provider_availability"
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("provider.id"), unique=True, index=True)
    weekly: Mapped[list] = mapped_column(JSON)
    break_time: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    overrides: Mapped[list] = mapped_column(JSON, default=list)
    buffer_time: Mapped[int] = mapped_column(Integer, default=15)
    timezone: Mapped[str] = mapped_column(String(64), default="Asia/Kolkata")
    is_active: Mapped[bool] = mapped_column(default=True)
    last_synced: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=False), nullable=True)  # naive local
    # bumped by every write that makes a booking hold one of this provider's windows
    booking_seq: Mapped[int] = mapped_column(Integer, default=0)
