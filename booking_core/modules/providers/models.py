import uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, JSON, Float, Integer
from booking_core.core.base import Base, TimestampedMixin

class ProviderRow(Base, TimestampedMixin):
    __tablename__ = "provider"
    user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    kind: Mapped[str] = mapped_column(String(32), default="priest")  # priest | astrologer
    specialization: Mapped[str] = mapped_column(String(200), default="")
    capabilities: Mapped[list] = mapped_column(JSON, default=list)  # service ids
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, default=0)
    is_available: Mapped[bool] = mapped_column(default=True)
    is_verified: Mapped[bool] = mapped_column(default=False)
    is_active: Mapped[bool] = mapped_column(default=True)
