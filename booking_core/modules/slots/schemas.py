import datetime as dt
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from booking_core.core.config import settings
from booking_core.core.intervals import TimeWindow, at
from booking_core.modules.availability.recurrence import Frequency


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    RESERVED = "reserved"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Slot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    provider_id: uuid.UUID
    service_id: str | None = None
    date: dt.date
    window: TimeWindow
    status: SlotStatus = SlotStatus.AVAILABLE
    max_participants: int = Field(default=1, ge=1, le=100)
    current_participants: int = Field(default=0, ge=0)
    booking_id: uuid.UUID | None = None
    is_recurring: bool = False
    recurrence_group: uuid.UUID | None = None
    is_private: bool = False
    price: float | None = None
    notes: str = ""
    timezone: str = settings.DEFAULT_TIMEZONE
    created_by: str | None = None
    version: int = 1

    @property
    def starts_at(self) -> dt.datetime:
        return at(self.date, self.window.start)

    @property
    def has_capacity(self) -> bool:
        return self.status == SlotStatus.AVAILABLE and self.current_participants < self.max_participants

    def serves(self, service_id: str | None) -> bool:
        return self.service_id is None or service_id is None or self.service_id == service_id

    def claimed_by(self, booking_id: uuid.UUID) -> "Slot | None":
        """The slot after one more participant joins, or None when it cannot take one."""
        if not self.has_capacity:
            return None
        n = self.current_participants + 1
        return self.model_copy(update={
            "current_participants": n,
            "status": SlotStatus.BOOKED if n >= self.max_participants else SlotStatus.AVAILABLE,
            "booking_id": booking_id if self.max_participants == 1 else None,
            "version": self.version + 1,
        })

    def released_by(self, booking_id: uuid.UUID) -> "Slot | None":
        if self.current_participants == 0 or self.status not in (SlotStatus.AVAILABLE, SlotStatus.BOOKED):
            return None
        if self.max_participants == 1 and self.booking_id != booking_id:
            return None
        return self.model_copy(update={
            "current_participants": self.current_participants - 1,
            "status": SlotStatus.AVAILABLE,
            "booking_id": None,
            "version": self.version + 1,
        })


class SlotCreate(BaseModel):
    provider_id: uuid.UUID
    service_id: str | None = None
    date: dt.date
    start_time: str
    end_time: str
    max_participants: int = Field(default=1, ge=1, le=100)
    price: float | None = Field(default=None, ge=0)
    is_private: bool = False
    notes: str = Field(default="", max_length=500)


class SlotGenerate(BaseModel):
    provider_id: uuid.UUID
    service_id: str | None = None
    frequency: Frequency
    start_date: dt.date
    end_date: dt.date
    start_time: str
    end_time: str
    days_of_week: list[str] = []
    exclude_dates: list[dt.date] = []
    max_participants: int = Field(default=1, ge=1, le=100)
    price: float | None = Field(default=None, ge=0)
