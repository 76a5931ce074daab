import datetime as dt
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from booking_core.core.config import settings
from booking_core.core.intervals import TimeWindow, at
from booking_core.modules.availability.schemas import BookingWindowRef


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    REJECTED = "rejected"


# statuses that hold a provider's window
BLOCKING = frozenset({BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.RESCHEDULED})
TERMINAL = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.NO_SHOW})
UPCOMING = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.RESCHEDULED})
# what counts towards a provider's workload when ranking
WORKLOAD = frozenset({BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS})


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    CANCELLED = "cancelled"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
    NOT_ELIGIBLE = "not_eligible"


class RescheduleStatus(str, Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class Cancellation(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str = ""
    cancelled_by: str | None = None
    cancelled_at: dt.datetime
    refund_amount: float | None = None
    refund_status: RefundStatus | None = None


class BookingNote(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    created_by: str | None = None
    created_at: dt.datetime
    is_private: bool = False


class RescheduleRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    previous_date: dt.date
    previous_window: TimeWindow
    new_date: dt.date
    new_window: TimeWindow
    reason: str = ""
    requested_by: str | None = None
    status: RescheduleStatus = RescheduleStatus.REQUESTED
    previous_status: BookingStatus = BookingStatus.CONFIRMED
    processed_by: str | None = None
    processed_at: dt.datetime | None = None
    notes: str = ""
    created_at: dt.datetime


class Booking(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    booking_number: str
    user_id: uuid.UUID | None = None
    provider_id: uuid.UUID | None = None
    service_id: str
    slot_id: uuid.UUID | None = None
    date: dt.date
    window: TimeWindow
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    total_amount: float = 0.0
    currency: str = "INR"
    cancellation: Cancellation | None = None
    reschedule_requests: tuple[RescheduleRequest, ...] = ()
    notes: tuple[BookingNote, ...] = ()
    created_by: str | None = None
    updated_by: str | None = None
    version: int = 1
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @property
    def starts_at(self) -> dt.datetime:
        return at(self.date, self.window.start)

    @property
    def duration_minutes(self) -> int:
        return self.window.duration

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL

    def is_upcoming(self, now: dt.datetime) -> bool:
        return self.starts_at > now and self.status in UPCOMING

    def _lead_ok(self, now: dt.datetime, hours: float) -> bool:
        return (
            self.is_upcoming(now)
            and self.payment_status == PaymentStatus.PAID
            and self.starts_at - now > dt.timedelta(hours=hours)
        )

    def can_be_rescheduled(self, now: dt.datetime) -> bool:
        return self._lead_ok(now, settings.RESCHEDULE_LEAD_HOURS)

    def reschedule_request(self, request_id: uuid.UUID) -> RescheduleRequest | None:
        for r in self.reschedule_requests:
            if r.id == request_id:
                return r
        return None

    def with_request(self, updated: RescheduleRequest) -> tuple[RescheduleRequest, ...]:
        return tuple(updated if r.id == updated.id else r for r in self.reschedule_requests)

    def as_ref(self) -> BookingWindowRef:
        return BookingWindowRef(
            booking_id=self.id, booking_number=self.booking_number, date=self.date,
            window=self.window, status=self.status.value,
        )


# API payloads

class BookingCreate(BaseModel):
    service_id: str = Field(min_length=1)
    date: dt.date
    start_time: str
    end_time: str
    user_id: uuid.UUID | None = None
    provider_id: uuid.UUID | None = None
    slot_id: uuid.UUID | None = None
    auto_assign: bool = False
    total_amount: float = Field(default=0.0, ge=0)
    currency: str = "INR"
    payment_status: PaymentStatus = PaymentStatus.PENDING


class CancelRequest(BaseModel):
    reason: str = Field(default="", max_length=500)


class RescheduleCreate(BaseModel):
    new_date: dt.date
    new_start_time: str
    new_end_time: str
    reason: str = Field(default="", max_length=500)


class RescheduleDecision(BaseModel):
    notes: str = Field(default="", max_length=500)


class PaymentUpdate(BaseModel):
    payment_status: PaymentStatus


class NoteCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
    is_private: bool = False
