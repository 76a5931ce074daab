import uuid
import datetime as dt
from typing import Iterable, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import and_, or_, select, update, func
from booking_core.core.errors import ConcurrentUpdate
from booking_core.core.intervals import TimeWindow
from booking_core.modules.bookings.models import BookingRow
from booking_core.modules.bookings.schemas import Booking, BookingStatus

def to_booking(row: BookingRow) -> Booking:
    return Booking(
        id=row.id, booking_number=row.booking_number, user_id=row.user_id, provider_id=row.provider_id,
        service_id=row.service_id, slot_id=row.slot_id, date=row.date,
        window=TimeWindow(start=row.start_minute, end=row.end_minute),
        status=row.status, payment_status=row.payment_status,
        total_amount=row.total_amount or 0.0, currency=row.currency,
        cancellation=row.cancellation, reschedule_requests=row.reschedule_requests or (), notes=row.notes or (),
        created_by=row.created_by, updated_by=row.updated_by, version=row.version,
        created_at=row.created_at, updated_at=row.updated_at,
    )

def _values(b: Booking) -> dict:
    data = b.model_dump(mode="json", include={"cancellation", "reschedule_requests", "notes"})
    return dict(
        booking_number=b.booking_number, user_id=b.user_id, provider_id=b.provider_id, service_id=b.service_id,
        slot_id=b.slot_id, date=b.date, start_minute=b.window.start, end_minute=b.window.end,
        status=b.status.value, payment_status=b.payment_status.value, total_amount=b.total_amount,
        currency=b.currency, created_by=b.created_by, updated_by=b.updated_by, **data,
    )

def _starts_after(moment: dt.datetime):
    minute = moment.hour * 60 + moment.minute
    return or_(
        BookingRow.date > moment.date(),
        and_(BookingRow.date == moment.date(), BookingRow.start_minute > minute),
    )

def _codes(statuses: Iterable[BookingStatus]) -> list[str]:
    return [BookingStatus(s).value for s in statuses]

class BookingRepository:
    def __init__(self, s: AsyncSession): self.s = s

    def _q(self):
        return select(BookingRow).where(BookingRow.deleted_at.is_(None)).execution_options(populate_existing=True)

    async def get(self, booking_id: uuid.UUID) -> Booking | None:
        res = await self.s.execute(self._q().where(BookingRow.id==booking_id))
        row = res.scalar_one_or_none()
        return to_booking(row) if row else None

    async def find_overlapping(self, provider_id, on: dt.date, window: TimeWindow, statuses, exclude_id=None) -> Sequence[Booking]:
        q = self._q().where(
            BookingRow.provider_id==provider_id,
            BookingRow.date==on,
            BookingRow.status.in_(_codes(statuses)),
            BookingRow.start_minute < window.end,
            BookingRow.end_minute > window.start,
        )
        if exclude_id is not None:
            q = q.where(BookingRow.id != exclude_id)
        res = await self.s.execute(q)
        return [to_booking(r) for r in res.scalars().all()]

    async def list_for_provider_on(self, provider_id, on: dt.date, statuses) -> Sequence[Booking]:
        res = await self.s.execute(self._q().where(
            BookingRow.provider_id==provider_id, BookingRow.date==on, BookingRow.status.in_(_codes(statuses))
        ).order_by(BookingRow.start_minute))
        return [to_booking(r) for r in res.scalars().all()]

    async def count_active_for_provider(self, provider_id, after: dt.datetime, statuses) -> int:
        res = await self.s.execute(select(func.count(BookingRow.id)).where(
            BookingRow.provider_id==provider_id,
            _starts_after(after),
            BookingRow.status.in_(_codes(statuses)),
            BookingRow.deleted_at.is_(None),
        ))
        return int(res.scalar_one())

    async def list_upcoming_for_provider(self, provider_id, after: dt.datetime, statuses, limit: int = 50, offset: int = 0) -> Sequence[Booking]:
        res = await self.s.execute(self._q().where(
            BookingRow.provider_id==provider_id,
            BookingRow.status.in_(_codes(statuses)),
            or_(_starts_after(after), BookingRow.status==BookingStatus.IN_PROGRESS.value),
        ).order_by(BookingRow.date, BookingRow.start_minute).limit(limit).offset(offset))
        return [to_booking(r) for r in res.scalars().all()]

    async def insert(self, booking: Booking) -> None:
        self.s.add(BookingRow(id=booking.id, version=1, **_values(booking))); await self.s.flush()

    async def update(self, booking: Booking, expected_version: int) -> None:
        res = await self.s.execute(update(BookingRow).where(
            BookingRow.id==booking.id, BookingRow.version==expected_version
        ).values(version=expected_version + 1, **_values(booking)).execution_options(synchronize_session=False))
        if res.rowcount != 1:
            raise ConcurrentUpdate("Booking was changed by another request")
