import uuid
import datetime as dt
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, case, or_
from booking_core.core.intervals import TimeWindow
from booking_core.modules.slots.models import SlotRow
from booking_core.modules.slots.schemas import Slot, SlotStatus

_AVAILABLE = SlotStatus.AVAILABLE.value
_BOOKED = SlotStatus.BOOKED.value

def to_slot(row: SlotRow) -> Slot:
    return Slot(
        id=row.id, provider_id=row.provider_id, service_id=row.service_id, date=row.date,
        window=TimeWindow(start=row.start_minute, end=row.end_minute), status=row.status,
        max_participants=row.max_participants, current_participants=row.current_participants,
        booking_id=row.booking_id, is_recurring=row.is_recurring, recurrence_group=row.recurrence_group,
        is_private=row.is_private, price=row.price, notes=row.notes or "", timezone=row.timezone,
        created_by=row.created_by, version=row.version,
    )

class SlotRepository:
    def __init__(self, s: AsyncSession): self.s = s

    def _q(self):
        return select(SlotRow).where(SlotRow.deleted_at.is_(None)).execution_options(populate_existing=True)

    def _open(self, q, service_id: str | None):
        q = q.where(SlotRow.status==_AVAILABLE, SlotRow.current_participants < SlotRow.max_participants)
        if service_id is not None:
            q = q.where(or_(SlotRow.service_id.is_(None), SlotRow.service_id==service_id))
        return q

    async def get(self, slot_id: uuid.UUID) -> Slot | None:
        res = await self.s.execute(self._q().where(SlotRow.id==slot_id))
        row = res.scalar_one_or_none()
        return to_slot(row) if row else None

    async def insert_many(self, slots: Sequence[Slot]) -> Sequence[Slot]:
        for sl in slots:
            self.s.add(SlotRow(
                id=sl.id, provider_id=sl.provider_id, service_id=sl.service_id, date=sl.date,
                start_minute=sl.window.start, end_minute=sl.window.end, status=sl.status.value,
                max_participants=sl.max_participants, current_participants=sl.current_participants,
                booking_id=sl.booking_id, is_recurring=sl.is_recurring, recurrence_group=sl.recurrence_group,
                is_private=sl.is_private, price=sl.price, notes=sl.notes, timezone=sl.timezone,
                created_by=sl.created_by, version=sl.version,
            ))
        await self.s.flush()
        return list(slots)

    async def list_for_provider_on(self, provider_id, on: dt.date) -> Sequence[Slot]:
        res = await self.s.execute(self._q().where(
            SlotRow.provider_id==provider_id, SlotRow.date==on, SlotRow.status != SlotStatus.CANCELLED.value
        ).order_by(SlotRow.start_minute))
        return [to_slot(r) for r in res.scalars().all()]

    async def find_exact(self, provider_id, on: dt.date, window: TimeWindow, service_id=None) -> Slot | None:
        q = self._open(self._q().where(
            SlotRow.provider_id==provider_id, SlotRow.date==on,
            SlotRow.start_minute==window.start, SlotRow.end_minute==window.end,
        ), service_id)
        res = await self.s.execute(q.order_by(SlotRow.service_id.is_(None)).limit(1))
        row = res.scalars().first()
        return to_slot(row) if row else None

    async def find_available(self, provider_id, start_date: dt.date, end_date: dt.date, service_id=None, duration=None) -> Sequence[Slot]:
        q = self._open(self._q().where(
            SlotRow.provider_id==provider_id, SlotRow.date >= start_date, SlotRow.date <= end_date
        ), service_id)
        if duration is not None:
            q = q.where(SlotRow.end_minute - SlotRow.start_minute == duration)
        res = await self.s.execute(q.order_by(SlotRow.date, SlotRow.start_minute))
        return [to_slot(r) for r in res.scalars().all()]

    # compare-and-set transitions; None means the slot was not in a state that allows it

    async def try_book(self, slot_id: uuid.UUID, booking_id: uuid.UUID) -> Slot | None:
        n = SlotRow.current_participants + 1
        res = await self.s.execute(update(SlotRow).where(
            SlotRow.id==slot_id,
            SlotRow.status==_AVAILABLE,
            SlotRow.current_participants < SlotRow.max_participants,
            SlotRow.deleted_at.is_(None),
        ).values(
            current_participants=n,
            status=case((n >= SlotRow.max_participants, _BOOKED), else_=SlotRow.status),
            booking_id=case((SlotRow.max_participants == 1, booking_id), else_=SlotRow.booking_id),
            version=SlotRow.version + 1,
        ).execution_options(synchronize_session=False))
        return await self.get(slot_id) if res.rowcount == 1 else None

    async def release(self, slot_id: uuid.UUID, booking_id: uuid.UUID) -> Slot | None:
        res = await self.s.execute(update(SlotRow).where(
            SlotRow.id==slot_id,
            SlotRow.current_participants > 0,
            SlotRow.status.in_([_AVAILABLE, _BOOKED]),
            or_(SlotRow.max_participants > 1, SlotRow.booking_id==booking_id),
        ).values(
            current_participants=SlotRow.current_participants - 1,
            status=_AVAILABLE,
            booking_id=None,
            version=SlotRow.version + 1,
        ).execution_options(synchronize_session=False))
        return await self.get(slot_id) if res.rowcount == 1 else None

    async def cancel(self, slot_id: uuid.UUID) -> Slot | None:
        res = await self.s.execute(update(SlotRow).where(
            SlotRow.id==slot_id, SlotRow.current_participants==0, SlotRow.status != SlotStatus.CANCELLED.value,
        ).values(status=SlotStatus.CANCELLED.value, version=SlotRow.version + 1).execution_options(synchronize_session=False))
        return await self.get(slot_id) if res.rowcount == 1 else None
