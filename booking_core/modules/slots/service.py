import datetime as dt
import logging
import uuid
from typing import Callable

from booking_core.core.config import settings
from booking_core.core.errors import AlreadyTerminal, InvalidRequest, NotFound, SlotConflict
from booking_core.core.intervals import TimeWindow, Weekday, at, make_window
from booking_core.modules.availability.recurrence import RecurrenceSpec, expand
from booking_core.modules.availability.service import _now
from booking_core.modules.slots.schemas import Slot, SlotCreate, SlotGenerate, SlotStatus
from booking_core.platform.ports.store import StorePort

logger = logging.getLogger(__name__)

MAX_GENERATE_DAYS = 366


class SlotService:
    def __init__(self, store: StorePort, clock: Callable[[], dt.datetime] | None = None):
        self.store = store
        self.clock = clock or _now

    async def _provider_tz(self, provider_id: uuid.UUID) -> str:
        if await self.store.providers.get(provider_id) is None:
            raise NotFound.of("Provider", provider_id)
        rec = await self.store.availability.get(provider_id)
        return rec.timezone if rec else settings.DEFAULT_TIMEZONE

    async def _clashes(self, provider_id: uuid.UUID, on: dt.date, window: TimeWindow) -> bool:
        return any(s.window.overlaps(window) for s in await self.store.slots.list_for_provider_on(provider_id, on))

    async def create_slot(self, req: SlotCreate, created_by: str | None = None) -> Slot:
        window = make_window(req.start_time, req.end_time)
        tz = await self._provider_tz(req.provider_id)
        if at(req.date, window.start) <= self.clock():
            raise InvalidRequest("Slot must start in the future")
        if await self._clashes(req.provider_id, req.date, window):
            raise SlotConflict(f"Slot {req.date} {window.label} overlaps an existing slot")
        slot = Slot(
            provider_id=req.provider_id, service_id=req.service_id, date=req.date, window=window,
            max_participants=req.max_participants, price=req.price, is_private=req.is_private,
            notes=req.notes, timezone=tz, created_by=created_by,
        )
        await self.store.slots.insert_many([slot])
        await self.store.commit()
        logger.info(f"slot {slot.id} created for provider {slot.provider_id} on {slot.date} {window.label}")
        return slot

    async def generate_recurring_slots(self, req: SlotGenerate, created_by: str | None = None) -> tuple[Slot, ...]:
        """Create one slot per expanded date, skipping past dates and dates that already have a clashing slot."""
        if (req.end_date - req.start_date).days > MAX_GENERATE_DAYS:
            raise InvalidRequest(f"Recurring slots can span at most {MAX_GENERATE_DAYS} days")
        if req.end_date < req.start_date:
            raise InvalidRequest("End date must not be before start date")
        tz = await self._provider_tz(req.provider_id)
        spec = RecurrenceSpec(
            frequency=req.frequency, start_date=req.start_date, end_date=req.end_date,
            window=make_window(req.start_time, req.end_time),
            days_of_week=tuple(Weekday.parse(d) for d in req.days_of_week),
            exclude_dates=frozenset(req.exclude_dates),
        )
        now = self.clock()
        group = uuid.uuid4()
        slots, skipped = [], 0
        for dw in expand(spec):
            if dw.starts_at <= now or await self._clashes(req.provider_id, dw.date, dw.window):
                skipped += 1
                continue
            slots.append(Slot(
                provider_id=req.provider_id, service_id=req.service_id, date=dw.date, window=dw.window,
                max_participants=req.max_participants, price=req.price, is_recurring=True,
                recurrence_group=group, timezone=tz, created_by=created_by,
            ))
        if slots:
            await self.store.slots.insert_many(slots)
            await self.store.commit()
        logger.info(f"generated {len(slots)} {req.frequency.value} slots for provider {req.provider_id}, skipped {skipped}")
        return tuple(slots)

    async def find_available_slots(
        self, provider_id: uuid.UUID, service_id: str | None = None, start_date: dt.date | None = None,
        end_date: dt.date | None = None, duration: int | None = None,
    ) -> list[Slot]:
        now = self.clock()
        start = start_date or now.date()
        end = end_date or start + dt.timedelta(days=settings.SLOT_SEARCH_DAYS)
        if end < start:
            raise InvalidRequest("End date must not be before start date")
        found = await self.store.slots.find_available(provider_id, start, end, service_id=service_id, duration=duration)
        return [s for s in found if s.starts_at > now]

    async def get_slot(self, slot_id: uuid.UUID) -> Slot:
        slot = await self.store.slots.get(slot_id)
        if slot is None:
            raise NotFound.of("Slot", slot_id)
        return slot

    async def cancel_slot(self, slot_id: uuid.UUID) -> Slot:
        slot = await self.get_slot(slot_id)
        if slot.status == SlotStatus.CANCELLED:
            raise AlreadyTerminal("Slot is already cancelled")
        cancelled = await self.store.slots.cancel(slot_id)
        if cancelled is None:
            raise SlotConflict("Cannot cancel a slot that has bookings")
        await self.store.commit()
        logger.info(f"slot {slot_id} cancelled")
        return cancelled
