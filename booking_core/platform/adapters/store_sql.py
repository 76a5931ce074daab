import logging
from sqlalchemy.ext.asyncio import AsyncSession
from booking_core.core.errors import ConcurrentUpdate, SlotConflict
from booking_core.modules.availability.repository import AvailabilityRepository
from booking_core.modules.bookings.repository import BookingRepository
from booking_core.modules.bookings.schemas import Booking
from booking_core.modules.providers.repository import ProviderRepository
from booking_core.modules.slots.repository import SlotRepository
from booking_core.platform.ports.store import BookingWrite

log = logging.getLogger("store.sql")

class SqlStore:
    """Store backed by one AsyncSession; a BookingWrite runs inside the session's transaction."""

    def __init__(self, s: AsyncSession):
        self.s = s
        self.providers = ProviderRepository(s)
        self.availability = AvailabilityRepository(s)
        self.bookings = BookingRepository(s)
        self.slots = SlotRepository(s)

    async def apply(self, change: BookingWrite) -> Booking:
        b = change.booking
        if change.provider_seq is not None:
            pid, seq = change.provider_seq
            # row lock on the availability record until commit
            if not await self.availability.advance_booking_seq(pid, seq):
                raise ConcurrentUpdate("Provider schedule changed while booking")
        if change.claim_slot is not None:
            if await self.slots.try_book(change.claim_slot, b.id) is None:
                raise SlotConflict("Slot is no longer available")
        if change.expected_version is None:
            await self.bookings.insert(b)
        else:
            await self.bookings.update(b, change.expected_version)
        if change.release_slot is not None:
            if await self.slots.release(change.release_slot, b.id) is None:
                log.warning(f"slot {change.release_slot} had nothing to release for booking {b.booking_number}")
        return await self.bookings.get(b.id)

    async def commit(self) -> None:
        await self.s.commit()

    async def rollback(self) -> None:
        await self.s.rollback()
