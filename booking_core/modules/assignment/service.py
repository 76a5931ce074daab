import datetime as dt
import logging
import uuid

from booking_core.core.errors import AlreadyAssigned, AlreadyTerminal, InvalidRequest, NoProviderAvailable, NotFound
from booking_core.core.intervals import TimeWindow, make_window
from booking_core.modules.assignment.schemas import RankedProvider
from booking_core.modules.availability.schemas import AvailabilityRecord
from booking_core.modules.bookings.lifecycle import Lifecycle
from booking_core.modules.bookings.schemas import Booking, BookingStatus, PaymentStatus, UPCOMING, WORKLOAD
from booking_core.modules.providers.schemas import Provider
from booking_core.platform.ports.store import BookingWrite

logger = logging.getLogger(__name__)


class AssignmentService(Lifecycle):
    async def _rank(
        self, on: dt.date, window: TimeWindow, service_id: str | None, exclude_booking_id: uuid.UUID | None = None
    ) -> list[tuple[RankedProvider, AvailabilityRecord]]:
        now = self.clock()
        ranked = []
        for p in await self.store.providers.find_eligible(service_id):
            # the record (and its booking_seq) is read before the check it guards
            rec = await self.availability.get_or_create(p.id)
            check = await self.availability.check_window(p.id, on, window, record=rec, exclude_booking_id=exclude_booking_id)
            if not check.available:
                continue
            load = await self.store.bookings.count_active_for_provider(p.id, now, WORKLOAD)
            ranked.append((RankedProvider(provider=p, upcoming_bookings=load), rec))
        # least busy first, then best rated
        ranked.sort(key=lambda r: (r[0].upcoming_bookings, -r[0].provider.rating, r[0].provider.name, str(r[0].provider.id)))
        return ranked

    async def find_available_providers(
        self, on: dt.date, start: str | int, end: str | int, service_id: str | None = None,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> tuple[RankedProvider, ...]:
        ranked = await self._rank(on, make_window(start, end), service_id, exclude_booking_id)
        return tuple(r for r, _ in ranked)

    def _ensure_assignable(self, b: Booking, force: bool) -> None:
        if b.status not in UPCOMING:
            raise AlreadyTerminal(f"Cannot assign a provider to a {b.status.value} booking")
        if b.provider_id is not None and not force:
            raise AlreadyAssigned("A provider is already assigned to this booking. Use force=true to reassign.")
        if b.slot_id is not None:
            raise InvalidRequest("Slot bookings keep the provider of their slot")

    async def _assign(self, b: Booking, provider: Provider, rec: AvailabilityRecord, actor: str | None) -> Booking:
        status = BookingStatus.CONFIRMED if b.status == BookingStatus.PENDING else b.status
        updated = b.model_copy(update={"provider_id": provider.id, "status": status, "updated_by": actor})
        return await self._write(BookingWrite(updated, expected_version=b.version, provider_seq=(provider.id, rec.booking_seq)))

    async def _after_assign(self, before: Booking, saved: Booking) -> None:
        logger.info(f"booking {saved.booking_number} assigned to provider {saved.provider_id}")
        await self._notify("assigned", saved, previous_provider_id=str(before.provider_id) if before.provider_id else None)
        if before.status == BookingStatus.PENDING and saved.payment_status == PaymentStatus.PENDING and saved.total_amount > 0:
            await self._capture(saved)

    async def auto_assign(self, booking_id: uuid.UUID, force: bool = False, actor: str | None = None) -> Booking:
        before = None

        async def attempt() -> Booking:
            nonlocal before
            before = await self._load(booking_id)
            self._ensure_assignable(before, force)
            ranked = await self._rank(before.date, before.window, before.service_id, exclude_booking_id=before.id)
            if not ranked:
                raise NoProviderAvailable("No available provider found for this time slot", booking_id=str(booking_id))
            top, rec = ranked[0]
            return await self._assign(before, top.provider, rec, actor)

        saved = await self._retrying(attempt)
        await self._after_assign(before, saved)
        return saved

    async def manual_assign(
        self, booking_id: uuid.UUID, provider_id: uuid.UUID, force: bool = False, actor: str | None = None
    ) -> Booking:
        before = None

        async def attempt() -> Booking:
            nonlocal before
            before = await self._load(booking_id)
            self._ensure_assignable(before, force)
            provider = await self.store.providers.get(provider_id)
            if provider is None:
                raise NotFound.of("Provider", provider_id)
            if not (provider.is_active and provider.is_verified):
                raise InvalidRequest("Provider is not active or not verified")
            if not provider.can_perform(before.service_id):
                raise InvalidRequest("Provider does not offer this service")
            rec = await self.availability.get_or_create(provider.id)
            check = await self.availability.check_window(provider.id, before.date, before.window, record=rec, exclude_booking_id=before.id)
            check.raise_if_denied()
            return await self._assign(before, provider, rec, actor)

        saved = await self._retrying(attempt)
        await self._after_assign(before, saved)
        return saved

    async def unassign(self, booking_id: uuid.UUID, actor: str | None = None) -> Booking:
        async def attempt() -> Booking:
            b = await self._load(booking_id)
            if b.provider_id is None:
                raise InvalidRequest("No provider is assigned to this booking")
            if b.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise AlreadyTerminal(f"Cannot remove the provider from a {b.status.value} booking")
            if b.slot_id is not None:
                raise InvalidRequest("Slot bookings keep the provider of their slot")
            updated = b.model_copy(update={"provider_id": None, "status": BookingStatus.PENDING, "updated_by": actor})
            return await self._write(BookingWrite(updated, expected_version=b.version))

        saved = await self._retrying(attempt)
        logger.info(f"provider removed from booking {saved.booking_number}")
        await self._notify("unassigned", saved)
        return saved

    async def list_available_providers(self, booking_id: uuid.UUID) -> tuple[RankedProvider, ...]:
        b = await self._load(booking_id)
        ranked = await self._rank(b.date, b.window, b.service_id, exclude_booking_id=b.id)
        return tuple(r.model_copy(update={"is_current": r.provider.id == b.provider_id}) for r, _ in ranked)
