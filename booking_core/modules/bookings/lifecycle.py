import datetime as dt
import logging
import secrets
import string
import uuid
from typing import Awaitable, Callable

from booking_core.core.config import settings
from booking_core.core.errors import AlreadyTerminal, BookingError, ConcurrentUpdate, NotFound
from booking_core.modules.availability.service import AvailabilityService, _now
from booking_core.modules.bookings.schemas import Booking, BookingStatus as S
from booking_core.platform.ports.notifications import NotificationPort
from booking_core.platform.ports.payments import PaymentPort
from booking_core.platform.ports.store import BookingWrite, StorePort
from booking_core.platform.provider_registry import registry

logger = logging.getLogger(__name__)

VALID_NEXT = {
    S.PENDING: {S.CONFIRMED, S.CANCELLED, S.REJECTED},
    S.CONFIRMED: {S.PENDING, S.IN_PROGRESS, S.RESCHEDULED, S.COMPLETED, S.CANCELLED, S.REJECTED, S.NO_SHOW},
    S.RESCHEDULED: {S.CONFIRMED, S.CANCELLED},
    S.IN_PROGRESS: {S.COMPLETED, S.CANCELLED},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
    S.REJECTED: set(),
    S.NO_SHOW: set(),
}

_ALPHABET = string.ascii_uppercase + string.digits


def ensure_transition(b: Booking, target: S) -> None:
    if target in VALID_NEXT[b.status]:
        return
    if b.is_terminal:
        raise AlreadyTerminal(f"Booking {b.booking_number} is already {b.status.value}")
    raise AlreadyTerminal(f"Cannot move booking from {b.status.value} to {target.value}")


def new_booking_number(now: dt.datetime) -> str:
    return f"PB-{now:%Y%m%d}-{''.join(secrets.choice(_ALPHABET) for _ in range(5))}"


class Lifecycle:
    """Plumbing shared by every service that moves bookings between states."""

    def __init__(
        self,
        store: StorePort,
        payments: PaymentPort | None = None,
        notifier: NotificationPort | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ):
        self.store = store
        self.payments = payments or registry.payments()
        self.notifier = notifier or registry.notifier()
        self.clock = clock or _now
        self.availability = AvailabilityService(store, self.clock)

    async def _load(self, booking_id: uuid.UUID) -> Booking:
        b = await self.store.bookings.get(booking_id)
        if b is None:
            raise NotFound.of("Booking", booking_id)
        return b

    async def _write(self, change: BookingWrite) -> Booking:
        try:
            saved = await self.store.apply(change)
        except BookingError:
            await self.store.rollback()
            raise
        await self.store.commit()
        return saved

    async def _retrying(self, attempt: Callable[[], Awaitable[Booking]]) -> Booking:
        """Run ``attempt`` again from fresh reads when a concurrent writer got in first."""
        for n in range(1, settings.WRITE_RETRY_ATTEMPTS + 1):
            try:
                return await attempt()
            except ConcurrentUpdate as e:
                logger.info(f"concurrent write ({e.reason}), attempt {n} of {settings.WRITE_RETRY_ATTEMPTS}")
        raise ConcurrentUpdate("The booking is being changed by another request, please retry")

    async def _notify(self, event: str, booking: Booking, **extra) -> None:
        try:
            await self.notifier.notify(event, booking, **extra)
        except Exception:
            logger.warning(f"notification {event} for {booking.booking_number} failed", exc_info=True)

    async def _capture(self, booking: Booking) -> None:
        try:
            await self.payments.request_capture(booking)
        except Exception:
            logger.error(f"capture intent for {booking.booking_number} was not published", exc_info=True)

    async def _refund(self, booking: Booking, amount: float) -> None:
        try:
            await self.payments.request_refund(booking, amount)
        except Exception:
            logger.error(f"refund intent for {booking.booking_number} was not published", exc_info=True)
