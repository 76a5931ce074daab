from typing import Protocol, runtime_checkable

from booking_core.modules.bookings.schemas import Booking


@runtime_checkable
class NotificationPort(Protocol):
    async def notify(self, event: str, booking: Booking, **extra) -> None: ...
