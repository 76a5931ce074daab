from typing import Protocol, runtime_checkable

from booking_core.modules.bookings.schemas import Booking


@runtime_checkable
class PaymentPort(Protocol):
    async def request_capture(self, booking: Booking) -> None: ...
    async def request_refund(self, booking: Booking, amount: float) -> None: ...
