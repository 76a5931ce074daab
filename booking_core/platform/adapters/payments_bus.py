from booking_core.modules.bookings.schemas import Booking
from booking_core.platform.ports.event_bus import EventBusPort
from booking_core.platform.ports.payments import PaymentPort

TOPIC = "payments.intents"

class BusPaymentIntents(PaymentPort):
    """Hands payment work to whoever consumes the intents topic; nothing is charged here."""

    def __init__(self, bus: EventBusPort):
        self.bus = bus

    async def request_capture(self, booking: Booking) -> None:
        await self.bus.publish(TOPIC, booking.booking_number, {
            "intent": "capture",
            "booking_id": str(booking.id),
            "amount": booking.total_amount,
            "currency": booking.currency,
        })

    async def request_refund(self, booking: Booking, amount: float) -> None:
        await self.bus.publish(TOPIC, booking.booking_number, {
            "intent": "refund",
            "booking_id": str(booking.id),
            "amount": amount,
            "currency": booking.currency,
        })
