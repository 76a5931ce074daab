from booking_core.modules.bookings.schemas import Booking
from booking_core.platform.ports.event_bus import EventBusPort
from booking_core.platform.ports.notifications import NotificationPort

TOPIC = "booking.notifications"

class BusNotifier(NotificationPort):
    def __init__(self, bus: EventBusPort):
        self.bus = bus

    async def notify(self, event: str, booking: Booking, **extra) -> None:
        value = {
            "event": event,
            "booking_id": str(booking.id),
            "booking_number": booking.booking_number,
            "user_id": str(booking.user_id) if booking.user_id else None,
            "provider_id": str(booking.provider_id) if booking.provider_id else None,
            "status": booking.status.value,
            "date": booking.date.isoformat(),
            "window": booking.window.label,
        }
        value.update(extra)
        await self.bus.publish(TOPIC, booking.booking_number, value)
