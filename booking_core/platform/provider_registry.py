from contextlib import asynccontextmanager
from booking_core.core.config import settings
from booking_core.platform.ports.event_bus import EventBusPort
from booking_core.platform.adapters.bus_noop import NoopEventBus
from booking_core.platform.adapters.bus_redis import RedisEventBus
from booking_core.platform.ports.payments import PaymentPort
from booking_core.platform.adapters.payments_bus import BusPaymentIntents
from booking_core.platform.ports.notifications import NotificationPort
from booking_core.platform.adapters.notify_bus import BusNotifier
from booking_core.platform.adapters.store_memory import MemoryStore
from booking_core.platform.adapters.store_sql import SqlStore

class ProviderRegistry:
    _event_bus: EventBusPort | None = None
    _payments: PaymentPort | None = None
    _notifier: NotificationPort | None = None
    _memory_store: MemoryStore | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def payments(cls) -> PaymentPort:
        if cls._payments is None:
            cls._payments = BusPaymentIntents(cls.event_bus())
        return cls._payments

    @classmethod
    def notifier(cls) -> NotificationPort:
        if cls._notifier is None:
            cls._notifier = BusNotifier(cls.event_bus())
        return cls._notifier

    @classmethod
    @asynccontextmanager
    async def open_store(cls):
        if settings.STORE_PROVIDER == "sql":
            from booking_core.core.db import SessionLocal
            async with SessionLocal() as s:
                yield SqlStore(s)
        else:
            if cls._memory_store is None:
                cls._memory_store = MemoryStore()
            yield cls._memory_store

    @classmethod
    def reset(cls) -> None:
        cls._event_bus = cls._payments = cls._notifier = cls._memory_store = None

registry = ProviderRegistry()

async def get_store():
    async with registry.open_store() as store:
        yield store
