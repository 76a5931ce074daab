from typing import Protocol, runtime_checkable

@runtime_checkable
class EventBusPort(Protocol):
    """Fire-and-forget transport for booking side effects (payment intents, notifications)."""

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None: ...
