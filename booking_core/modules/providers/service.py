import logging
import uuid
from booking_core.core.errors import NotFound
from booking_core.modules.providers.schemas import Provider, ProviderCreate, ProviderUpdate
from booking_core.platform.ports.store import StorePort

logger = logging.getLogger(__name__)

class ProviderService:
    def __init__(self, store: StorePort):
        self.store = store

    async def register(self, payload: ProviderCreate) -> Provider:
        data = payload.model_dump()
        data["capabilities"] = tuple(data["capabilities"])
        provider = await self.store.providers.add(Provider(**data))
        await self.store.commit()
        logger.info(f"provider {provider.id} registered ({provider.kind})")
        return provider

    async def get(self, provider_id: uuid.UUID) -> Provider:
        p = await self.store.providers.get(provider_id)
        if p is None:
            raise NotFound.of("Provider", provider_id)
        return p

    async def update(self, provider_id: uuid.UUID, payload: ProviderUpdate) -> Provider:
        p = await self.get(provider_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "capabilities" in changes:
            changes["capabilities"] = tuple(changes["capabilities"])
        saved = await self.store.providers.save(p.model_copy(update=changes))
        await self.store.commit()
        return saved
