import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from booking_core.modules.providers.models import ProviderRow
from booking_core.modules.providers.schemas import Provider

_FIELDS = ("user_id", "name", "kind", "specialization", "rating", "rating_count", "is_available", "is_verified", "is_active")

def to_provider(row: ProviderRow) -> Provider:
    return Provider.model_validate(row, from_attributes=True)

class ProviderRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def get(self, provider_id: uuid.UUID) -> Provider | None:
        res = await self.s.execute(select(ProviderRow).where(
            ProviderRow.id==provider_id, ProviderRow.deleted_at.is_(None)
        ).execution_options(populate_existing=True))
        row = res.scalar_one_or_none()
        return to_provider(row) if row else None

    async def find_eligible(self, service_id: str | None = None) -> Sequence[Provider]:
        # capabilities is a JSON list; match it in Python to stay portable across dialects
        res = await self.s.execute(select(ProviderRow).where(
            ProviderRow.is_available.is_(True),
            ProviderRow.is_active.is_(True),
            ProviderRow.is_verified.is_(True),
            ProviderRow.deleted_at.is_(None),
        ).execution_options(populate_existing=True))
        return [p for p in map(to_provider, res.scalars().all()) if p.can_perform(service_id)]

    async def add(self, provider: Provider) -> Provider:
        row = ProviderRow(id=provider.id, capabilities=list(provider.capabilities), **{f: getattr(provider, f) for f in _FIELDS})
        self.s.add(row); await self.s.flush(); return provider

    async def save(self, provider: Provider) -> Provider:
        await self.s.execute(update(ProviderRow).where(ProviderRow.id==provider.id).values(
            capabilities=list(provider.capabilities), version=ProviderRow.version + 1,
            **{f: getattr(provider, f) for f in _FIELDS}
        ).execution_options(synchronize_session=False))
        return provider
