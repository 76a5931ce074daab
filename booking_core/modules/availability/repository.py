import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from booking_core.core.errors import ConcurrentUpdate
from booking_core.modules.availability.models import AvailabilityRow
from booking_core.modules.availability.schemas import AvailabilityRecord, WeeklyAvailability

def to_record(row: AvailabilityRow) -> AvailabilityRecord:
    return AvailabilityRecord(
        provider_id=row.provider_id,
        weekly=WeeklyAvailability(days=row.weekly, break_time=row.break_time),
        overrides=row.overrides or (),
        buffer_time=row.buffer_time,
        timezone=row.timezone,
        is_active=row.is_active,
        last_synced=row.last_synced,
        version=row.version,
        booking_seq=row.booking_seq,
    )

def _values(r: AvailabilityRecord) -> dict:
    data = r.model_dump(mode="json", include={"weekly", "overrides"})
    return {
        "weekly": data["weekly"]["days"],
        "break_time": data["weekly"]["break_time"],
        "overrides": data["overrides"],
        "buffer_time": r.buffer_time,
        "timezone": r.timezone,
        "is_active": r.is_active,
        "last_synced": r.last_synced,
    }

class AvailabilityRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def get(self, provider_id: uuid.UUID) -> AvailabilityRecord | None:
        res = await self.s.execute(select(AvailabilityRow).where(
            AvailabilityRow.provider_id==provider_id, AvailabilityRow.deleted_at.is_(None)
        ).execution_options(populate_existing=True))
        row = res.scalar_one_or_none()
        return to_record(row) if row else None

    async def insert(self, record: AvailabilityRecord) -> AvailabilityRecord:
        self.s.add(AvailabilityRow(provider_id=record.provider_id, version=record.version, booking_seq=record.booking_seq, **_values(record)))
        try:
            await self.s.flush()
        except IntegrityError:
            # another request created it first
            await self.s.rollback()
            existing = await self.get(record.provider_id)
            if existing is None:
                raise
            return existing
        return record

    async def save(self, record: AvailabilityRecord, expected_version: int) -> AvailabilityRecord:
        res = await self.s.execute(update(AvailabilityRow).where(
            AvailabilityRow.provider_id==record.provider_id,
            AvailabilityRow.version==expected_version,
            AvailabilityRow.deleted_at.is_(None),
        ).values(
            version=AvailabilityRow.version + 1,
            booking_seq=AvailabilityRow.booking_seq + 1,
            **_values(record),
        ).execution_options(synchronize_session=False))
        if res.rowcount != 1:
            raise ConcurrentUpdate("Availability was changed by another request")
        return await self.get(record.provider_id)

    async def advance_booking_seq(self, provider_id: uuid.UUID, expected: int) -> bool:
        res = await self.s.execute(update(AvailabilityRow).where(
            AvailabilityRow.provider_id==provider_id, AvailabilityRow.booking_seq==expected
        ).values(booking_seq=expected + 1).execution_options(synchronize_session=False))
        return res.rowcount == 1
