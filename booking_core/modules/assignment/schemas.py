import datetime as dt
import uuid

from pydantic import BaseModel, ConfigDict

from booking_core.modules.providers.schemas import Provider


class RankedProvider(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: Provider
    upcoming_bookings: int
    is_current: bool = False


class AssignRequest(BaseModel):
    provider_id: uuid.UUID | None = None
    force: bool = False


class AvailableProvidersQuery(BaseModel):
    date: dt.date
    start_time: str
    end_time: str
    service_id: str | None = None
    exclude_booking_id: uuid.UUID | None = None
