import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ProviderKind = Literal["priest", "astrologer"]


class Provider(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: uuid.UUID | None = None
    name: str
    kind: ProviderKind = "priest"
    specialization: str = ""
    capabilities: tuple[str, ...] = ()
    rating: float = Field(default=0.0, ge=0, le=5)
    rating_count: int = 0
    is_available: bool = True
    is_verified: bool = False
    is_active: bool = True

    @property
    def is_eligible(self) -> bool:
        return self.is_available and self.is_active and self.is_verified

    def can_perform(self, service_id: str | None) -> bool:
        return service_id is None or service_id in self.capabilities


class ProviderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    user_id: uuid.UUID | None = None
    kind: ProviderKind = "priest"
    specialization: str = ""
    capabilities: list[str] = []
    rating: float = Field(default=0.0, ge=0, le=5)
    is_available: bool = True
    is_verified: bool = False


class ProviderUpdate(BaseModel):
    name: str | None = None
    specialization: str | None = None
    capabilities: list[str] | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    is_available: bool | None = None
    is_verified: bool | None = None
    is_active: bool | None = None
