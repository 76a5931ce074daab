import uuid
from fastapi import APIRouter, Depends, Query
from booking_core.api.envelope import ok
from booking_core.core.security import get_principal, require_admin, require_scopes, ensure_admin_or_owner, Principal
from booking_core.platform.provider_registry import get_store
from booking_core.modules.providers.service import ProviderService
from booking_core.modules.providers.schemas import ProviderCreate, ProviderUpdate
from booking_core.modules.bookings.service import BookingService

router = APIRouter()

def svc(store=Depends(get_store)) -> ProviderService:
    return ProviderService(store)

def bookings_svc(store=Depends(get_store)) -> BookingService:
    return BookingService(store)

@router.post("", status_code=201, dependencies=[Depends(require_scopes("providers:write"))])
async def register_provider(payload: ProviderCreate, _: Principal = Depends(require_admin), service: ProviderService = Depends(svc)):
    return ok(await service.register(payload), "Provider registered")

@router.get("/{provider_id}", dependencies=[Depends(require_scopes("providers:read"))])
async def get_provider(provider_id: uuid.UUID, service: ProviderService = Depends(svc)):
    return ok(await service.get(provider_id))

@router.patch("/{provider_id}", dependencies=[Depends(require_scopes("providers:write"))])
async def update_provider(provider_id: uuid.UUID, payload: ProviderUpdate, principal: Principal = Depends(get_principal), service: ProviderService = Depends(svc)):
    p = await service.get(provider_id)
    ensure_admin_or_owner(principal, p.user_id)
    if not principal.is_admin and payload.is_verified is not None:
        # verification is granted by admins only
        ensure_admin_or_owner(principal)
    return ok(await service.update(provider_id, payload), "Provider updated")

@router.get("/{provider_id}/bookings/upcoming", dependencies=[Depends(require_scopes("bookings:read"))])
async def provider_upcoming(provider_id: uuid.UUID, limit: int = Query(50, ge=1, le=200), offset: int = Query(0, ge=0),
                            principal: Principal = Depends(get_principal), service: ProviderService = Depends(svc),
                            bookings: BookingService = Depends(bookings_svc)):
    p = await service.get(provider_id)
    ensure_admin_or_owner(principal, p.user_id)
    return ok(await bookings.list_provider_upcoming(provider_id, limit=limit, offset=offset))
