import uuid
from datetime import date
from fastapi import APIRouter, Depends, Query
from booking_core.api.envelope import ok
from booking_core.core.security import get_principal, require_scopes, ensure_admin_or_owner, Principal
from booking_core.platform.provider_registry import get_store
from booking_core.modules.providers.service import ProviderService
from booking_core.modules.slots.service import SlotService
from booking_core.modules.slots.schemas import SlotCreate, SlotGenerate

router = APIRouter()

def svc(store=Depends(get_store)) -> SlotService:
    return SlotService(store)

def providers_svc(store=Depends(get_store)) -> ProviderService:
    return ProviderService(store)

@router.post("", status_code=201, dependencies=[Depends(require_scopes("slots:write"))])
async def create_slot(payload: SlotCreate, principal: Principal = Depends(get_principal),
                      service: SlotService = Depends(svc), providers: ProviderService = Depends(providers_svc)):
    p = await providers.get(payload.provider_id)
    ensure_admin_or_owner(principal, p.user_id)
    return ok(await service.create_slot(payload, created_by=principal.actor), "Slot created")

@router.post("/generate", status_code=201, dependencies=[Depends(require_scopes("slots:write"))])
async def generate_slots(payload: SlotGenerate, principal: Principal = Depends(get_principal),
                         service: SlotService = Depends(svc), providers: ProviderService = Depends(providers_svc)):
    p = await providers.get(payload.provider_id)
    ensure_admin_or_owner(principal, p.user_id)
    slots = await service.generate_recurring_slots(payload, created_by=principal.actor)
    return ok({"slots": slots, "count": len(slots)}, f"{len(slots)} slots created")

@router.get("", dependencies=[Depends(require_scopes("slots:read"))])
async def find_slots(provider_id: uuid.UUID, service_id: str | None = None, start_date: date | None = None,
                     end_date: date | None = None, duration: int | None = Query(None, ge=5, le=480),
                     service: SlotService = Depends(svc)):
    return ok(await service.find_available_slots(provider_id, service_id, start_date, end_date, duration))

@router.get("/{slot_id}", dependencies=[Depends(require_scopes("slots:read"))])
async def get_slot(slot_id: uuid.UUID, service: SlotService = Depends(svc)):
    return ok(await service.get_slot(slot_id))

@router.post("/{slot_id}/cancel", dependencies=[Depends(require_scopes("slots:write"))])
async def cancel_slot(slot_id: uuid.UUID, principal: Principal = Depends(get_principal),
                      service: SlotService = Depends(svc), providers: ProviderService = Depends(providers_svc)):
    slot = await service.get_slot(slot_id)
    p = await providers.get(slot.provider_id)
    ensure_admin_or_owner(principal, p.user_id)
    return ok(await service.cancel_slot(slot_id), "Slot cancelled")
