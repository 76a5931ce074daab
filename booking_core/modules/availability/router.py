import uuid
from datetime import date
from fastapi import APIRouter, Depends, Query
from booking_core.api.envelope import ok
from booking_core.core.security import get_principal, require_scopes, ensure_admin_or_owner, Principal
from booking_core.platform.provider_registry import get_store
from booking_core.modules.availability.service import AvailabilityService
from booking_core.modules.availability.schemas import (
    AvailabilityCheckQuery, AvailabilityOut, BreakTimeUpdate, CustomAvailabilityCreate, DefaultAvailabilityUpdate,
)
from booking_core.modules.providers.service import ProviderService

router = APIRouter()

def svc(store=Depends(get_store)) -> AvailabilityService:
    return AvailabilityService(store)

async def owner_check(provider_id: uuid.UUID, principal: Principal = Depends(get_principal), store=Depends(get_store)) -> Principal:
    p = await ProviderService(store).get(provider_id)
    ensure_admin_or_owner(principal, p.user_id)
    return principal

# Reads
@router.get("/{provider_id}/availability", dependencies=[Depends(require_scopes("availability:read"))])
async def get_availability(provider_id: uuid.UUID, service: AvailabilityService = Depends(svc)):
    return ok(AvailabilityOut.of(await service.get_or_create(provider_id)))

@router.get("/{provider_id}/availability/check", dependencies=[Depends(require_scopes("availability:read"))])
async def check_availability(provider_id: uuid.UUID, q: AvailabilityCheckQuery = Depends(), service: AvailabilityService = Depends(svc)):
    result = await service.check_availability(provider_id, q.date, q.start_time, q.end_time, q.exclude_booking_id)
    return ok(result, "Available" if result.available else result.reason)

@router.get("/{provider_id}/availability/slots", dependencies=[Depends(require_scopes("availability:read"))])
async def available_slots(provider_id: uuid.UUID, date: date, duration: int = Query(60, ge=5, le=480),
                          buffer_time: int | None = Query(None, ge=0, le=120), service: AvailabilityService = Depends(svc)):
    slots = await service.get_available_slots(provider_id, date, duration, buffer_time)
    return ok({"date": date, "slots": slots, "total_slots": len(slots)})

@router.get("/{provider_id}/availability/range", dependencies=[Depends(require_scopes("availability:read"))])
async def availability_range(provider_id: uuid.UUID, start_date: date, end_date: date, duration: int = Query(60, ge=5, le=480),
                             service: AvailabilityService = Depends(svc)):
    days = await service.get_availability_range(provider_id, start_date, end_date, duration)
    return ok([{"date": d, "slots": s, "total_slots": len(s)} for d, s in days.items()])

# Writes (admin or the provider)
@router.put("/{provider_id}/availability", dependencies=[Depends(require_scopes("availability:write"))])
async def update_availability(provider_id: uuid.UUID, payload: DefaultAvailabilityUpdate,
                              _: Principal = Depends(owner_check), service: AvailabilityService = Depends(svc)):
    rec = None
    if payload.day_of_week is not None:
        rec = await service.set_default_availability(provider_id, payload.day_of_week, payload.time_slots, payload.is_available)
    if payload.timezone is not None or payload.buffer_time is not None:
        rec = await service.update_settings(provider_id, timezone=payload.timezone, buffer_time=payload.buffer_time)
    if rec is None:
        rec = await service.get_or_create(provider_id)
    return ok(AvailabilityOut.of(rec), "Availability updated")

@router.post("/{provider_id}/availability/custom", dependencies=[Depends(require_scopes("availability:write"))])
async def set_custom(provider_id: uuid.UUID, payload: CustomAvailabilityCreate,
                     _: Principal = Depends(owner_check), service: AvailabilityService = Depends(svc)):
    rec = await service.set_custom_availability(
        provider_id, payload.date, payload.time_slots, payload.is_available, payload.reason,
        payload.is_recurring, payload.recurring_pattern, payload.recurring_end_date, payload.exclude_dates,
    )
    return ok(AvailabilityOut.of(rec), "Custom availability saved")

@router.delete("/{provider_id}/availability/custom/{on}", dependencies=[Depends(require_scopes("availability:write"))])
async def remove_custom(provider_id: uuid.UUID, on: date, _: Principal = Depends(owner_check), service: AvailabilityService = Depends(svc)):
    return ok(AvailabilityOut.of(await service.remove_custom_availability(provider_id, on)), "Custom availability removed")

@router.put("/{provider_id}/availability/break", dependencies=[Depends(require_scopes("availability:write"))])
async def set_break(provider_id: uuid.UUID, payload: BreakTimeUpdate,
                    _: Principal = Depends(owner_check), service: AvailabilityService = Depends(svc)):
    rec = await service.set_break_time(provider_id, payload.start_time, payload.end_time)
    return ok(AvailabilityOut.of(rec), "Break time updated")
