import uuid
from fastapi import APIRouter, Depends
from booking_core.api.envelope import ok
from booking_core.core.security import require_admin, require_scopes, Principal
from booking_core.platform.provider_registry import get_store
from booking_core.modules.assignment.service import AssignmentService
from booking_core.modules.assignment.schemas import AssignRequest, AvailableProvidersQuery

router = APIRouter()

def svc(store=Depends(get_store)) -> AssignmentService:
    return AssignmentService(store)

@router.get("/assignment/available-providers", dependencies=[Depends(require_scopes("providers:read"))])
async def available_providers(q: AvailableProvidersQuery = Depends(), service: AssignmentService = Depends(svc)):
    found = await service.find_available_providers(q.date, q.start_time, q.end_time, q.service_id, q.exclude_booking_id)
    return ok({"providers": found, "count": len(found)})

@router.get("/bookings/{booking_id}/available-providers", dependencies=[Depends(require_scopes("bookings:read"))])
async def booking_available_providers(booking_id: uuid.UUID, _: Principal = Depends(require_admin),
                                      service: AssignmentService = Depends(svc)):
    found = await service.list_available_providers(booking_id)
    return ok({"providers": found, "count": len(found)})

@router.post("/bookings/{booking_id}/assign/auto", dependencies=[Depends(require_scopes("bookings:write"))])
async def auto_assign(booking_id: uuid.UUID, force: bool = False, principal: Principal = Depends(require_admin),
                      service: AssignmentService = Depends(svc)):
    b = await service.auto_assign(booking_id, force=force, actor=principal.actor)
    return ok(b, "Provider assigned")

@router.post("/bookings/{booking_id}/assign", dependencies=[Depends(require_scopes("bookings:write"))])
async def manual_assign(booking_id: uuid.UUID, payload: AssignRequest, principal: Principal = Depends(require_admin),
                        service: AssignmentService = Depends(svc)):
    if payload.provider_id is None:
        b = await service.auto_assign(booking_id, force=payload.force, actor=principal.actor)
    else:
        b = await service.manual_assign(booking_id, payload.provider_id, force=payload.force, actor=principal.actor)
    return ok(b, "Provider assigned")

@router.delete("/bookings/{booking_id}/assign", dependencies=[Depends(require_scopes("bookings:write"))])
async def unassign(booking_id: uuid.UUID, principal: Principal = Depends(require_admin), service: AssignmentService = Depends(svc)):
    return ok(await service.unassign(booking_id, actor=principal.actor), "Provider removed")
