import uuid
from fastapi import APIRouter, Depends
from booking_core.api.envelope import ok
from booking_core.core.security import get_principal, require_admin, require_scopes, ensure_admin_or_owner, Principal
from booking_core.platform.provider_registry import get_store
from booking_core.modules.bookings.service import BookingService
from booking_core.modules.bookings.schemas import (
    Booking, BookingCreate, CancelRequest, NoteCreate, PaymentUpdate, RescheduleCreate, RescheduleDecision,
)

router = APIRouter()

def svc(store=Depends(get_store)) -> BookingService:
    return BookingService(store)

async def _provider_user(service: BookingService, b: Booking) -> uuid.UUID | None:
    if b.provider_id is None:
        return None
    p = await service.store.providers.get(b.provider_id)
    return p.user_id if p else None

async def _as_party(service: BookingService, principal: Principal, booking_id: uuid.UUID) -> Booking:
    """Load the booking, allowing admins, its customer and its provider."""
    b = await service.get_booking(booking_id)
    ensure_admin_or_owner(principal, b.user_id, await _provider_user(service, b))
    return b

async def _as_provider(service: BookingService, principal: Principal, booking_id: uuid.UUID) -> Booking:
    b = await service.get_booking(booking_id)
    ensure_admin_or_owner(principal, await _provider_user(service, b))
    return b

@router.post("", status_code=201, dependencies=[Depends(require_scopes("bookings:write"))])
async def create_booking(payload: BookingCreate, principal: Principal = Depends(get_principal), service: BookingService = Depends(svc)):
    if not principal.is_admin:
        payload = payload.model_copy(update={"user_id": principal.user_id})
    b = await service.create_booking(payload, actor=principal.actor)
    return ok(b, "Booking confirmed" if b.provider_id else "Booking created")

@router.get("/{booking_id}", dependencies=[Depends(require_scopes("bookings:read"))])
async def get_booking(booking_id: uuid.UUID, principal: Principal = Depends(get_principal), service: BookingService = Depends(svc)):
    return ok(await _as_party(service, principal, booking_id))

@router.post("/{booking_id}/cancel", dependencies=[Depends(require_scopes("bookings:write"))])
async def cancel_booking(booking_id: uuid.UUID, payload: CancelRequest, principal: Principal = Depends(get_principal),
                         service: BookingService = Depends(svc)):
    await _as_party(service, principal, booking_id)
    return ok(await service.cancel_booking(booking_id, payload.reason, cancelled_by=principal.actor), "Booking cancelled")

@router.post("/{booking_id}/reject", dependencies=[Depends(require_scopes("bookings:write"))])
async def reject_booking(booking_id: uuid.UUID, payload: CancelRequest, principal: Principal = Depends(get_principal),
                         service: BookingService = Depends(svc)):
    await _as_provider(service, principal, booking_id)
    return ok(await service.reject_booking(booking_id, payload.reason, rejected_by=principal.actor), "Booking rejected")

# Reschedule
@router.post("/{booking_id}/reschedule", dependencies=[Depends(require_scopes("bookings:write"))])
async def request_reschedule(booking_id: uuid.UUID, payload: RescheduleCreate, principal: Principal = Depends(get_principal),
                             service: BookingService = Depends(svc)):
    await _as_party(service, principal, booking_id)
    b = await service.request_reschedule(
        booking_id, payload.new_date, payload.new_start_time, payload.new_end_time,
        reason=payload.reason, requested_by=principal.actor,
    )
    return ok(b, "Reschedule requested")

@router.post("/{booking_id}/reschedule/{request_id}/approve", dependencies=[Depends(require_scopes("bookings:write"))])
async def approve_reschedule(booking_id: uuid.UUID, request_id: uuid.UUID, payload: RescheduleDecision,
                             principal: Principal = Depends(get_principal), service: BookingService = Depends(svc)):
    await _as_provider(service, principal, booking_id)
    b = await service.approve_reschedule(booking_id, request_id, approved_by=principal.actor, notes=payload.notes)
    return ok(b, "Reschedule approved")

@router.post("/{booking_id}/reschedule/{request_id}/reject", dependencies=[Depends(require_scopes("bookings:write"))])
async def reject_reschedule(booking_id: uuid.UUID, request_id: uuid.UUID, payload: RescheduleDecision,
                            principal: Principal = Depends(get_principal), service: BookingService = Depends(svc)):
    await _as_provider(service, principal, booking_id)
    b = await service.reject_reschedule(booking_id, request_id, rejected_by=principal.actor, reason=payload.notes)
    return ok(b, "Reschedule rejected")

# Session progress
@router.post("/{booking_id}/start", dependencies=[Depends(require_scopes("bookings:write"))])
async def start_session(booking_id: uuid.UUID, principal: Principal = Depends(get_principal), service: BookingService = Depends(svc)):
    await _as_provider(service, principal, booking_id)
    return ok(await service.start_session(booking_id, actor=principal.actor), "Session started")

@router.post("/{booking_id}/complete", dependencies=[Depends(require_scopes("bookings:write"))])
async def complete_booking(booking_id: uuid.UUID, principal: Principal = Depends(get_principal), service: BookingService = Depends(svc)):
    await _as_provider(service, principal, booking_id)
    return ok(await service.complete_booking(booking_id, actor=principal.actor), "Booking completed")

@router.post("/{booking_id}/no-show", dependencies=[Depends(require_scopes("bookings:write"))])
async def mark_no_show(booking_id: uuid.UUID, principal: Principal = Depends(get_principal), service: BookingService = Depends(svc)):
    await _as_provider(service, principal, booking_id)
    return ok(await service.mark_no_show(booking_id, actor=principal.actor), "Marked as no-show")

# Bookkeeping
@router.post("/{booking_id}/payment", dependencies=[Depends(require_scopes("bookings:write"))])
async def record_payment(booking_id: uuid.UUID, payload: PaymentUpdate, principal: Principal = Depends(require_admin),
                         service: BookingService = Depends(svc)):
    return ok(await service.record_payment(booking_id, payload.payment_status, actor=principal.actor), "Payment updated")

@router.post("/{booking_id}/notes", status_code=201, dependencies=[Depends(require_scopes("bookings:write"))])
async def add_note(booking_id: uuid.UUID, payload: NoteCreate, principal: Principal = Depends(get_principal),
                   service: BookingService = Depends(svc)):
    await _as_party(service, principal, booking_id)
    b = await service.add_note(booking_id, payload.content, created_by=principal.actor, is_private=payload.is_private)
    return ok(b, "Note added")
