from fastapi import APIRouter
from booking_core.modules.providers.router import router as providers_router
from booking_core.modules.availability.router import router as availability_router
from booking_core.modules.slots.router import router as slots_router
from booking_core.modules.bookings.router import router as bookings_router
from booking_core.modules.assignment.router import router as assignment_router

api_router = APIRouter()
api_router.include_router(providers_router, prefix="/providers", tags=["providers"])
api_router.include_router(availability_router, prefix="/providers", tags=["availability"])
api_router.include_router(slots_router, prefix="/slots", tags=["slots"])
api_router.include_router(bookings_router, prefix="/bookings", tags=["bookings"])
# assignment routes span /assignment and /bookings/{id}/assign
api_router.include_router(assignment_router, tags=["assignment"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
