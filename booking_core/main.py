import time
import logging
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from booking_core.core.config import settings
from booking_core.core.errors import BookingError, InvalidRequest
from booking_core.core.logging import setup_logging, request_id_ctx
from booking_core.core.db import init_models
from booking_core.api.router import api_router
from booking_core.platform.provider_registry import registry


setup_logging()
app = FastAPI(title=settings.APP_NAME)
logger = logging.getLogger(__name__)

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    request_id_ctx.set(rid)
    response = await call_next(request)
    return response

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.2f}ms"
    )
    return response

def _error(status_code: int, err: BookingError) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": err.to_dict()})

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    logger.info(f"{request.method} {request.url.path} refused: {exc.code} {exc.reason}")
    return _error(exc.status_code, exc)

@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc):
    errors = [{"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg")} for e in exc.errors()]
    first = errors[0]["msg"] if errors else "Invalid request"
    return _error(400, InvalidRequest(first, errors=errors))

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": {"code": "InternalError", "reason": "An internal server error occurred."}},
    )


@app.on_event("startup")
async def on_startup():
    await init_models()
    logger.info(f"{settings.APP_NAME} started (env={settings.ENV}, store={settings.STORE_PROVIDER})")

@app.on_event("shutdown")
async def on_shutdown():
    bus = registry.event_bus()
    close = getattr(bus, "close", None)
    if close is not None:
        await close()


app.include_router(api_router, prefix=settings.API_PREFIX)
