import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import appointments
from app.core.config import _ENV_FILE, settings
from app.core.db import init_db
from app.core.exceptions import (
    AppointmentNotFoundError,
    BookingError,
    BookingValidationError,
    SlotTakenError,
    StorageError,
)

if settings.env != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[BookingError], int] = {
    BookingValidationError: status.HTTP_400_BAD_REQUEST,
    SlotTakenError: status.HTTP_409_CONFLICT,
    AppointmentNotFoundError: status.HTTP_404_NOT_FOUND,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

_GENERIC_ERROR_MESSAGE = "Something went wrong while processing your request. Please try again later."


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info("Clinic time zone: %s", settings.clinic_timezone)
    if settings.calendar_enabled:
        logger.info("Google Calendar: configured (calendar %s)", settings.google_calendar_id)
    else:
        logger.warning("Google Calendar: NOT configured. Bookings will report calendar=false")
    if settings.sms_enabled:
        logger.info("Twilio SMS: configured (from %s)", settings.twilio_phone_number)
    else:
        logger.warning("Twilio SMS: NOT configured. Bookings will report sms=false")
    if settings.create_tables_on_startup:
        await init_db()
    yield


app = FastAPI(
    title="Dental Booking API",
    description="Backend for the dental clinic booking form: occupied slots, appointments, cancellation",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type"],
)

app.include_router(appointments.router, prefix="/api")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PATCH, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    content: dict = {"kind": exc.kind, "message": exc.message}
    if status_code >= 500:
        # storage details stay in the logs
        content["message"] = _GENERIC_ERROR_MESSAGE
    if isinstance(exc, BookingValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content, headers=_cors_headers(request.headers.get("origin")))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body") or "body", "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"kind": BookingValidationError.kind, "message": "Invalid request", "errors": errors},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500; include CORS so the response is not blocked by the browser."""
    headers = _cors_headers(request.headers.get("origin"))
    if isinstance(exc, HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"kind": "http_error", "message": exc.detail},
            headers=headers,
        )
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"kind": "internal_error", "message": _GENERIC_ERROR_MESSAGE},
        headers=headers,
    )


@app.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "message": "Dental booking server is running",
    }
