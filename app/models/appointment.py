import re
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic import Field as PydanticField
from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from app.core.clock import clinic_today
from app.core.config import settings

SERVICE_TYPES: dict[str, str] = {
    "limpieza-dental": "Limpieza Dental",
    "ortodoncia": "Ortodoncia",
    "extracciones": "Extracciones",
    "implantes": "Implantes",
    "carillas": "Carillas",
    "diseño-sonrisa": "Diseño de Sonrisa",
    "radiografia": "Radiografía",
    "protesis-dentales": "Prótesis Dentales",
}

# Start times, 24h clock; 12:00 is the lunch break
TIME_SLOTS: tuple[str, ...] = ("08:00", "09:00", "10:00", "11:00", "13:00", "14:00", "15:00", "16:00")

_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


class AppointmentStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_id() -> str:
    return uuid4().hex


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # one confirmed appointment per slot; cancelled/completed rows free it
        Index(
            "uq_appointments_confirmed_slot",
            "appointment_date",
            "slot",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )
    id: str = Field(default_factory=_new_id, primary_key=True, max_length=32)
    patient_name: str = Field(max_length=100)
    email: str = Field(index=True)
    phone: str = Field(max_length=20)
    service_type: str = Field(max_length=32)
    appointment_date: date = Field(index=True)
    slot: str = Field(max_length=5)
    status: str = Field(default=AppointmentStatus.CONFIRMED.value, max_length=16)
    calendar_event_id: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime())


class AppointmentCreate(SQLModel):
    patient_name: str
    email: str
    phone: str
    service_type: str
    appointment_date: date
    slot: str


class AppointmentPublic(SQLModel):
    id: str
    patient_name: str
    email: str
    phone: str
    service_type: str
    appointment_date: date
    slot: str
    status: str
    calendar_event_id: str | None = None
    created_at: datetime


class BookAppointmentRequest(BaseModel):
    """Booking form payload. Field names follow the browser form (camelCase)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: EmailStr
    phone: str
    service_type: str = PydanticField(alias="serviceType")
    appointment_date: date = PydanticField(alias="date")
    slot: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        v = v.strip()
        if not 2 <= len(v) <= 100:
            raise ValueError("Name must be between 2 and 100 characters")
        return v

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, v: str) -> str:
        code = settings.phone_country_code
        if not re.fullmatch(rf"\+{re.escape(code)}[0-9]{{8}}", v):
            raise ValueError(f"Phone must have the format +{code}XXXXXXXX")
        return v

    @field_validator("service_type")
    @classmethod
    def _check_service_type(cls, v: str) -> str:
        if v not in SERVICE_TYPES:
            raise ValueError("Unknown service type")
        return v

    @field_validator("appointment_date", mode="before")
    @classmethod
    def _require_iso_date(cls, v: Any) -> Any:
        # lax date parsing would take numbers as Unix timestamps
        if isinstance(v, date) or (isinstance(v, str) and _ISO_DATE.fullmatch(v)):
            return v
        raise ValueError("Date must be an ISO date (YYYY-MM-DD)")

    @field_validator("appointment_date")
    @classmethod
    def _check_not_past(cls, v: date) -> date:
        if v < clinic_today():
            raise ValueError("Date cannot be in the past")
        return v

    @field_validator("slot")
    @classmethod
    def _check_slot(cls, v: str) -> str:
        if v not in TIME_SLOTS:
            raise ValueError(f"Slot must be one of {', '.join(TIME_SLOTS)}")
        return v
