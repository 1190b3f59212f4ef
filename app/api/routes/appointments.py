from typing import Any

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_calendar_client, get_session, get_sms_client
from app.api.schemas.appointment import (
    BookAppointmentResponse,
    CancelAppointmentResponse,
    IntegrationStatus,
    OccupiedSlot,
)
from app.models.appointment import Appointment, AppointmentPublic
from app.services.appointment_service import list_all_appointments
from app.services.booking_service import book_appointment, cancel_booking
from app.services.calendar_service import CalendarClient
from app.services.slot_service import list_occupied_slots
from app.services.sms_service import SMSClient

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic(
        id=a.id,
        patient_name=a.patient_name,
        email=a.email,
        phone=a.phone,
        service_type=a.service_type,
        appointment_date=a.appointment_date,
        slot=a.slot,
        status=a.status,
        calendar_event_id=a.calendar_event_id,
        created_at=a.created_at,
    )


@router.get("/occupied", response_model=list[OccupiedSlot])
async def occupied_slots(session: AsyncSession = Depends(get_session)) -> list[OccupiedSlot]:
    """Confirmed (date, slot) pairs from today on, so the form can grey them out."""
    rows = await list_occupied_slots(session)
    return [OccupiedSlot(appointment_date=d, slot=s) for d, s in rows]


@router.post("", response_model=BookAppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    payload: dict[str, Any] = Body(...),
    session: AsyncSession = Depends(get_session),
    calendar: CalendarClient = Depends(get_calendar_client),
    sms: SMSClient = Depends(get_sms_client),
) -> BookAppointmentResponse:
    # Validation, slot conflicts and storage errors are rendered by the handlers in app.main
    outcome = await book_appointment(session, payload, calendar=calendar, sms=sms)
    a = outcome.appointment
    return BookAppointmentResponse(
        id=a.id,
        name=a.patient_name,
        email=a.email,
        appointment_date=a.appointment_date,
        slot=a.slot,
        service_type=a.service_type,
        status=a.status,
        integrations=IntegrationStatus(calendar=outcome.calendar_synced, sms=outcome.sms_sent),
    )


@router.get("", response_model=list[AppointmentPublic])
async def list_appointments(session: AsyncSession = Depends(get_session)) -> list[AppointmentPublic]:
    """Every appointment ordered by date then slot, for the clinic's review."""
    appointments = await list_all_appointments(session)
    return [_to_public(a) for a in appointments]


@router.patch("/{appointment_id}/cancel", response_model=CancelAppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    session: AsyncSession = Depends(get_session),
    calendar: CalendarClient = Depends(get_calendar_client),
) -> CancelAppointmentResponse:
    appointment = await cancel_booking(session, appointment_id, calendar=calendar)
    return CancelAppointmentResponse(
        message="Appointment cancelled",
        id=appointment.id,
        status=appointment.status,
    )
