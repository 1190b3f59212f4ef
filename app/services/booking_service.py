"""Booking orchestration: validate, reserve the slot, then notify.

The reservation is the only step that can fail a booking. The calendar event and
the SMS confirmation run after it has committed, independently of each other, and
their outcome is only reported back as two flags.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BookingValidationError
from app.models.appointment import Appointment, AppointmentCreate, AppointmentStatus, BookAppointmentRequest
from app.services.appointment_service import (
    attach_calendar_reference,
    cancel_appointment,
    get_appointment,
    reserve_appointment,
)
from app.services.calendar_service import CalendarClient, appointment_event_details
from app.services.sms_service import SMSClient, build_confirmation_sms

logger = logging.getLogger(__name__)


@dataclass
class BookingOutcome:
    appointment: Appointment
    calendar_synced: bool
    sms_sent: bool


def _field_errors(exc: ValidationError) -> list[dict[str, str]]:
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        errors.append({"field": field, "message": err["msg"].removeprefix("Value error, ")})
    return errors


def validate_booking(payload: Mapping[str, Any]) -> AppointmentCreate:
    """Check every field of a booking request; report all failures at once."""
    try:
        request = BookAppointmentRequest.model_validate(payload)
    except ValidationError as e:
        raise BookingValidationError(_field_errors(e)) from e
    return AppointmentCreate(
        patient_name=request.name,
        email=request.email,
        phone=request.phone,
        service_type=request.service_type,
        appointment_date=request.appointment_date,
        slot=request.slot,
    )


async def _sync_calendar(session: AsyncSession, appointment: Appointment, calendar: CalendarClient) -> bool:
    try:
        event_id = await asyncio.wait_for(
            calendar.create_event(**appointment_event_details(appointment)),
            timeout=settings.integration_timeout_seconds,
        )
    except Exception as e:
        logger.warning("Calendar event for appointment %s not created, booking kept: %s", appointment.id, e)
        return False
    if await attach_calendar_reference(session, appointment.id, event_id):
        appointment.calendar_event_id = event_id
        return True
    if not await _cancelled_meanwhile(session, appointment.id):
        # the event exists even if storing its id failed
        return True
    # cancelled before the id was stored, so the cancellation could not delete the event
    await _delete_event(calendar, event_id, appointment.id)
    return False


async def _cancelled_meanwhile(session: AsyncSession, appointment_id: str) -> bool:
    try:
        current = await get_appointment(session, appointment_id)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.warning("Could not re-read appointment %s: %s", appointment_id, e)
        return False
    return current is not None and current.status == AppointmentStatus.CANCELLED.value


async def _delete_event(calendar: CalendarClient, event_id: str, appointment_id: str) -> None:
    try:
        await asyncio.wait_for(calendar.delete_event(event_id), timeout=settings.integration_timeout_seconds)
    except Exception as e:
        logger.warning(
            "Calendar event %s for cancelled appointment %s not deleted: %s",
            event_id,
            appointment_id,
            e,
        )


async def _send_confirmation(appointment: Appointment, sms: SMSClient) -> bool:
    try:
        await asyncio.wait_for(
            sms.send_message(appointment.phone, build_confirmation_sms(appointment)),
            timeout=settings.integration_timeout_seconds,
        )
    except Exception as e:
        logger.warning("Confirmation SMS for appointment %s not sent, booking kept: %s", appointment.id, e)
        return False
    return True


async def book_appointment(
    session: AsyncSession,
    payload: Mapping[str, Any],
    calendar: CalendarClient,
    sms: SMSClient,
) -> BookingOutcome:
    data = validate_booking(payload)
    appointment = await reserve_appointment(session, data)
    # detached, so a rollback in a failed follow-up update cannot expire it
    session.expunge(appointment)
    logger.info("Appointment %s booked for %s %s", appointment.id, appointment.appointment_date, appointment.slot)
    calendar_synced, sms_sent = await asyncio.gather(
        _sync_calendar(session, appointment, calendar),
        _send_confirmation(appointment, sms),
    )
    return BookingOutcome(appointment=appointment, calendar_synced=calendar_synced, sms_sent=sms_sent)


async def cancel_booking(session: AsyncSession, appointment_id: str, calendar: CalendarClient) -> Appointment:
    appointment, transitioned = await cancel_appointment(session, appointment_id)
    if transitioned:
        logger.info("Appointment %s cancelled", appointment_id)
    if transitioned and appointment.calendar_event_id:
        await _delete_event(calendar, appointment.calendar_event_id, appointment_id)
    return appointment
