import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppointmentNotFoundError, SlotTakenError, StorageError
from app.models.appointment import Appointment, AppointmentCreate, AppointmentStatus

logger = logging.getLogger(__name__)

SLOT_INDEX = "uq_appointments_confirmed_slot"
# SQLite names the columns instead of the index
_SQLITE_SLOT_CONFLICT = "appointments.appointment_date, appointments.slot"


def _is_slot_conflict(e: IntegrityError) -> bool:
    message = str(e.orig)
    return SLOT_INDEX in message or _SQLITE_SLOT_CONFLICT in message


async def reserve_appointment(session: AsyncSession, data: AppointmentCreate) -> Appointment:
    """Insert a confirmed appointment and commit.

    No availability check happens first: the partial unique index on
    (appointment_date, slot) is the only arbiter, so of two racing inserts exactly
    one commits and the other raises SlotTakenError.
    """
    appointment = Appointment(
        patient_name=data.patient_name,
        email=data.email,
        phone=data.phone,
        service_type=data.service_type,
        appointment_date=data.appointment_date,
        slot=data.slot,
        status=AppointmentStatus.CONFIRMED.value,
    )
    session.add(appointment)
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if not _is_slot_conflict(e):
            logger.exception("Reserving %s %s violated another constraint: %s", data.appointment_date, data.slot, e)
            raise StorageError("Could not save the appointment") from e
        logger.info("Slot %s %s already taken", data.appointment_date, data.slot)
        raise SlotTakenError(data.appointment_date.isoformat(), data.slot) from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Reserving %s %s failed: %s", data.appointment_date, data.slot, e)
        raise StorageError("Could not save the appointment") from e
    return appointment


async def attach_calendar_reference(session: AsyncSession, appointment_id: str, event_id: str) -> bool:
    """Store the external calendar event id on a still-confirmed appointment.

    Returns False when nothing was stored: the appointment was cancelled in the
    meantime, or the update failed (logged, not raised).
    """
    try:
        result = await session.execute(
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status == AppointmentStatus.CONFIRMED.value,
            )
            .values(calendar_event_id=event_id)
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Could not store calendar event %s on appointment %s: %s", event_id, appointment_id, e)
        return False
    return bool(result.rowcount)


async def get_appointment(session: AsyncSession, appointment_id: str) -> Appointment | None:
    return await session.get(Appointment, appointment_id, populate_existing=True)


async def cancel_appointment(session: AsyncSession, appointment_id: str) -> tuple[Appointment, bool]:
    """Mark an appointment cancelled, freeing its slot.

    Returns (appointment, transitioned). Cancelling an already cancelled appointment
    is accepted and returns transitioned=False.
    """
    try:
        result = await session.execute(
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status != AppointmentStatus.CANCELLED.value,
            )
            .values(status=AppointmentStatus.CANCELLED.value)
        )
        await session.commit()
        appointment = await get_appointment(session, appointment_id)
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Cancelling appointment %s failed: %s", appointment_id, e)
        raise StorageError("Could not cancel the appointment") from e
    if appointment is None:
        raise AppointmentNotFoundError(appointment_id)
    return appointment, result.rowcount == 1


async def list_all_appointments(session: AsyncSession) -> list[Appointment]:
    result = await session.execute(select(Appointment).order_by(Appointment.appointment_date, Appointment.slot))
    return list(result.scalars().all())
