from datetime import date, datetime, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import clinic_timezone, clinic_today
from app.models.appointment import Appointment, AppointmentStatus


def slot_start(d: date, slot: str) -> datetime:
    """Timezone-aware start of `slot` ("HH:MM") on `d` in the clinic's local time."""
    return datetime.combine(d, time.fromisoformat(slot), tzinfo=clinic_timezone())


def format_slot_12h(slot: str) -> str:
    """'08:00' -> '8:00 AM', '13:00' -> '1:00 PM'."""
    t = time.fromisoformat(slot)
    suffix = "AM" if t.hour < 12 else "PM"
    hour = t.hour % 12 or 12
    return f"{hour}:{t.minute:02d} {suffix}"


async def list_occupied_slots(session: AsyncSession) -> list[tuple[date, str]]:
    """(date, slot) pairs held by confirmed appointments from today on. Advisory only:
    the unique index decides at reservation time."""
    result = await session.execute(
        select(Appointment.appointment_date, Appointment.slot)
        .where(
            Appointment.status == AppointmentStatus.CONFIRMED.value,
            Appointment.appointment_date >= clinic_today(),
        )
        .order_by(Appointment.appointment_date, Appointment.slot)
    )
    return [(row[0], row[1]) for row in result.all()]
