from app.models.appointment import (
    SERVICE_TYPES,
    TIME_SLOTS,
    Appointment,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
    BookAppointmentRequest,
)

__all__ = [
    "SERVICE_TYPES",
    "TIME_SLOTS",
    "Appointment",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentStatus",
    "BookAppointmentRequest",
]
