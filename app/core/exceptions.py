class BookingError(Exception):
    """Base exception for booking failures. `kind` is the machine-readable error code."""

    kind = "booking_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class BookingValidationError(BookingError):
    """Raised when a booking request has one or more invalid fields."""

    kind = "validation_error"

    def __init__(self, errors: list[dict[str, str]]) -> None:
        self.errors = errors
        fields = ", ".join(e["field"] for e in errors)
        super().__init__(f"Invalid booking data: {fields}")


class SlotTakenError(BookingError):
    """Raised when the (date, slot) already holds a confirmed appointment."""

    kind = "slot_taken"

    def __init__(self, appointment_date: str, slot: str) -> None:
        self.appointment_date = appointment_date
        self.slot = slot
        super().__init__(f"The slot {slot} on {appointment_date} is already booked. Please pick another time.")


class AppointmentNotFoundError(BookingError):
    kind = "not_found"

    def __init__(self, appointment_id: str) -> None:
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} does not exist")


class StorageError(BookingError):
    """Raised when the database fails for a reason other than a slot conflict."""

    kind = "storage_error"


class IntegrationError(BookingError):
    """Raised by the calendar or SMS clients. Never fails a booking."""

    kind = "integration_failure"

    def __init__(self, service: str, reason: str) -> None:
        self.service = service
        self.reason = reason
        super().__init__(f"{service} integration failed: {reason}")
