from datetime import timedelta

import pytest

from app.core.config import settings
from app.core.exceptions import (
    AppointmentNotFoundError,
    BookingValidationError,
    IntegrationError,
    SlotTakenError,
)
from app.models.appointment import AppointmentStatus, BookAppointmentRequest
from app.services.appointment_service import cancel_appointment, get_appointment, list_all_appointments
from app.services.booking_service import book_appointment, cancel_booking, validate_booking
from conftest import future_date, make_payload


def _fields(exc: BookingValidationError) -> set[str]:
    return {e["field"] for e in exc.errors}


class TestValidateBooking:
    def test_valid_payload_is_normalized(self) -> None:
        draft = validate_booking(make_payload(name="  Ana Lopez  ", email="Ana@Example.COM"))

        assert draft.patient_name == "Ana Lopez"
        assert draft.email == "ana@example.com"
        assert draft.appointment_date == future_date()
        assert draft.service_type == "limpieza-dental"

    def test_reports_every_invalid_field(self) -> None:
        payload = {
            "name": "A",
            "email": "not-an-email",
            "phone": "+5031234",
            "serviceType": "blanqueamiento",
            "date": future_date(-1).isoformat(),
            "slot": "12:00",
        }

        with pytest.raises(BookingValidationError) as exc_info:
            validate_booking(payload)

        assert _fields(exc_info.value) == {"name", "email", "phone", "serviceType", "date", "slot"}
        assert all(not e["message"].startswith("Value error") for e in exc_info.value.errors)

    def test_past_date_fails_even_when_everything_else_is_valid(self) -> None:
        with pytest.raises(BookingValidationError) as exc_info:
            validate_booking(make_payload(date=future_date(-1).isoformat()))

        assert _fields(exc_info.value) == {"date"}

    def test_today_is_accepted(self) -> None:
        draft = validate_booking(make_payload(date=future_date(0).isoformat()))

        assert draft.appointment_date == future_date(0)

    def test_invalid_calendar_date(self) -> None:
        with pytest.raises(BookingValidationError) as exc_info:
            validate_booking(make_payload(date="2030-02-30"))

        assert _fields(exc_info.value) == {"date"}

    @pytest.mark.parametrize("phone", ["+50312345678", "+50370001111"])
    def test_accepts_country_prefixed_phone(self, phone: str) -> None:
        assert validate_booking(make_payload(phone=phone)).phone == phone

    @pytest.mark.parametrize(
        "phone",
        ["50312345678", "+5031234567", "+503 7000 1111", "+15551234567", " +50370001111", "+50370001111\n"],
    )
    def test_rejects_malformed_phone(self, phone: str) -> None:
        with pytest.raises(BookingValidationError) as exc_info:
            validate_booking(make_payload(phone=phone))

        assert _fields(exc_info.value) == {"phone"}

    @pytest.mark.parametrize("value", [4102444800, 20301018.0, "18/10/2030", "20301018", True])
    def test_date_must_be_iso_formatted(self, value) -> None:
        with pytest.raises(BookingValidationError) as exc_info:
            validate_booking(make_payload(date=value))

        assert _fields(exc_info.value) == {"date"}

    def test_missing_fields_are_listed(self) -> None:
        with pytest.raises(BookingValidationError) as exc_info:
            validate_booking({"name": "Ana Lopez"})

        assert _fields(exc_info.value) == {"email", "phone", "serviceType", "date", "slot"}


class TestBookAppointment:
    @pytest.mark.asyncio
    async def test_books_and_runs_both_integrations(self, session, calendar, sms) -> None:
        outcome = await book_appointment(session, make_payload(), calendar, sms)

        assert outcome.calendar_synced is True
        assert outcome.sms_sent is True
        assert outcome.appointment.status == AppointmentStatus.CONFIRMED.value
        stored = await get_appointment(session, outcome.appointment.id)
        assert stored.calendar_event_id == "evt-1"
        assert sms.sent[0][0] == "+50370001111"
        event = calendar.created[0]
        assert event["attendee_email"] == "ana@example.com"
        assert event["end"] - event["start"] == timedelta(hours=1)
        assert event["reminder_minutes"] == [1440, 60]

    @pytest.mark.asyncio
    async def test_second_identical_booking_gets_slot_taken(self, session, calendar, sms) -> None:
        await book_appointment(session, make_payload(), calendar, sms)

        with pytest.raises(SlotTakenError):
            await book_appointment(session, make_payload(), calendar, sms)

        assert len(calendar.created) == 1
        assert len(sms.sent) == 1

    @pytest.mark.asyncio
    async def test_validation_failure_reserves_nothing(self, session, calendar, sms) -> None:
        with pytest.raises(BookingValidationError):
            await book_appointment(session, make_payload(slot="07:00"), calendar, sms)

        assert await list_all_appointments(session) == []
        assert calendar.created == []

    @pytest.mark.asyncio
    async def test_calendar_failure_keeps_booking_and_sms(self, session, calendar, sms) -> None:
        calendar.create_error = IntegrationError("calendar", "503 from Google")

        outcome = await book_appointment(session, make_payload(phone="+50312345678", slot="08:00"), calendar, sms)

        assert outcome.calendar_synced is False
        assert outcome.sms_sent is True
        stored = await get_appointment(session, outcome.appointment.id)
        assert stored.status == AppointmentStatus.CONFIRMED.value
        assert stored.calendar_event_id is None

    @pytest.mark.asyncio
    async def test_sms_failure_keeps_booking_and_calendar(self, session, calendar, sms) -> None:
        sms.error = RuntimeError("connection reset")

        outcome = await book_appointment(session, make_payload(), calendar, sms)

        assert outcome.calendar_synced is True
        assert outcome.sms_sent is False
        assert len(await list_all_appointments(session)) == 1

    @pytest.mark.asyncio
    async def test_both_integrations_failing_still_books(self, session, calendar, sms) -> None:
        calendar.create_error = IntegrationError("calendar", "down")
        sms.error = IntegrationError("sms", "down")

        outcome = await book_appointment(session, make_payload(), calendar, sms)

        assert (outcome.calendar_synced, outcome.sms_sent) == (False, False)
        assert outcome.appointment.id

    @pytest.mark.asyncio
    async def test_slow_collaborator_times_out_as_failure(self, session, calendar, sms, monkeypatch) -> None:
        monkeypatch.setattr(settings, "integration_timeout_seconds", 0.05)
        sms.delay = 1.0

        outcome = await book_appointment(session, make_payload(), calendar, sms)

        assert outcome.sms_sent is False
        assert outcome.calendar_synced is True

    @pytest.mark.asyncio
    async def test_cancelled_before_event_stored_deletes_event(
        self, session, session_maker, calendar, sms, monkeypatch
    ) -> None:
        create_event = calendar.create_event

        async def cancel_then_create(**details):
            async with session_maker() as other:
                [pending] = await list_all_appointments(other)
                await cancel_appointment(other, pending.id)
            return await create_event(**details)

        monkeypatch.setattr(calendar, "create_event", cancel_then_create)

        outcome = await book_appointment(session, make_payload(), calendar, sms)

        assert outcome.calendar_synced is False
        assert calendar.deleted == ["evt-1"]
        stored = await get_appointment(session, outcome.appointment.id)
        assert stored.status == AppointmentStatus.CANCELLED.value
        assert stored.calendar_event_id is None

    @pytest.mark.asyncio
    async def test_unstored_event_is_kept_for_confirmed_booking(self, session, calendar, sms, monkeypatch) -> None:
        async def attach_fails(session, appointment_id, event_id):
            return False

        monkeypatch.setattr("app.services.booking_service.attach_calendar_reference", attach_fails)

        outcome = await book_appointment(session, make_payload(), calendar, sms)

        assert outcome.calendar_synced is True
        assert calendar.deleted == []


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_cancel_deletes_calendar_event(self, session, calendar, sms) -> None:
        outcome = await book_appointment(session, make_payload(), calendar, sms)

        appointment = await cancel_booking(session, outcome.appointment.id, calendar)

        assert appointment.status == AppointmentStatus.CANCELLED.value
        assert calendar.deleted == ["evt-1"]

    @pytest.mark.asyncio
    async def test_calendar_delete_failure_is_not_fatal(self, session, calendar, sms) -> None:
        outcome = await book_appointment(session, make_payload(), calendar, sms)
        calendar.delete_error = IntegrationError("calendar", "410 gone")

        appointment = await cancel_booking(session, outcome.appointment.id, calendar)

        assert appointment.status == AppointmentStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_no_calendar_reference_skips_delete(self, session, calendar, sms) -> None:
        calendar.create_error = IntegrationError("calendar", "down")
        outcome = await book_appointment(session, make_payload(), calendar, sms)

        await cancel_booking(session, outcome.appointment.id, calendar)

        assert calendar.deleted == []

    @pytest.mark.asyncio
    async def test_recancel_does_not_delete_twice(self, session, calendar, sms) -> None:
        outcome = await book_appointment(session, make_payload(), calendar, sms)
        await cancel_booking(session, outcome.appointment.id, calendar)

        appointment = await cancel_booking(session, outcome.appointment.id, calendar)

        assert appointment.status == AppointmentStatus.CANCELLED.value
        assert calendar.deleted == ["evt-1"]

    @pytest.mark.asyncio
    async def test_unknown_id(self, session, calendar) -> None:
        with pytest.raises(AppointmentNotFoundError):
            await cancel_booking(session, "missing", calendar)


class TestBookAppointmentRequest:
    def test_parses_form_field_names(self) -> None:
        request = BookAppointmentRequest.model_validate(make_payload())

        assert request.service_type == "limpieza-dental"
        assert request.appointment_date == future_date()
