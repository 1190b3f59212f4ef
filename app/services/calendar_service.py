import logging
from datetime import datetime, timedelta
from typing import Protocol

import httpx

from app.core.config import settings
from app.core.exceptions import IntegrationError
from app.models.appointment import SERVICE_TYPES, Appointment
from app.services.slot_service import slot_start

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


class CalendarClient(Protocol):
    """Calendar collaborator used after a reservation commits."""

    async def create_event(
        self,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_email: str,
        reminder_minutes: list[int],
    ) -> str:
        """Create an event and return its external id."""
        ...

    async def delete_event(self, event_id: str) -> None:
        ...


class GoogleCalendarClient:
    """Google Calendar v3 over REST, authorised with the clinic's offline refresh token."""

    service_name = "calendar"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        calendar_id: str = "primary",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.calendar_id = calendar_id
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "GoogleCalendarClient":
        return cls(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=settings.google_refresh_token,
            calendar_id=settings.google_calendar_id,
            timeout=settings.integration_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        if not self.configured:
            raise IntegrationError(self.service_name, "Google Calendar credentials are not configured")
        resp = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if resp.status_code != 200:
            logger.warning("Google token refresh failed: status=%s body=%s", resp.status_code, resp.text[:500])
            raise IntegrationError(self.service_name, f"token refresh returned {resp.status_code}")
        access_token = resp.json().get("access_token")
        if not access_token:
            raise IntegrationError(self.service_name, "no access token in refresh response")
        return access_token

    async def create_event(
        self,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_email: str,
        reminder_minutes: list[int],
    ) -> str:
        body = build_event_body(summary, description, start, end, attendee_email, reminder_minutes)
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                resp = await client.post(
                    f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events",
                    headers={"Authorization": f"Bearer {token}"},
                    json=body,
                )
        except httpx.HTTPError as e:
            raise IntegrationError(self.service_name, f"{type(e).__name__}: {e}") from e
        if resp.status_code not in (200, 201):
            logger.warning("Google Calendar insert failed: status=%s body=%s", resp.status_code, resp.text[:500])
            raise IntegrationError(self.service_name, f"event insert returned {resp.status_code}")
        event_id = resp.json().get("id")
        if not event_id:
            raise IntegrationError(self.service_name, "event insert returned no id")
        logger.info("Google Calendar event created: %s", event_id)
        return event_id

    async def delete_event(self, event_id: str) -> None:
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                resp = await client.delete(
                    f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events/{event_id}",
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            raise IntegrationError(self.service_name, f"{type(e).__name__}: {e}") from e
        # 410: already deleted on the calendar side
        if resp.status_code not in (200, 204, 410):
            logger.warning("Google Calendar delete failed: status=%s body=%s", resp.status_code, resp.text[:500])
            raise IntegrationError(self.service_name, f"event delete returned {resp.status_code}")
        logger.info("Google Calendar event deleted: %s", event_id)


def build_event_body(
    summary: str,
    description: str,
    start: datetime,
    end: datetime,
    attendee_email: str,
    reminder_minutes: list[int],
) -> dict:
    """Event resource for the Calendar API. The first reminder goes by email, the rest as popups."""
    overrides = [
        {"method": "email" if i == 0 else "popup", "minutes": minutes}
        for i, minutes in enumerate(reminder_minutes)
    ]
    return {
        "summary": summary,
        "description": description,
        "start": {"dateTime": start.isoformat(), "timeZone": settings.clinic_timezone},
        "end": {"dateTime": end.isoformat(), "timeZone": settings.clinic_timezone},
        "attendees": [{"email": attendee_email}],
        "reminders": {"useDefault": False, "overrides": overrides},
    }


def appointment_event_details(appointment: Appointment) -> dict:
    """Keyword arguments for CalendarClient.create_event for a booked appointment."""
    start = slot_start(appointment.appointment_date, appointment.slot)
    service_name = SERVICE_TYPES.get(appointment.service_type, appointment.service_type)
    description = "\n".join(
        [
            f"Paciente: {appointment.patient_name}",
            f"Email: {appointment.email}",
            f"Teléfono: {appointment.phone}",
            f"Servicio: {service_name}",
        ]
    )
    return {
        "summary": f"Cita Dental - {appointment.patient_name}",
        "description": description,
        "start": start,
        "end": start + timedelta(minutes=settings.appointment_duration_minutes),
        "attendee_email": appointment.email,
        "reminder_minutes": list(settings.reminder_minutes),
    }
