import logging
from datetime import date
from typing import Protocol

import httpx

from app.core.config import settings
from app.core.exceptions import IntegrationError
from app.models.appointment import SERVICE_TYPES, Appointment
from app.services.slot_service import format_slot_12h

logger = logging.getLogger(__name__)

TWILIO_API = "https://api.twilio.com/2010-04-01"

_MONTHS_ES = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)


class SMSClient(Protocol):
    async def send_message(self, to_phone: str, body: str) -> str:
        """Send `body` to an E.164 number and return the provider's message id."""
        ...


class TwilioSMSClient:
    service_name = "sms"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_phone: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_phone = from_phone
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "TwilioSMSClient":
        return cls(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_phone=settings.twilio_phone_number,
            timeout=settings.integration_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_phone)

    async def send_message(self, to_phone: str, body: str) -> str:
        if not self.configured:
            raise IntegrationError(self.service_name, "Twilio credentials are not configured")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{TWILIO_API}/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data={"To": to_phone, "From": self.from_phone, "Body": body},
                )
        except httpx.HTTPError as e:
            raise IntegrationError(self.service_name, f"{type(e).__name__}: {e}") from e
        if resp.status_code not in (200, 201):
            try:
                error = resp.json()
            except ValueError:
                error = {}
            reason = error.get("message") or resp.text[:200]
            code = error.get("code")
            logger.warning("Twilio API error [%s]: %s", code, reason)
            raise IntegrationError(self.service_name, f"[{code}] {reason}" if code else reason)
        sid = resp.json().get("sid", "")
        logger.info("SMS sent to %s (SID: %s)", to_phone, sid)
        return sid


def format_date_es(d: date) -> str:
    """date(2026, 10, 18) -> '18 de octubre de 2026'."""
    return f"{d.day} de {_MONTHS_ES[d.month - 1]} de {d.year}"


def build_confirmation_sms(appointment: Appointment) -> str:
    service_name = SERVICE_TYPES.get(appointment.service_type, appointment.service_type)
    return "\n".join(
        [
            f"¡Cita confirmada en {settings.clinic_name}!",
            "",
            f"Fecha: {format_date_es(appointment.appointment_date)}",
            f"Hora: {format_slot_12h(appointment.slot)}",
            f"Servicio: {service_name}",
            "",
            f"Para cancelar su cita, llame al {settings.cancellation_phone}",
            "",
            "¡Le esperamos!",
        ]
    )
