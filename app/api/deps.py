from app.core.db import get_session
from app.services.calendar_service import CalendarClient, GoogleCalendarClient
from app.services.sms_service import SMSClient, TwilioSMSClient

__all__ = ["get_calendar_client", "get_session", "get_sms_client"]


def get_calendar_client() -> CalendarClient:
    """Calendar collaborator for the request; overridden in tests."""
    return GoogleCalendarClient.from_settings()


def get_sms_client() -> SMSClient:
    return TwilioSMSClient.from_settings()
