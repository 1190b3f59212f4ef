from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


def clinic_timezone() -> ZoneInfo:
    return ZoneInfo(settings.clinic_timezone)


def clinic_today() -> date:
    """Current date at the clinic; the server clock decides, never the client."""
    return datetime.now(clinic_timezone()).date()
