from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from backend project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = False
    database_timeout_seconds: float = 5.0
    # Prefer Alembic; this is for local sqlite runs
    create_tables_on_startup: bool = False

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Env
    env: str = "development"

    # Clinic
    clinic_name: str = "Clínica Dental"
    clinic_timezone: str = "America/El_Salvador"
    phone_country_code: str = "503"
    cancellation_phone: str = "74676260"
    appointment_duration_minutes: int = 60
    reminder_minutes: list[int] = [24 * 60, 60]

    # Google Calendar (offline refresh token for the clinic calendar)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    google_calendar_id: str = "primary"

    # Twilio SMS. Leave account_sid empty to disable sending.
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    # Upper bound for each calendar / SMS call
    integration_timeout_seconds: float = 5.0

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def calendar_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_refresh_token)

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)


settings = Settings()
