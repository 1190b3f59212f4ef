import asyncio
import os
from datetime import date, datetime, timedelta

# Settings are read at import time; the module-level engine never connects in tests.
os.environ.setdefault("DATABASE_URL", "sqlite:///./unused-test.db")
os.environ["ENV"] = "test"

import httpx
import pytest
import pytest_asyncio

from app.api.deps import get_calendar_client, get_session, get_sms_client
from app.core.db import create_engine_for_url, create_session_maker, init_db
from app.main import app
from app.models.appointment import AppointmentCreate
from app.core.clock import clinic_today


class FakeCalendarClient:
    """In-memory calendar collaborator.

    Set ``create_error`` / ``delete_error`` to make the next calls raise, or
    ``delay`` to make them slow. Inspect ``created`` and ``deleted`` afterwards.
    """

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.deleted: list[str] = []
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.delay: float = 0.0

    async def create_event(
        self,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_email: str,
        reminder_minutes: list[int],
    ) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.create_error:
            raise self.create_error
        self.created.append(
            {
                "summary": summary,
                "description": description,
                "start": start,
                "end": end,
                "attendee_email": attendee_email,
                "reminder_minutes": reminder_minutes,
            }
        )
        return f"evt-{len(self.created)}"

    async def delete_event(self, event_id: str) -> None:
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(event_id)


class FakeSMSClient:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self.delay: float = 0.0

    async def send_message(self, to_phone: str, body: str) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.sent.append((to_phone, body))
        return f"SM{len(self.sent)}"


def future_date(days: int = 1) -> date:
    return clinic_today() + timedelta(days=days)


def make_draft(**overrides) -> AppointmentCreate:
    data = {
        "patient_name": "Ana Lopez",
        "email": "ana@example.com",
        "phone": "+50370001111",
        "service_type": "limpieza-dental",
        "appointment_date": future_date(),
        "slot": "09:00",
    }
    data.update(overrides)
    return AppointmentCreate(**data)


def make_payload(**overrides) -> dict:
    payload = {
        "name": "Ana Lopez",
        "email": "ana@example.com",
        "phone": "+50370001111",
        "serviceType": "limpieza-dental",
        "date": future_date().isoformat(),
        "slot": "09:00",
    }
    payload.update(overrides)
    return payload


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so concurrent sessions use separate connections
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'booking.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def calendar() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture
def sms() -> FakeSMSClient:
    return FakeSMSClient()


@pytest_asyncio.fixture
async def client(session_maker, calendar, sms):
    """HTTP client against the app with a test database and fake collaborators."""

    async def _get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_calendar_client] = lambda: calendar
    app.dependency_overrides[get_sms_client] = lambda: sms
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
