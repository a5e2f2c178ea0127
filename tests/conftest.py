"""Test fixtures.

Provides:
- A file-backed SQLite database (aiosqlite), schema created per test
- Seed helpers for users, doctors, consultations and appointments
- A controllable clock and a recording invite dispatcher
- Async HTTP client over the FastAPI app with the meeting service overridden
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import date, datetime, timezone

# settings se leen al importar app.*: configurar antes
_DB_PATH = os.path.join(tempfile.gettempdir(), f"clinic-meetings-test-{os.getpid()}.db")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["CLINIC_UTC_OFFSET_HOURS"] = "7"
os.environ["GOOGLE_CLIENT_ID"] = ""
os.environ["GOOGLE_CLIENT_SECRET"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["JITSI_BASE_URL"] = "https://meet.jit.si"

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_meeting_service
from app.core.db import SessionLocal, create_all, drop_all, engine, get_db
from app.core.security import create_access_token
from app.main import app
from app.models.appointment import Appointment, ApptStatus
from app.models.consultation import Consultation
from app.models.doctor import Doctor
from app.models.user import User, RoleEnum
from app.services.meetings import MeetingService
from app.services.video_providers import ProviderStrategy


class Clock:
    """Reloj fijo que los tests pueden mover."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingDispatcher:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.sent: list[tuple] = []

    async def send_invite(self, contact, meeting_link: str, password: str) -> bool:
        self.sent.append((contact, meeting_link, password))
        return self.ok


class Seed:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def user(self, role: RoleEnum = RoleEnum.customer, email: str | None = None) -> User:
        u = User(
            email=email or f"{role.value}-{os.urandom(4).hex()}@test.local",
            full_name=f"Test {role.value}",
            role=role,
            is_active=True,
        )
        self.session.add(u)
        await self.session.commit()
        return u

    async def doctor(self, user: User | None = None, name: str = "Dra. Pérez") -> Doctor:
        d = Doctor(user_id=user.id if user else None, name=name, email="doc@test.local", specialty="clínica")
        self.session.add(d)
        await self.session.commit()
        return d

    async def consultation(
        self,
        doctor: Doctor | None = None,
        customer: User | None = None,
        customer_email: str | None = "paciente@test.local",
    ) -> Consultation:
        c = Consultation(
            doctor_id=doctor.id if doctor else None,
            user_id=customer.id if customer else None,
            customer_name="Juan Paciente",
            customer_email=customer_email,
            question="Dolor de cabeza",
        )
        self.session.add(c)
        await self.session.commit()
        return c

    async def appointment(
        self,
        day: date,
        clock: str,
        status: ApptStatus = ApptStatus.confirmed,
    ) -> Appointment:
        a = Appointment(appointment_date=day, appointment_time=clock, status=status)
        self.session.add(a)
        await self.session.commit()
        return a


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role.value)}"}


@pytest.fixture
def auth():
    return auth_header


@pytest_asyncio.fixture
async def schema() -> AsyncGenerator[None, None]:
    await create_all()
    yield
    await drop_all()
    # cada test tiene su propio event loop: no reusar conexiones del pool
    await engine.dispose()


@pytest_asyncio.fixture
async def session(schema) -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as s:
        yield s


@pytest.fixture
def seed(session) -> Seed:
    return Seed(session)


@pytest.fixture
def clock() -> Clock:
    # 2025-01-20 08:56 en la clínica (UTC+7)
    return Clock(datetime(2025, 1, 20, 1, 56, tzinfo=timezone.utc))


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def jitsi_only() -> ProviderStrategy:
    # sin cliente de Google: siempre cae a Jitsi
    return ProviderStrategy(primary=None)


@pytest.fixture
def make_service(jitsi_only, dispatcher, clock):
    def _make(db: AsyncSession, **overrides) -> MeetingService:
        kwargs = {"strategy": jitsi_only, "dispatcher": dispatcher, "clock": clock}
        kwargs.update(overrides)
        return MeetingService(db, **kwargs)

    return _make


@pytest_asyncio.fixture
async def client(schema, make_service) -> AsyncGenerator[AsyncClient, None]:
    async def _service(db: AsyncSession = Depends(get_db)) -> MeetingService:
        return make_service(db)

    app.dependency_overrides[get_meeting_service] = _service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
