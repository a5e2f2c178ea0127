"""Proveedores de video para las consultas online.

* Google Meet (principal): evento de Google Calendar con conferencia
  ``hangoutsMeet``, hosteado con las credenciales del doctor.
* Jitsi (fallback): sala self-hosted con link determinístico
  ``JITSI_BASE_URL/consultation-<consultation_id>``.

``ProviderStrategy.provision`` intenta el proveedor pedido y, si Google
falla, cae a Jitsi. Devuelve qué rama se usó.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.meeting import MeetingProvider
from app.services.errors import ProviderUnavailable
from app.services.google_oauth import ensure_access_token

logger = structlog.get_logger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
JITSI_ROOM_PREFIX = "consultation"


class ProviderBranch(str, enum.Enum):
    preferred = "preferred"
    fallback = "fallback"


@dataclass(frozen=True)
class ProviderMeeting:
    link: str
    provider_ref: str | None = None


@dataclass(frozen=True)
class ProvisionedRoom:
    provider: MeetingProvider
    link: str
    provider_ref: str | None
    branch: ProviderBranch


class GoogleMeetClient:
    """Crea la Meet como evento de Calendar del doctor host."""

    def __init__(
        self,
        db: AsyncSession,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self.db = db
        self.transport = transport
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS

    async def create_meeting(
        self,
        *,
        host_user_id: str | None,
        title: str,
        scheduled_time: datetime,
        duration_minutes: int,
    ) -> ProviderMeeting:
        if not settings.google_enabled:
            raise ProviderUnavailable("Google Meet no está configurado")
        if not host_user_id:
            raise ProviderUnavailable("Doctor sin usuario vinculado")

        access_token = await ensure_access_token(self.db, host_user_id, transport=self.transport)

        # si es naive, es UTC (valor de base)
        start = scheduled_time if scheduled_time.tzinfo else scheduled_time.replace(tzinfo=timezone.utc)
        end = start + timedelta(minutes=duration_minutes)
        payload = {
            "summary": title,
            "start": {"dateTime": start.replace(microsecond=0).isoformat()},
            "end": {"dateTime": end.replace(microsecond=0).isoformat()},
            "conferenceData": {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }
        url = f"{GOOGLE_CALENDAR_API}/calendars/{settings.GOOGLE_CALENDAR_ID}/events"
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.post(
                    url,
                    params={"conferenceDataVersion": 1},
                    headers={"Authorization": f"Bearer {access_token}"},
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"Create meeting error: {exc}") from exc
        except ValueError as exc:
            # 200 con HTML de un proxy, etc.
            raise ProviderUnavailable(f"Create meeting: respuesta no es JSON ({exc})") from exc

        link = data.get("hangoutLink") if isinstance(data, dict) else None
        if not link:
            raise ProviderUnavailable("Google no devolvió link de Meet")
        return ProviderMeeting(link=link, provider_ref=data.get("id"))

    async def delete_event(self, *, host_user_id: str | None, event_id: str) -> bool:
        """Borra un evento creado de más. Best-effort: nunca levanta."""
        if not host_user_id:
            return False
        url = f"{GOOGLE_CALENDAR_API}/calendars/{settings.GOOGLE_CALENDAR_ID}/events/{event_id}"
        try:
            access_token = await ensure_access_token(self.db, host_user_id, transport=self.transport)
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
                resp = await client.delete(url, headers={"Authorization": f"Bearer {access_token}"})
                resp.raise_for_status()
        except (ProviderUnavailable, httpx.HTTPError) as exc:
            logger.warning("meeting.orphan_event", event_id=event_id, host_user_id=host_user_id, error=str(exc))
            return False
        logger.info("meeting.orphan_event_deleted", event_id=event_id)
        return True


class JitsiRoomBuilder:
    def __init__(self, base_url: str | None = None) -> None:
        self.base_url = settings.JITSI_BASE_URL if base_url is None else base_url

    def build(self, consultation_id: str) -> ProviderMeeting:
        if not self.base_url:
            raise ProviderUnavailable("JITSI_BASE_URL no configurado")
        room = f"{JITSI_ROOM_PREFIX}-{consultation_id}"
        return ProviderMeeting(link=f"{self.base_url.rstrip('/')}/{room}", provider_ref=room)


class ProviderStrategy:
    def __init__(self, primary: GoogleMeetClient | None, fallback: JitsiRoomBuilder | None = None) -> None:
        self.primary = primary
        self.fallback = fallback or JitsiRoomBuilder()

    async def provision(
        self,
        *,
        consultation_id: str,
        host_user_id: str | None,
        title: str,
        scheduled_time: datetime,
        preferred: MeetingProvider,
    ) -> ProvisionedRoom:
        if preferred == MeetingProvider.google:
            try:
                if self.primary is None:
                    raise ProviderUnavailable("Sin cliente de Google Meet")
                created = await self.primary.create_meeting(
                    host_user_id=host_user_id,
                    title=title,
                    scheduled_time=scheduled_time,
                    duration_minutes=settings.MEETING_DURATION_MINUTES,
                )
                return ProvisionedRoom(
                    provider=MeetingProvider.google,
                    link=created.link,
                    provider_ref=created.provider_ref,
                    branch=ProviderBranch.preferred,
                )
            except ProviderUnavailable as exc:
                logger.warning(
                    "meeting.provider_fallback",
                    consultation_id=consultation_id,
                    failed_provider=MeetingProvider.google.value,
                    error=exc.detail,
                )
                branch = ProviderBranch.fallback
        else:
            branch = ProviderBranch.preferred

        room = self.fallback.build(consultation_id)
        return ProvisionedRoom(
            provider=MeetingProvider.jitsi,
            link=room.link,
            provider_ref=room.provider_ref,
            branch=branch,
        )

    async def release(self, room: ProvisionedRoom, *, host_user_id: str | None) -> None:
        """Descarta una sala que no llegó a persistirse.

        Las salas Jitsi son determinísticas y no hay nada que borrar.
        """
        if room.provider != MeetingProvider.google or not room.provider_ref or self.primary is None:
            return
        await self.primary.delete_event(host_user_id=host_user_id, event_id=room.provider_ref)
