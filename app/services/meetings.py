"""Operaciones de reunión que consume la capa HTTP.

Cada método recalcula todo desde las filas persistidas, maneja su propia
transacción (commit al final, rollback ante error) y mantiene el estado
de la Consultation en línea con la Meeting.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.consultation import Consultation, ConsultationStatus
from app.models.doctor import Doctor
from app.models.meeting import Meeting, MeetingProvider, ParticipantType
from app.services.errors import ConsultationNotFound, MeetingNotFound, ValidationError
from app.services.meeting_state import MeetingStateMachine
from app.services.notifications import InviteContact, InviteDispatcher, SmtpInviteDispatcher
from app.services.provisioning import MeetingProvisioner, ProvisionResult, find_meeting
from app.services.timing import (
    ButtonState,
    JoinWindow,
    button_state,
    compute_join_window,
    to_clinic_time,
    utcnow,
)
from app.services.video_providers import GoogleMeetClient, ProviderStrategy

logger = structlog.get_logger(__name__)


def ensure_id(value: str, field: str) -> str:
    try:
        uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"{field} inválido", field=field)
    return str(value)


@dataclass
class JoinStatus:
    window: JoinWindow | None
    state: ButtonState


@dataclass
class InviteResult:
    meeting: Meeting
    customer_email: str
    sent_at: datetime


class MeetingService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        strategy: ProviderStrategy | None = None,
        dispatcher: InviteDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.strategy = strategy or ProviderStrategy(primary=GoogleMeetClient(db))
        self.dispatcher = dispatcher or SmtpInviteDispatcher()
        self.clock = clock
        self.machine = MeetingStateMachine(db)

    async def _load(self, consultation_id: str) -> Meeting:
        ensure_id(consultation_id, "consultation_id")
        meeting = await find_meeting(self.db, consultation_id)
        if meeting is None:
            raise MeetingNotFound(consultation_id)
        return meeting

    async def _set_consultation_status(
        self, consultation_id: str, status: ConsultationStatus, **values
    ) -> None:
        await self.db.execute(
            update(Consultation)
            .where(Consultation.id == consultation_id)
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )

    async def _commit_or_rollback(self, op):
        try:
            result = await op()
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result

    # ---------- create / get ----------
    async def create_meeting(
        self,
        consultation_id: str,
        doctor_id: str,
        scheduled_time: datetime | str,
        preferred_provider: MeetingProvider | str | None = None,
    ) -> ProvisionResult:
        ensure_id(consultation_id, "consultation_id")
        ensure_id(doctor_id, "doctor_id")
        when = to_clinic_time(scheduled_time)
        if when is None:
            raise ValidationError("scheduled_time inválido", field="scheduled_time")
        if preferred_provider is not None:
            try:
                preferred_provider = MeetingProvider(preferred_provider)
            except ValueError:
                raise ValidationError("Proveedor desconocido", field="preferred_provider")

        # el provisioner pasa la Consultation a scheduled en el mismo commit
        return await MeetingProvisioner(self.db, self.strategy).get_or_create(
            consultation_id, doctor_id, when, preferred_provider
        )

    async def get_meeting(self, consultation_id: str) -> Meeting:
        return await self._load(consultation_id)

    async def join_status(self, consultation_id: str) -> JoinStatus:
        meeting = await self._load(consultation_id)
        window = compute_join_window(meeting.scheduled_time)
        return JoinStatus(window=window, state=button_state(self.clock(), window))

    # ---------- transiciones ----------
    async def join(
        self,
        consultation_id: str,
        participant_type: ParticipantType | str,
        user_id: str | None = None,
    ) -> Meeting:
        try:
            participant_type = ParticipantType(participant_type)
        except ValueError:
            raise ValidationError("participant_type debe ser doctor o customer", field="participant_type")
        meeting = await self._load(consultation_id)

        async def op():
            await self.machine.join(meeting, participant_type, now=self.clock(), user_id=user_id)
            await self._set_consultation_status(consultation_id, ConsultationStatus.consulting)
            return meeting

        return await self._commit_or_rollback(op)

    async def mark_doctor_ready(self, consultation_id: str) -> Meeting:
        meeting = await self._load(consultation_id)
        return await self._commit_or_rollback(lambda: self.machine.mark_doctor_ready(meeting))

    async def send_customer_invite(self, consultation_id: str) -> InviteResult:
        meeting = await self._load(consultation_id)
        consultation = await self.db.get(Consultation, consultation_id)
        if consultation is None:
            raise ConsultationNotFound(consultation_id)
        if not consultation.customer_email:
            raise ValidationError("La consulta no tiene email del paciente", field="customer_email")
        doctor = await self.db.get(Doctor, meeting.doctor_id)
        contact = InviteContact(
            name=consultation.customer_name,
            email=consultation.customer_email,
            doctor_name=doctor.name if doctor else None,
        )
        now = self.clock()

        async def dispatch() -> bool:
            return await self.dispatcher.send_invite(contact, meeting.meeting_link, meeting.password)

        await self._commit_or_rollback(lambda: self.machine.send_invite(meeting, dispatch, now=now))
        logger.info("meeting.invite_sent", meeting_id=meeting.id, consultation_id=consultation_id)
        return InviteResult(meeting=meeting, customer_email=contact.email or "", sent_at=now)

    async def complete(self, consultation_id: str, notes: str | None = None) -> Meeting:
        meeting = await self._load(consultation_id)

        async def op():
            _, changed = await self.machine.complete(meeting, notes, now=self.clock())
            if changed:
                await self._set_consultation_status(
                    consultation_id, ConsultationStatus.completed, doctor_notes=meeting.notes
                )
            return meeting

        return await self._commit_or_rollback(op)

    async def update_link(self, consultation_id: str, meeting_link: str) -> Meeting:
        """Reemplaza el link (p. ej. el doctor abrió otra sala). La contraseña no cambia."""
        link = (meeting_link or "").strip()
        if not link.startswith(("https://", "http://")):
            raise ValidationError("meeting_link debe ser una URL http(s)", field="meeting_link")
        meeting = await self._load(consultation_id)
        return await self._commit_or_rollback(lambda: self.machine.update_link(meeting, link))

    async def cancel(self, consultation_id: str) -> Meeting:
        meeting = await self._load(consultation_id)

        async def op():
            await self.machine.cancel(meeting)
            await self._set_consultation_status(consultation_id, ConsultationStatus.cancelled)
            return meeting

        return await self._commit_or_rollback(op)
