"""Find-or-create de la Meeting de una consulta.

La unicidad la garantiza la base (UNIQUE consultation_id): si dos pedidos
concurrentes llegan a insertar, el perdedor recibe IntegrityError, hace
rollback, descarta el evento de Google que haya creado y devuelve la fila
ganadora. El paso de la Consultation a ``scheduled`` va en el mismo commit
que el INSERT.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.consultation import Consultation, ConsultationStatus
from app.models.doctor import Doctor
from app.models.meeting import Meeting, MeetingProvider, MeetingStatus
from app.services.errors import ConsultationNotFound, NotFoundError, ValidationError
from app.services.timing import to_storage
from app.services.video_providers import ProviderBranch, ProviderStrategy

logger = structlog.get_logger(__name__)

PASSWORD_ALPHABET = string.ascii_uppercase + string.digits


def generate_meeting_password(n: int | None = None) -> str:
    n = n or settings.MEETING_PASSWORD_LENGTH
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(n))


@dataclass
class ProvisionResult:
    meeting: Meeting
    created: bool
    branch: ProviderBranch | None = None  # None => ya existía


async def find_meeting(db: AsyncSession, consultation_id: str) -> Meeting | None:
    res = await db.execute(select(Meeting).where(Meeting.consultation_id == consultation_id))
    return res.scalar_one_or_none()


class MeetingProvisioner:
    def __init__(self, db: AsyncSession, strategy: ProviderStrategy) -> None:
        self.db = db
        self.strategy = strategy

    async def get_or_create(
        self,
        consultation_id: str,
        doctor_id: str,
        scheduled_time: datetime,
        preferred_provider: MeetingProvider | None = None,
    ) -> ProvisionResult:
        existing = await find_meeting(self.db, consultation_id)
        if existing:
            return ProvisionResult(existing, created=False)

        consultation = await self.db.get(Consultation, consultation_id)
        if consultation is None:
            raise ConsultationNotFound(consultation_id)
        doctor = await self.db.get(Doctor, doctor_id)
        if doctor is None:
            raise NotFoundError("Doctor no encontrado", doctor_id=doctor_id)
        if consultation.doctor_id and consultation.doctor_id != doctor_id:
            raise ValidationError("El doctor no corresponde a la consulta", field="doctor_id")

        # el rollback de una carrera perdida expira los objetos cargados
        host_user_id = doctor.user_id
        preferred = preferred_provider or MeetingProvider(settings.DEFAULT_MEETING_PROVIDER)
        room = await self.strategy.provision(
            consultation_id=consultation_id,
            host_user_id=host_user_id,
            title=f"{settings.APP_NAME}: consulta de {consultation.customer_name}",
            scheduled_time=scheduled_time,
            preferred=preferred,
        )

        meeting = Meeting(
            consultation_id=consultation_id,
            doctor_id=doctor_id,
            provider=room.provider,
            meeting_link=room.link,
            provider_ref=room.provider_ref,
            password=generate_meeting_password(),
            scheduled_time=to_storage(scheduled_time),
            status=MeetingStatus.scheduled,
            participant_count=0,
            max_participants=settings.MEETING_MAX_PARTICIPANTS,
        )
        self.db.add(meeting)
        # misma transacción que el INSERT: o quedan las dos cosas o ninguna
        consultation.status = ConsultationStatus.scheduled
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            winner = await find_meeting(self.db, consultation_id)
            if winner is None:
                raise
            logger.info(
                "meeting.create_race_lost",
                consultation_id=consultation_id,
                provider=room.provider.value,
                provider_ref=room.provider_ref,
            )
            await self.strategy.release(room, host_user_id=host_user_id)
            return ProvisionResult(winner, created=False)

        await self.db.refresh(meeting)
        logger.info(
            "meeting.created",
            consultation_id=consultation_id,
            meeting_id=meeting.id,
            provider=room.provider.value,
            branch=room.branch.value,
        )
        return ProvisionResult(meeting, created=True, branch=room.branch)
