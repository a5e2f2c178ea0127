from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.meeting import Meeting, MeetingParticipant, MeetingStatus, ParticipantType
from app.services.errors import CapacityExceeded, InvalidTransition, NotFoundError
from app.services.timing import to_storage

logger = structlog.get_logger(__name__)

# estados en los que se acepta un ingreso
JOINABLE_STATUSES = (
    MeetingStatus.scheduled,
    MeetingStatus.waiting_customer,
    MeetingStatus.invite_sent,
    MeetingStatus.in_progress,
)


class ParticipantTracker:
    """Contador de participantes acotado por `max_participants`.

    El chequeo y el incremento son un único UPDATE condicional, así dos
    ingresos concurrentes nunca superan la capacidad. No hace commit.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def join(
        self,
        meeting_id: str,
        participant_type: ParticipantType,
        *,
        now: datetime,
        user_id: str | None = None,
    ) -> None:
        stmt = (
            update(Meeting)
            .where(
                Meeting.id == meeting_id,
                Meeting.participant_count < Meeting.max_participants,
                Meeting.status.in_(JOINABLE_STATUSES),
            )
            .values(participant_count=Meeting.participant_count + 1)
            .execution_options(synchronize_session=False)
        )
        res = await self.db.execute(stmt)
        if res.rowcount != 1:
            row = (
                await self.db.execute(
                    select(Meeting.status, Meeting.max_participants).where(Meeting.id == meeting_id)
                )
            ).one_or_none()
            if row is None:
                raise NotFoundError("Reunión inexistente", meeting_id=meeting_id)
            status, max_participants = row
            if status not in JOINABLE_STATUSES:
                raise InvalidTransition(status.value, MeetingStatus.in_progress.value)
            logger.info("meeting.capacity_exceeded", meeting_id=meeting_id, participant_type=participant_type.value)
            raise CapacityExceeded(max_participants)

        self.db.add(
            MeetingParticipant(
                meeting_id=meeting_id,
                participant_type=participant_type,
                user_id=user_id,
                joined_at=to_storage(now),
            )
        )
        await self.db.flush()
