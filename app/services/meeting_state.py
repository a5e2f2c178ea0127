"""Máquina de estados de la Meeting.

    scheduled ──► waiting_customer ──► invite_sent
        │               │                  │
        └───────────────┴──────► in_progress ──► completed
    (cualquier estado no terminal) ──► cancelled

Cada transición es un UPDATE guardado por el estado persistido
(``WHERE status IN (:origenes)``); si no afecta filas, la arista no existe
para el estado actual. Los métodos no hacen commit.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime

import structlog
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.meeting import Meeting, MeetingStatus, ParticipantType
from app.services.errors import InvalidTransition, NotificationFailed, TimingError
from app.services.participants import ParticipantTracker
from app.services.timing import Joinable, button_state, compute_join_window, to_storage

logger = structlog.get_logger(__name__)

TERMINAL_STATUSES = frozenset({MeetingStatus.completed, MeetingStatus.cancelled})

TRANSITIONS: dict[MeetingStatus, frozenset[MeetingStatus]] = {
    MeetingStatus.scheduled: frozenset(
        {MeetingStatus.waiting_customer, MeetingStatus.in_progress, MeetingStatus.cancelled}
    ),
    MeetingStatus.waiting_customer: frozenset(
        {MeetingStatus.invite_sent, MeetingStatus.in_progress, MeetingStatus.cancelled}
    ),
    MeetingStatus.invite_sent: frozenset({MeetingStatus.in_progress, MeetingStatus.cancelled}),
    MeetingStatus.in_progress: frozenset({MeetingStatus.completed, MeetingStatus.cancelled}),
    MeetingStatus.completed: frozenset(),
    MeetingStatus.cancelled: frozenset(),
}


def can_transition(current: MeetingStatus, target: MeetingStatus) -> bool:
    return target in TRANSITIONS[current]


def sources_for(target: MeetingStatus) -> tuple[MeetingStatus, ...]:
    return tuple(src for src, targets in TRANSITIONS.items() if target in targets)


class MeetingStateMachine:
    def __init__(self, db: AsyncSession, tracker: ParticipantTracker | None = None) -> None:
        self.db = db
        self.tracker = tracker or ParticipantTracker(db)

    async def _transition(self, meeting: Meeting, target: MeetingStatus, **values) -> Meeting:
        stmt = (
            update(Meeting)
            .where(Meeting.id == meeting.id, Meeting.status.in_(sources_for(target)))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        res = await self.db.execute(stmt)
        await self.db.refresh(meeting)
        if res.rowcount != 1:
            raise InvalidTransition(meeting.status.value, target.value)
        logger.info("meeting.transition", meeting_id=meeting.id, status=target.value)
        return meeting

    async def mark_doctor_ready(self, meeting: Meeting) -> Meeting:
        return await self._transition(meeting, MeetingStatus.waiting_customer)

    async def send_invite(
        self,
        meeting: Meeting,
        dispatch: Callable[[], Awaitable[bool]],
        *,
        now: datetime,
    ) -> Meeting:
        """waiting_customer -> invite_sent, sólo si el envío salió bien."""
        if not can_transition(meeting.status, MeetingStatus.invite_sent):
            raise InvalidTransition(meeting.status.value, MeetingStatus.invite_sent.value)
        if not await dispatch():
            raise NotificationFailed("No se pudo enviar la invitación al paciente")
        return await self._transition(
            meeting, MeetingStatus.invite_sent, invite_sent_at=to_storage(now)
        )

    async def join(
        self,
        meeting: Meeting,
        participant_type: ParticipantType,
        *,
        now: datetime,
        user_id: str | None = None,
    ) -> Meeting:
        if meeting.status in TERMINAL_STATUSES:
            raise InvalidTransition(meeting.status.value, MeetingStatus.in_progress.value)

        state = button_state(now, compute_join_window(meeting.scheduled_time))
        if not isinstance(state, Joinable):
            raise TimingError(
                state.message,
                state=state.state,
                minutes_remaining=getattr(state, "minutes_remaining", None),
            )

        await self.tracker.join(meeting.id, participant_type, now=now, user_id=user_id)

        stmt = (
            update(Meeting)
            .where(Meeting.id == meeting.id, Meeting.status.in_(sources_for(MeetingStatus.in_progress)))
            .values(
                status=MeetingStatus.in_progress,
                actual_start_time=func.coalesce(Meeting.actual_start_time, to_storage(now)),
            )
            .execution_options(synchronize_session=False)
        )
        res = await self.db.execute(stmt)
        await self.db.refresh(meeting)
        if res.rowcount == 1:
            logger.info("meeting.started", meeting_id=meeting.id, participant_type=participant_type.value)
        elif meeting.status != MeetingStatus.in_progress:
            raise InvalidTransition(meeting.status.value, MeetingStatus.in_progress.value)
        return meeting

    async def complete(self, meeting: Meeting, notes: str | None, *, now: datetime) -> tuple[Meeting, bool]:
        """in_progress -> completed. Sobre una reunión ya completada no cambia nada.

        Devuelve (meeting, changed).
        """
        if meeting.status == MeetingStatus.completed:
            logger.info("meeting.complete_noop", meeting_id=meeting.id)
            return meeting, False
        try:
            await self._transition(
                meeting,
                MeetingStatus.completed,
                notes=notes or settings.MEETING_DEFAULT_COMPLETION_NOTE,
                participant_count=0,
                actual_end_time=to_storage(now),
            )
        except InvalidTransition:
            # otro request la completó entre la lectura y el UPDATE
            if meeting.status == MeetingStatus.completed:
                return meeting, False
            raise
        return meeting, True

    async def update_link(self, meeting: Meeting, link: str) -> Meeting:
        """Cambia sólo meeting_link, y sólo mientras la reunión no esté cerrada."""
        stmt = (
            update(Meeting)
            .where(Meeting.id == meeting.id, Meeting.status.not_in(tuple(TERMINAL_STATUSES)))
            .values(meeting_link=link)
            .execution_options(synchronize_session=False)
        )
        res = await self.db.execute(stmt)
        await self.db.refresh(meeting)
        if res.rowcount != 1:
            raise InvalidTransition(meeting.status.value, "update_link")
        logger.info("meeting.link_updated", meeting_id=meeting.id)
        return meeting

    async def cancel(self, meeting: Meeting) -> Meeting:
        return await self._transition(meeting, MeetingStatus.cancelled)
