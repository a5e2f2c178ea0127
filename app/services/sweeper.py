"""Sweeper de turnos: pasa a `consulting` los turnos confirmados cuya hora ya llegó.

Corre como job de intervalo en un AsyncIOScheduler (primera corrida al
arrancar). Cada turno se actualiza con un UPDATE guardado por
`status = confirmed`, así dos corridas superpuestas no transicionan dos
veces. Si un turno falla se loguea y se reintenta en la próxima corrida.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.db import SessionLocal
from app.models.appointment import Appointment, ApptStatus
from app.services.timing import combine_clinic_datetime, to_clinic_time, utcnow

logger = structlog.get_logger(__name__)

JOB_ID = "appointment_auto_transition"


@dataclass
class SweepResult:
    checked: int = 0
    transitioned: int = 0
    skipped: int = 0
    failed: int = 0


class AppointmentSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
        *,
        interval_minutes: int | None = None,
        lookback_days: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._interval = interval_minutes or settings.SWEEPER_INTERVAL_MINUTES
        self._lookback_days = lookback_days if lookback_days is not None else settings.SWEEPER_LOOKBACK_DAYS
        self._clock = clock
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Arranca el scheduler (requiere un event loop corriendo)."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._run_job,
            trigger=IntervalTrigger(minutes=self._interval),
            id=JOB_ID,
            name="Auto-transition confirmed appointments to consulting",
            next_run_time=self._clock(),
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self._interval * 60,
        )
        self._scheduler.start()
        logger.info("sweeper.started", interval_minutes=self._interval)

    def stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("sweeper.stopped")
        self._scheduler = None

    async def _run_job(self) -> None:
        try:
            result = await self.run_once()
        except SQLAlchemyError as exc:
            # ni siquiera se pudo consultar; la próxima corrida reintenta
            logger.error("sweeper.run_failed", error=str(exc))
            return
        if result.transitioned or result.failed:
            logger.info("sweeper.run_complete", **result.__dict__)

    async def run_once(self, now: datetime | None = None) -> SweepResult:
        current = to_clinic_time(now or self._clock())
        today = current.date()
        result = SweepResult()

        async with self._session_factory() as session:
            q = select(Appointment.id, Appointment.appointment_date, Appointment.appointment_time).where(
                Appointment.status == ApptStatus.confirmed,
                Appointment.appointment_date <= today,
            )
            if self._lookback_days:
                q = q.where(Appointment.appointment_date >= today - timedelta(days=self._lookback_days))
            rows = (await session.execute(q)).all()
            # cerramos la transacción de lectura antes de los updates
            await session.commit()

            for appointment_id, day, clock in rows:
                result.checked += 1
                starts_at = combine_clinic_datetime(day, clock)
                if starts_at is None:
                    result.failed += 1
                    logger.warning(
                        "sweeper.record_failed",
                        appointment_id=appointment_id,
                        reason="invalid_datetime",
                        appointment_time=clock,
                    )
                    continue
                if starts_at > current:
                    continue

                try:
                    res = await session.execute(
                        update(Appointment)
                        .where(Appointment.id == appointment_id, Appointment.status == ApptStatus.confirmed)
                        .values(status=ApptStatus.consulting)
                        .execution_options(synchronize_session=False)
                    )
                    await session.commit()
                except SQLAlchemyError as exc:
                    await session.rollback()
                    result.failed += 1
                    logger.warning("sweeper.record_failed", appointment_id=appointment_id, error=str(exc))
                    continue

                if res.rowcount == 1:
                    result.transitioned += 1
                    logger.info(
                        "sweeper.transitioned",
                        appointment_id=appointment_id,
                        scheduled_for=starts_at.isoformat(),
                    )
                else:
                    # otra corrida (o un usuario) ya lo movió
                    result.skipped += 1

        return result
