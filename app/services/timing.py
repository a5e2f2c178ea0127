"""Ventana de ingreso a la consulta online.

Todo el cálculo se hace en el huso fijo de la clínica
(``CLINIC_UTC_OFFSET_HOURS``) para que cliente y servidor no difieran.
Convención de entrada:

* ``datetime`` aware: se convierte al huso de la clínica.
* ``datetime`` naive: es un valor de base de datos, se lee como UTC.
* ``str``: ISO 8601; si no trae offset se toma en el huso de la clínica.

Cualquier entrada que no se pueda interpretar da ventana ``None``, y una
ventana ``None`` nunca es ingresable (falla cerrado).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Union

from app.core.config import settings


def clinic_tz() -> timezone:
    return timezone(timedelta(hours=settings.CLINIC_UTC_OFFSET_HOURS))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_clinic_time(value: object) -> datetime | None:
    """Normaliza `value` a un datetime aware en el huso de la clínica."""
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=clinic_tz())
        return parsed.astimezone(clinic_tz())
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(clinic_tz())
    return None


def to_storage(value: datetime) -> datetime:
    """datetime aware -> UTC naive (formato de las columnas DateTime)."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_clock_time(value: object) -> time | None:
    """'9:00' / '09:00' -> time(9, 0); cualquier otra cosa -> None."""
    if not isinstance(value, str):
        return None
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts) or len(parts[1]) != 2:
        return None
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


def combine_clinic_datetime(day: date, clock: str) -> datetime | None:
    """Fecha civil + hora del turno, en el huso de la clínica."""
    parsed = parse_clock_time(clock)
    if parsed is None or not isinstance(day, date):
        return None
    return datetime.combine(day, parsed, tzinfo=clinic_tz())


@dataclass(frozen=True)
class JoinWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class NotYet:
    minutes_remaining: int
    state: str = "not_yet"

    @property
    def message(self) -> str:
        unit = "minuto" if self.minutes_remaining == 1 else "minutos"
        return f"La consulta se habilita en {self.minutes_remaining} {unit}"


@dataclass(frozen=True)
class Joinable:
    state: str = "joinable"

    @property
    def message(self) -> str:
        return "Ya podés ingresar a la consulta"


@dataclass(frozen=True)
class Ended:
    state: str = "ended"

    @property
    def message(self) -> str:
        return "La consulta ya finalizó"


ButtonState = Union[NotYet, Joinable, Ended]


def compute_join_window(
    scheduled_time: object,
    duration_minutes: int | None = None,
    pre_join_minutes: int | None = None,
) -> JoinWindow | None:
    """[scheduled - pre_join, scheduled + duration] en el huso de la clínica."""
    start = to_clinic_time(scheduled_time)
    if start is None:
        return None
    if duration_minutes is None:
        duration_minutes = settings.MEETING_DURATION_MINUTES
    if pre_join_minutes is None:
        pre_join_minutes = settings.MEETING_PRE_JOIN_MINUTES
    return JoinWindow(
        start=start - timedelta(minutes=pre_join_minutes),
        end=start + timedelta(minutes=duration_minutes),
    )


def can_join(now: object, window: JoinWindow | None) -> bool:
    current = to_clinic_time(now)
    if window is None or current is None:
        return False
    return window.start <= current <= window.end


def button_state(now: object, window: JoinWindow | None) -> ButtonState:
    current = to_clinic_time(now)
    if window is None or current is None:
        return Ended()
    if current < window.start:
        seconds = (window.start - current).total_seconds()
        return NotYet(minutes_remaining=max(1, math.ceil(seconds / 60)))
    if current > window.end:
        return Ended()
    return Joinable()
