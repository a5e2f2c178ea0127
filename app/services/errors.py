"""Errores del ciclo de vida de las reuniones.

Cada error lleva el status HTTP y un `code` estable; `app.main` los
convierte en respuestas JSON con un único exception handler.
"""

from __future__ import annotations

from typing import Any


class MeetingError(Exception):
    status_code: int = 400
    code: str = "meeting_error"

    def __init__(self, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code, **self.extra}


class ValidationError(MeetingError):
    status_code = 422
    code = "validation_error"


class NotFoundError(MeetingError):
    status_code = 404
    code = "not_found"


class ConsultationNotFound(NotFoundError):
    code = "consultation_not_found"

    def __init__(self, consultation_id: str) -> None:
        super().__init__("Consulta no encontrada", consultation_id=consultation_id)


class MeetingNotFound(NotFoundError):
    code = "meeting_not_found"

    def __init__(self, consultation_id: str) -> None:
        super().__init__("Aún no hay reunión para esta consulta", consultation_id=consultation_id)


class TimingError(MeetingError):
    status_code = 409
    code = "outside_join_window"


class ProviderUnavailable(MeetingError):
    status_code = 503
    code = "provider_unavailable"


class CapacityExceeded(MeetingError):
    status_code = 409
    code = "capacity_exceeded"

    def __init__(self, max_participants: int) -> None:
        super().__init__(
            f"La sala está completa ({max_participants} participantes como máximo)",
            max_participants=max_participants,
        )


class InvalidTransition(MeetingError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"No se puede pasar de '{current}' a '{requested}'",
            current_status=current,
            requested_status=requested,
        )


class NotificationFailed(MeetingError):
    status_code = 502
    code = "notification_failed"
