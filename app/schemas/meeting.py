# app/schemas/meeting.py
from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, PlainSerializer, field_validator

from app.models.meeting import MeetingProvider, MeetingStatus, ParticipantType
from app.services.timing import clinic_tz, to_clinic_time


def _as_clinic_time(v: datetime) -> datetime:
    # naive = UTC de base; siempre sale con el offset de la clínica
    return to_clinic_time(v) or v


# mismo huso en la respuesta que el que se asume en la entrada sin offset
ClinicDateTime = Annotated[datetime, PlainSerializer(_as_clinic_time, return_type=datetime, when_used="unless-none")]


# ---------- CREATE ----------
class MeetingCreate(BaseModel):
    consultation_id: str
    doctor_id: str
    scheduled_time: datetime = Field(..., description="ISO datetime; sin offset se toma en hora de la clínica")
    preferred_provider: Optional[MeetingProvider] = None

    @field_validator("scheduled_time")
    @classmethod
    def _clinic_time_if_naive(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=clinic_tz())
        return v


# ---------- MEETING ----------
class MeetingOut(BaseModel):
    # la contraseña sólo sale por la invitación, nunca en la API
    id: str
    consultation_id: str
    doctor_id: str
    provider: MeetingProvider
    meeting_link: str
    scheduled_time: ClinicDateTime
    actual_start_time: ClinicDateTime | None = None
    actual_end_time: ClinicDateTime | None = None
    invite_sent_at: ClinicDateTime | None = None
    status: MeetingStatus
    participant_count: int
    max_participants: int
    notes: str | None = None

    class Config:
        from_attributes = True


class MeetingCreateResponse(BaseModel):
    ok: bool = True
    created: bool
    provider_branch: Optional[Literal["preferred", "fallback"]] = None
    meeting: MeetingOut


class MeetingLinkUpdate(BaseModel):
    meeting_link: str = Field(..., min_length=1, max_length=2048)


# ---------- JOIN ----------
class JoinRequest(BaseModel):
    participant_type: ParticipantType


class JoinOut(BaseModel):
    ok: bool = True
    meeting_link: str
    participant_count: int
    status: MeetingStatus
    actual_start_time: ClinicDateTime | None = None


class JoinStatusOut(BaseModel):
    state: Literal["not_yet", "joinable", "ended"]
    can_join: bool
    message: str
    minutes_remaining: int | None = None
    window_start: ClinicDateTime | None = None
    window_end: ClinicDateTime | None = None


# ---------- COMPLETE / INVITE ----------
class CompleteRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)


class InviteOut(BaseModel):
    ok: bool = True
    customer_email: str
    invite_sent_at: ClinicDateTime
    meeting: MeetingOut
