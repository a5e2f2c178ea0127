# app/models/meeting.py
from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy import String, Text, DateTime, Enum, ForeignKey, Integer, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.core.db import Base


class MeetingProvider(str, enum.Enum):
    google = "google"
    jitsi = "jitsi"


class MeetingStatus(str, enum.Enum):
    scheduled = "scheduled"
    waiting_customer = "waiting_customer"
    invite_sent = "invite_sent"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class ParticipantType(str, enum.Enum):
    doctor = "doctor"
    customer = "customer"


class Meeting(Base):
    __tablename__ = "meetings"
    __table_args__ = (
        UniqueConstraint("consultation_id", name="uq_meeting_consultation"),
        Index("ix_meeting_status", "status"),
        Index("ix_meeting_scheduled_time", "scheduled_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    consultation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("consultations.id"), nullable=False
    )
    doctor_id: Mapped[str] = mapped_column(String(36), ForeignKey("doctors.id"), index=True)

    provider: Mapped[MeetingProvider] = mapped_column(Enum(MeetingProvider), nullable=False)
    meeting_link: Mapped[str] = mapped_column(Text, nullable=False)
    provider_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)  # event id / room
    # se genera una sola vez al crear; nunca se rota
    password: Mapped[str] = mapped_column(String(32), nullable=False)

    # todas las fechas en UTC naive
    scheduled_time: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    actual_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    actual_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    invite_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    status: Mapped[MeetingStatus] = mapped_column(
        Enum(MeetingStatus), default=MeetingStatus.scheduled, nullable=False
    )
    participant_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, default=2, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    participants: Mapped[list["MeetingParticipant"]] = relationship(
        back_populates="meeting", order_by="MeetingParticipant.joined_at"
    )


class MeetingParticipant(Base):
    """Auditoría de cada ingreso aceptado (doctor o paciente)."""
    __tablename__ = "meeting_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meeting_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("meetings.id", ondelete="CASCADE"), index=True, nullable=False
    )
    participant_type: Mapped[ParticipantType] = mapped_column(Enum(ParticipantType), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    meeting: Mapped["Meeting"] = relationship(back_populates="participants")
