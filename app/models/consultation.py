import uuid
import enum
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, Enum, Text
from sqlalchemy.orm import Mapped, mapped_column
from app.core.db import Base

class ConsultationStatus(str, enum.Enum):
    pending = "pending"
    scheduled = "scheduled"
    consulting = "consulting"
    completed = "completed"
    cancelled = "cancelled"

class Consultation(Base):
    """Pedido de consulta online del paciente. Tiene a lo sumo una Meeting."""
    __tablename__ = "consultations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    doctor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("doctors.id"), nullable=True, index=True)

    customer_name: Mapped[str] = mapped_column(String(255))
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    question: Mapped[str] = mapped_column(Text, default="")

    status: Mapped[ConsultationStatus] = mapped_column(
        Enum(ConsultationStatus), default=ConsultationStatus.pending, index=True
    )
    doctor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
