import uuid
import enum
from datetime import date, datetime
from sqlalchemy import String, Enum, ForeignKey, Date, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db import Base

class ServiceType(str, enum.Enum):
    consultation = "consultation"
    test = "test"
    other = "other"

class LocationType(str, enum.Enum):
    clinic = "clinic"
    home = "home"
    online = "online"

class ApptStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    consulting = "consulting"
    completed = "completed"
    cancelled = "cancelled"

class Appointment(Base):
    """Turno creado por el flujo de reservas; acá sólo lo avanza el sweeper."""
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    doctor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("doctors.id"), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # fecha civil + hora "H:MM" en el huso de la clínica
    appointment_date: Mapped[date] = mapped_column(Date, index=True)
    appointment_time: Mapped[str] = mapped_column(String(5))

    service_type: Mapped[ServiceType] = mapped_column(Enum(ServiceType), default=ServiceType.consultation)
    location_type: Mapped[LocationType] = mapped_column(Enum(LocationType), default=LocationType.clinic)
    status: Mapped[ApptStatus] = mapped_column(Enum(ApptStatus), default=ApptStatus.pending, index=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
