from __future__ import annotations
import enum
import uuid
from typing import TYPE_CHECKING
from sqlalchemy import String, Enum, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.core.db import Base

if TYPE_CHECKING:
    from app.models.google import GoogleToken


class RoleEnum(str, enum.Enum):
    customer = "customer"   # paciente
    doctor = "doctor"
    staff = "staff"         # recepción / coordinación
    admin = "admin"


class User(Base):
    """Cuenta autenticada. Las credenciales las maneja el servicio de cuentas."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255))
    role: Mapped[RoleEnum] = mapped_column(Enum(RoleEnum), default=RoleEnum.customer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # sólo los hosts de reuniones (doctores) conectan Google
    google_token: Mapped[GoogleToken | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
