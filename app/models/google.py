# app/models/google.py
from __future__ import annotations
import datetime as dt
from typing import TYPE_CHECKING
from sqlalchemy import String, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.core.db import Base

if TYPE_CHECKING:
    from app.models.user import User  # solo para hints (no se ejecuta en runtime)


class GoogleToken(Base):
    """Credenciales OAuth de Google Calendar del doctor que hostea la Meet."""
    __tablename__ = "google_tokens"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    # UTC naive
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="google_token", uselist=False)
