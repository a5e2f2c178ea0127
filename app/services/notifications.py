"""Envío de la invitación a la consulta online.

Único canal por el que sale la contraseña de la reunión.
"""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import structlog

from app.core.config import settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class InviteContact:
    name: str
    email: str | None
    doctor_name: str | None = None


class InviteDispatcher(Protocol):
    async def send_invite(self, contact: InviteContact, meeting_link: str, password: str) -> bool: ...


def build_invite_message(contact: InviteContact, meeting_link: str, password: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = f"{settings.APP_NAME}: tu consulta online"
    msg["From"] = settings.SMTP_FROM
    msg["To"] = contact.email or ""
    doctor = f" con {contact.doctor_name}" if contact.doctor_name else ""
    body = (
        f"Hola {contact.name},\n\n"
        f"Tu consulta online{doctor} ya está lista.\n"
        f"Link: {meeting_link}\n"
        f"Contraseña: {password}\n"
    )
    msg.attach(MIMEText(body, "plain", "utf-8"))
    return msg


class SmtpInviteDispatcher:
    """Manda el mail por SMTP en un thread; devuelve False ante cualquier falla."""

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool | None = None,
        timeout: float | None = None,
    ) -> None:
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.timeout = timeout or settings.SMTP_TIMEOUT_SECONDS

    def _send(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)

    async def send_invite(self, contact: InviteContact, meeting_link: str, password: str) -> bool:
        if not self.host:
            logger.warning("invite.smtp_not_configured")
            return False
        if not contact.email:
            logger.warning("invite.missing_email", name=contact.name)
            return False

        msg = build_invite_message(contact, meeting_link, password)
        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("invite.send_failed", to=contact.email, error=str(exc))
            return False
        logger.info("invite.sent", to=contact.email)
        return True
