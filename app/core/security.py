"""JWT de acceso.

La emisión de tokens (login) vive en el servicio de cuentas; acá sólo se
firman tokens de servicio/tests y se validan los que llegan a la API.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from app.core.config import settings


@dataclass(frozen=True)
class TokenClaims:
    sub: str
    role: str | None = None


def create_access_token(
        subject: str,
        role: str | None = None,
        expires_minutes: int | None = None
        ) -> str:
    now = datetime.now(tz=timezone.utc)
    claims = {
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims | None:
    """None si el token es inválido, está vencido o no trae `sub`."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        return None
    return TokenClaims(sub=sub, role=payload.get("role"))
