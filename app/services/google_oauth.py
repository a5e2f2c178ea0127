import httpx
import structlog
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.models.google import GoogleToken
from app.core.config import settings
from app.services.errors import ProviderUnavailable, ValidationError

logger = structlog.get_logger(__name__)

GOOGLE_AUTH = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE = "https://oauth2.googleapis.com/revoke"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"

# margen antes del vencimiento en el que ya pedimos token nuevo
REFRESH_MARGIN = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_auth_url(state: str | None = None) -> str:
    params = {
        "response_type": "code",
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": settings.GOOGLE_REDIRECT_URL,
        "scope": CALENDAR_SCOPE,
        "access_type": "offline",   # para recibir refresh_token
        "prompt": "consent",
    }
    if state:
        params["state"] = state
    return f"{GOOGLE_AUTH}?{urlencode(params)}"


async def exchange_code_for_tokens(
    db: AsyncSession,
    user_id: str,
    code: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GoogleToken:
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.GOOGLE_REDIRECT_URL,
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
    }
    async with httpx.AsyncClient(transport=transport, timeout=settings.PROVIDER_TIMEOUT_SECONDS) as cx:
        r = await cx.post(GOOGLE_TOKEN, data=data)
    if r.status_code != 200:
        raise ValidationError(f"Google token error: {r.text}")
    try:
        payload = r.json()
    except ValueError:
        raise ValidationError("Google token error: respuesta no es JSON")
    if "refresh_token" not in payload:
        # Google sólo lo manda con prompt=consent; sin él no podemos refrescar
        raise ValidationError("Google no devolvió refresh_token; reconectá la cuenta")

    try:
        zt = GoogleToken(
            user_id=user_id,
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_at=_utcnow() + timedelta(seconds=int(payload["expires_in"])),
        )
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Google token error: respuesta incompleta")
    zt = await db.merge(zt)
    await db.commit()
    logger.info("google.connected", user_id=user_id)
    return zt


async def ensure_access_token(
    db: AsyncSession,
    user_id: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Devuelve un access_token válido para `user_id`, refrescándolo si vence
    en menos de 5 minutos. Cualquier falla es ProviderUnavailable.
    """
    res = await db.execute(select(GoogleToken).where(GoogleToken.user_id == user_id))
    token = res.scalar_one_or_none()
    if not token:
        raise ProviderUnavailable("Google no conectado para este usuario.")

    if token.expires_at > _utcnow() + REFRESH_MARGIN:
        return token.access_token

    logger.info("google.token_refresh", user_id=user_id)
    data = {
        "grant_type": "refresh_token",
        "refresh_token": token.refresh_token,
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
    }
    try:
        async with httpx.AsyncClient(transport=transport, timeout=settings.PROVIDER_TIMEOUT_SECONDS) as cx:
            resp = await cx.post(GOOGLE_TOKEN, data=data)
            resp.raise_for_status()
            payload = resp.json()
        access_token = payload["access_token"]
        expires_at = _utcnow() + timedelta(seconds=int(payload["expires_in"]))
    except httpx.HTTPError as exc:
        raise ProviderUnavailable(f"Google refresh error: {exc}") from exc
    except (ValueError, KeyError, TypeError) as exc:
        # 200 con cuerpo que no es JSON o sin los campos del token
        raise ProviderUnavailable(f"Google refresh: respuesta inválida ({exc!r})") from exc

    token.access_token = access_token
    # Google no siempre rota el refresh_token
    token.refresh_token = payload.get("refresh_token", token.refresh_token)
    token.expires_at = expires_at
    await db.commit()
    return token.access_token


async def revoke_google_token(
    db: AsyncSession,
    user_id: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Intenta revocar en Google y borra el token localmente."""
    res = await db.execute(select(GoogleToken).where(GoogleToken.user_id == user_id))
    zt = res.scalar_one_or_none()
    if not zt:
        return {"ok": True, "revoked": False, "detail": "No había token guardado"}

    try:
        async with httpx.AsyncClient(transport=transport, timeout=10.0) as cx:
            await cx.post(GOOGLE_REVOKE, data={"token": zt.refresh_token})
    except httpx.HTTPError as exc:
        # no bloqueamos el borrado local si Google no responde
        logger.warning("google.revoke_failed", user_id=user_id, error=str(exc))

    await db.delete(zt)
    await db.commit()
    return {"ok": True, "revoked": True}
