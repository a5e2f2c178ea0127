# app/api/v1/google.py
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import require_roles
from app.core.db import get_db
from app.models.user import User, RoleEnum
from app.schemas.google import GoogleAuthUrlOut, GoogleConnectionOut, GoogleDisconnectOut
from app.services.google_oauth import build_auth_url, exchange_code_for_tokens, revoke_google_token

router = APIRouter(prefix="/google", tags=["google"])

# sólo quien hostea reuniones conecta su calendario
hosts = require_roles(RoleEnum.doctor, RoleEnum.admin)


@router.get("/oauth/start", response_model=GoogleAuthUrlOut)
async def oauth_start(user: User = Depends(hosts)):
    return {"auth_url": build_auth_url(state=user.id)}


@router.get("/oauth/start/redirect")
async def oauth_start_redirect(user: User = Depends(hosts)):
    return RedirectResponse(build_auth_url(state=user.id))


@router.get("/oauth/callback", response_model=GoogleConnectionOut)
async def oauth_cb(
    code: str = Query(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(hosts),
):
    gt = await exchange_code_for_tokens(db, user.id, code)
    return GoogleConnectionOut(user_id=gt.user_id, expires_at=gt.expires_at)


@router.delete("/disconnect", response_model=GoogleDisconnectOut)
async def google_disconnect(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(hosts),
):
    """
    Revoca el token en Google (si puede) y borra las credenciales locales.
    Solo afecta al usuario autenticado.
    """
    return await revoke_google_token(db, user.id)
