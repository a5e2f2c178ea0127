from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.security import decode_access_token
from app.models.doctor import Doctor
from app.models.user import User, RoleEnum
from app.services.meetings import MeetingService


bearer = HTTPBearer(auto_error=True)


async def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    claims = decode_access_token(creds.credentials)
    if claims is None:
        raise HTTPException(status_code=401, detail="Token inválido")

    user = await db.get(User, claims.sub)
    if not user:
        raise HTTPException(status_code=401, detail="Usuario no encontrado")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Usuario inactivo")
    # si le cambiaron el rol, el token viejo ya no sirve
    if claims.role and claims.role != user.role.value:
        raise HTTPException(status_code=401, detail="Token desactualizado, volvé a iniciar sesión")

    return user


def require_roles(*roles: RoleEnum):
    async def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permiso denegado")
        return user
    return _guard


async def get_linked_doctor_id(user: User, db: AsyncSession) -> str | None:
    """Perfil de doctor del usuario (None si no es doctor o no tiene perfil)."""
    if user.role != RoleEnum.doctor:
        return None
    return await db.scalar(select(Doctor.id).where(Doctor.user_id == user.id))


async def get_meeting_service(db: AsyncSession = Depends(get_db)) -> MeetingService:
    # en tests se reemplaza vía app.dependency_overrides
    return MeetingService(db)
