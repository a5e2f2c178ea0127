# app/schemas/google.py
from datetime import datetime
from pydantic import BaseModel


# ---------- OAUTH ----------
class GoogleAuthUrlOut(BaseModel):
    auth_url: str


class GoogleConnectionOut(BaseModel):
    # los tokens quedan en la base; al cliente sólo le decimos hasta cuándo valen
    user_id: str
    connected: bool = True
    expires_at: datetime

    class Config:
        from_attributes = True


class GoogleDisconnectOut(BaseModel):
    ok: bool
    revoked: bool
    detail: str | None = None
