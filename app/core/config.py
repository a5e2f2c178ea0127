# app/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore")

    APP_NAME: str = "Clinic Hub"
    ENVIRONMENT: str = "development"   # "production" => logs JSON
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    JWT_SECRET: str = Field(...)
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # si viene DATABASE_URL se usa tal cual (tests: sqlite+aiosqlite)
    DATABASE_URL: str | None = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "clinic"
    DB_PASSWORD: str = ""
    DB_NAME: str = "clinic_hub"

    # --- Google Meet (proveedor principal) ---
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URL: str = ""
    GOOGLE_CALENDAR_ID: str = "primary"

    # --- Jitsi (fallback self-hosted) ---
    JITSI_BASE_URL: str = "https://meet.jit.si"

    DEFAULT_MEETING_PROVIDER: str = "google"
    PROVIDER_TIMEOUT_SECONDS: float = 10.0

    # --- ventana de ingreso / sala ---
    MEETING_PRE_JOIN_MINUTES: int = 5
    MEETING_DURATION_MINUTES: int = 60
    MEETING_MAX_PARTICIPANTS: int = 2
    MEETING_PASSWORD_LENGTH: int = 8
    MEETING_DEFAULT_COMPLETION_NOTE: str = "Consulta finalizada"

    # huso fijo de la clínica (civil time), en horas respecto de UTC
    CLINIC_UTC_OFFSET_HOURS: int = 7

    # --- sweeper de turnos ---
    SWEEPER_ENABLED: bool = True
    SWEEPER_INTERVAL_MINUTES: int = 5
    SWEEPER_LOOKBACK_DAYS: int | None = None

    # --- invitaciones por mail ---
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    SMTP_FROM: str = "no-reply@clinichub.local"
    SMTP_TIMEOUT_SECONDS: float = 10.0

    @property
    def async_database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (f"mysql+aiomysql://{self.DB_USER}:{self.DB_PASSWORD}"
                f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}?charset=utf8mb4")

    @property
    def google_enabled(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)


settings = Settings()  # type: ignore[call-arg]
