from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.google import router as google_router
from app.api.v1.meetings import router as meetings_router
from app.core.config import settings
from app.core.db import close_db
from app.core.logging import configure_structlog
from app.services.errors import MeetingError
from app.services.sweeper import AppointmentSweeper

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_structlog()
    sweeper = AppointmentSweeper()
    if settings.SWEEPER_ENABLED:
        sweeper.start()
    app.state.sweeper = sweeper
    logger.info("app.startup", environment=settings.ENVIRONMENT)
    yield
    sweeper.stop()
    await close_db()
    logger.info("app.shutdown")


app = FastAPI(title=f"{settings.APP_NAME} Meetings API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MeetingError)
async def meeting_error_handler(request: Request, exc: MeetingError):
    if exc.status_code >= 500:
        logger.warning("request.failed", path=request.url.path, code=exc.code, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(meetings_router)
app.include_router(google_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
