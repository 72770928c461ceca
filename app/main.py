"""
Kintai attendance service: application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `services/` package; `api/`, `models/` and `core/` wire it up.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.api import api_router
from app.api.v1.deps import cache_manager
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.db.base import Base
from app.db.session import engine

# Ensure all models are imported so metadata.create_all can see them
from app.models.api_call_log import ApiCallLog  # noqa: F401
from app.models.attendance import AttendanceEvent, LegacyAttendanceLog  # noqa: F401
from app.models.cron_settings import CronSettings  # noqa: F401
from app.models.link_request import LinkRequest  # noqa: F401
from app.models.monthly_cache import MonthlyAttendanceCache  # noqa: F401
from app.models.team import Team  # noqa: F401
from app.models.user import User  # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    logger.info(
        "%s v%s started (business timezone %s)",
        settings.PROJECT_NAME,
        settings.VERSION,
        settings.BUSINESS_TIMEZONE,
    )
    yield
    # Let in-flight monthly cache writes land before the pool goes away
    await cache_manager.wait_for_pending()
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Club NFC attendance: event log, presence stats, forced checkout",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
