"""
Timeclock: Application entry point.

This is the **only** file that assembles the app.  Time accounting lives in
`services/`; HTTP concerns in `api/`; persistence in `models/` and `db/`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from timeclock.api.v1.api import api_router
from timeclock.api.v1.endpoints.auth import limiter
from timeclock.core.config import settings
from timeclock.core.exceptions import register_exception_handlers
from timeclock.core.security import get_password_hash
from timeclock.db.base import Base
from timeclock.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from timeclock.models.attendance_settings import AttendanceSettings  # noqa: F401
from timeclock.models.audit_log import AuditLog  # noqa: F401
from timeclock.models.correction import PunchCorrection, PunchReview  # noqa: F401
from timeclock.models.employee import Employee, Punch  # noqa: F401
from timeclock.models.overtime import OvertimeRequest  # noqa: F401
from timeclock.models.user import User
from timeclock.services.clock import TIMEZONE_NAME, verify_timezone_support

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    ok, details = verify_timezone_support()
    if ok:
        logger.info("Timezone %s verified: %s", TIMEZONE_NAME, details)
    else:
        logger.error("Timezone %s self-check FAILED: %s", TIMEZONE_NAME, details)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    # Seed default admin user on first run
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL)
        )
        if result.scalar_one_or_none() is None:
            admin = User(
                email=settings.FIRST_ADMIN_EMAIL,
                hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                full_name="System Administrator",
                role="admin",
            )
            session.add(admin)
            await session.commit()
            logger.info(
                "Default admin created: %s (password: <redacted>)",
                settings.FIRST_ADMIN_EMAIL,
            )

    logger.info("Timeclock v%s started", settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title="Timeclock",
        description="Employee time clock and working-hours register",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.state.limiter = limiter

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
