import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinic_onboarding.config import settings
from clinic_onboarding.database import engine
from clinic_onboarding.deps import close_backend_client
from clinic_onboarding.middleware.exceptions import register_exception_handlers
from clinic_onboarding.routers import health, onboarding
from clinic_onboarding.utils.cache import close_redis

logger = logging.getLogger("clinic_onboarding")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Onboarding service starting (env=%s, progress backend=%s)",
        settings.environment, settings.progress_backend,
    )
    yield
    await close_backend_client()
    await close_redis()
    await engine.dispose()
    logger.info("Onboarding service stopped")


app = FastAPI(
    title="Clinic Onboarding",
    description="Multi-step onboarding wizard for companies, complexes and clinics",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["onboarding"])
