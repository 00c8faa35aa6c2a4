"""
Campus Fest Admission API.

Registration admission with a FIFO waitlist, merchandise orders against
per-variant stock, and team formation with all-or-nothing registration.
Run with: uvicorn campusfest.main:app
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.api.exception_handlers import register_exception_handlers
from campusfest.api.middleware import RequestLoggingMiddleware
from campusfest.api.router import api_router
from campusfest.core.config import get_settings
from campusfest.core.logging import get_logger, setup_logging
from campusfest.core.metrics import metrics_endpoint
from campusfest.db.session import engine, get_db
from campusfest.infrastructure import close_redis, get_redis, get_redis_status

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "application_starting",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        admission_strategy=settings.ADMISSION_STRATEGY,
    )

    # The gate is optional; without Redis every decision goes to the database
    if settings.ADMISSION_STRATEGY == "redis" and await get_redis() is None:
        logger.warning("admission_gate_degraded", reason="redis unavailable")

    yield

    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Admission, merchandise and team registration for campus fest events",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus the state of the database and the admission gate."""
    try:
        await db.execute(text("SELECT 1"))
        database = {"status": "ok"}
    except SQLAlchemyError as e:
        logger.error("health_database_failed", error=str(e))
        database = {"status": "error"}

    return {
        "status": "healthy" if database["status"] == "ok" else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "admission_strategy": settings.ADMISSION_STRATEGY,
        "database": database,
        "redis": await get_redis_status(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()
