"""
RoadHive Trip/Load API.

Serves load posting, bidding, driver trip execution, location history,
delivery OTP and simulated payments under ``/v1``.

Run locally with::

    uvicorn roadhive.app.main:app --reload
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from roadhive.app.core.config import settings
from roadhive.app.api.v1.router import router as api_v1_router
from roadhive.app.core.observability import ObservabilityMiddleware, configure_logging
from roadhive.app.core.redis_client import ping_redis
from roadhive.app.db.session import engine, create_tables
from roadhive.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Registered on Base.metadata before create_tables runs
from roadhive.app.models import audit_log, bid, load, location_history, notification  # noqa: F401

configure_logging()

EXCEPTION_HANDLERS = (
    (AppException, app_exception_handler),
    (HTTPException, http_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (Exception, generic_exception_handler),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Live trip tracking and delivery verification for freight loads",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

for exc_class, handler in EXCEPTION_HANDLERS:
    app.add_exception_handler(exc_class, handler)

app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus Redis reachability; OTP verification needs Redis."""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": await ping_redis(),
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the RoadHive Trip Tracking API",
        "docs": "/docs",
        "health": "/health",
    }
