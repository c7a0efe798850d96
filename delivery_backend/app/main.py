"""
FastAPI Application Entry Point.

This is the main application file for the Parcel Delivery Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from delivery_backend.app.core.config import settings
from delivery_backend.app.api.v1.router import router as api_v1_router
from delivery_backend.app.db.session import engine, Base
from delivery_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from delivery_backend.app.core.redis_client import close_redis, get_redis, ping_redis
from delivery_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from delivery_backend.app.models.account import Account
from delivery_backend.app.models.rider import RiderApplication
from delivery_backend.app.models.parcel import Parcel, ParcelStatusEvent
from delivery_backend.app.models.payment import PaymentRecord
from delivery_backend.app.models.audit_log import AuditLog

configure_logging(settings.log_level)
logger = logging.getLogger("delivery.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Closes the Redis connection pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s started (api %s)", settings.app_name, settings.api_version)
    yield
    await close_redis()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Parcel delivery backend: accounts, riders, parcel lifecycle and payments",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(redis_client=Depends(get_redis)):
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis(redis_client) else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Parcel Delivery Backend API",
        "docs": "/docs",
        "health": "/health",
    }
