"""Main application entry point for template-vault.

This module creates and configures the FastAPI application.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config import settings
from src.api import admin, auth, redeem
from src.database.session import create_tables, get_db_context
from src.services.errors import InternalInconsistency, RedemptionError, StoreUnavailable
from src.services.lifecycle import LifecycleSweeper

logger = logging.getLogger(__name__)


def _sweep_once() -> int:
    with get_db_context() as db:
        return LifecycleSweeper(db).sweep_expired()


async def _periodic_sweep(interval_seconds: int):
    """Retire spent short-term codes every ``interval_seconds``."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(_sweep_once)
        except RedemptionError as exc:
            logger.warning("Periodic access code sweep failed: %s", exc)
        except Exception:
            logger.exception("Periodic access code sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    print(f"Starting {settings.app_name} v{settings.app_version}")
    print(f"Environment: {settings.environment}")

    # Create database tables (in production, use Alembic migrations instead)
    if settings.environment == "development":
        print("Creating database tables...")
        create_tables()

    sweeper_task = None
    if settings.sweep_interval_seconds > 0:
        print(f"Sweeping access codes every {settings.sweep_interval_seconds}s")
        sweeper_task = asyncio.create_task(_periodic_sweep(settings.sweep_interval_seconds))

    yield

    # Shutdown
    print("Shutting down application...")
    if sweeper_task is not None:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Access-code redemption for the template marketplace",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# Exception handlers
@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    """Transient store faults: generic retry message, never partial success."""
    logger.warning("Store unavailable on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, please try again"},
        headers={"Retry-After": "1"}
    )


@app.exception_handler(InternalInconsistency)
async def internal_inconsistency_handler(request: Request, exc: InternalInconsistency):
    logger.error("Internal inconsistency on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal error, please try again later"}
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


# Include routers
app.include_router(auth.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(redeem.router, prefix="/api")


def main():
    """Run the application using uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )


if __name__ == "__main__":
    main()
