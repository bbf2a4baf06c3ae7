"""
Enrollment Hub API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Enrollment coordinator and realtime broadcast hub
- Background job scheduler (waitlist offer expiry and reminders)
- CORS middleware
- API routing
- Health check endpoints
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from enrollment_hub.api import api_router
from enrollment_hub.core.broadcast import get_hub, reset_hub
from enrollment_hub.core.config import settings
from enrollment_hub.core.database import async_session_maker, close_db, init_db
from enrollment_hub.core.redis import close_redis, init_redis, is_redis_available
from enrollment_hub.core.scheduler import (
    list_registered_jobs,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from enrollment_hub.modules.enrollments import register_waitlist_jobs
from enrollment_hub.modules.enrollments.coordinator import close_coordinator, init_coordinator


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection (optional; rate limiting falls back to memory)
    - Database connection
    - Enrollment coordinator
    - Background job scheduler
    """
    # Startup
    print(f"Starting Enrollment Hub API in {settings.python_env} mode...")

    try:
        await init_redis()
        print("[OK] Redis connected")
    except Exception as e:
        print(f"[FAIL] Redis connection failed, using in-memory rate limiting: {e}")

    try:
        await init_db()
        print("[OK] Database connected")
    except Exception as e:
        print(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    init_coordinator(hub=get_hub())
    print("[OK] Enrollment coordinator ready")

    try:
        # Register jobs before starting the scheduler
        register_waitlist_jobs()
        await start_scheduler()
        print("[OK] Background scheduler started")
    except Exception as e:
        print(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    print("Shutting down Enrollment Hub API...")

    # Stop the scheduler first (wait for running jobs)
    await stop_scheduler()
    print("[OK] Background scheduler stopped")

    # Let queued notifications finish
    await close_coordinator()
    reset_hub()

    await close_redis()
    await close_db()
    print("[OK] Cleanup complete")


app = FastAPI(
    title="Enrollment Hub API",
    description="Class enrollment with capacity control, FIFO waitlists and realtime updates",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to Enrollment Hub API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check: the database must answer; Redis is reported but optional."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail={"error": "NOT_READY", "message": f"Database unavailable: {e}"},
        ) from e

    return {
        "status": "ready",
        "redis": "connected" if is_redis_available() else "unavailable",
    }


# ============================================
# Background Job Debug Endpoints
# ============================================
# Manual triggering of background jobs for testing and maintenance.
# In production, jobs run automatically on schedule.


@app.get("/debug/jobs", tags=["Debug"])
async def list_jobs():
    """List all registered background jobs and their next run time."""
    return {"jobs": list_registered_jobs()}


@app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
async def trigger_job(job_id: str):
    """
    Manually trigger a background job, bypassing the schedule.

    Available jobs:
        - waitlist_expire_offers
        - waitlist_send_offer_reminders

    Raises:
        HTTPException 400: If job_id is not found.
    """
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not Found")

    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
