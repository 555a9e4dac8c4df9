"""Liveness, readiness and database checks. None of them need a token."""

import asyncio
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.config import get_settings
from infrastructure.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])
settings = get_settings()


def _service_info() -> dict:
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def _database_reachable(db: AsyncSession, timeout: float) -> tuple[bool, str]:
    """Run ``SELECT 1`` within ``timeout`` seconds; the detail never leaks driver errors."""
    try:
        await asyncio.wait_for(db.execute(text("SELECT 1")), timeout=timeout)
    except TimeoutError:
        logger.error("Database check timed out after %.1fs", timeout)
        return False, "error: database timeout"
    except Exception as e:
        logger.error("Database check failed: %s", e)
        return False, "error: database check failed"
    return True, "connected"


@router.get("/health")
async def health_check():
    return {"status": "healthy", **_service_info()}


@router.get("/health/db")
async def health_check_db(db: AsyncSession = Depends(get_db)):
    ok, detail = await _database_reachable(db, timeout=5.0)
    return {"status": "healthy" if ok else "degraded", "database": detail, **_service_info()}


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """503 until the database answers, so load balancers hold traffic back."""
    ok, _ = await _database_reachable(db, timeout=2.0)
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"ready": ok, "database": "ok" if ok else "unavailable"},
    )


@router.get("/health/live")
async def liveness_check():
    return {"alive": True}
