"""Health check endpoints."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from linkgate.api.deps import BackendDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check - just confirms the service is running."""
    return {"status": "ok"}


@router.get("/db")
async def health_check_db(backend: BackendDep):
    """Health check with database connectivity."""
    if not backend.durable:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "not_configured"},
        )

    from linkgate.database import get_session_context

    try:
        async with get_session_context() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected"},
        )


@router.get("/ready")
async def readiness_check(backend: BackendDep):
    """Readiness check - confirms the token store answers.

    Reports ``degraded`` when running on the in-memory fallback.
    Returns 503 if the durable store cannot be reached.
    """
    try:
        outstanding = await backend.token_store.count_outstanding(backend.clock())
    except Exception as e:
        logger.error(f"Token store readiness check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "storage": backend.mode, "error": str(e)},
        )

    return {
        "status": "ok" if backend.durable else "degraded",
        "storage": backend.mode,
        "outstanding_tokens": outstanding,
    }
