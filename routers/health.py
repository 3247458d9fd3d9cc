# routers/health.py

from fastapi import APIRouter
from core.logging_config import logger
from core.supabase_client import ping_supabase

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


@router.get("/db", summary="Supabase reachability")
async def health_db():
    """Reports per-table read status for `users` and `submissions`."""
    try:
        details = ping_supabase()
    except Exception as e:
        logger.error(f"Supabase health check failed: {e}", exc_info=True)
        return {"service": "Supabase", "status": "error", "error": str(e)}

    return {
        "service": "Supabase",
        "status": details.get("status", "unknown"),
        "details": details,
    }


# Unauthenticated liveness probe for the load balancer
@router.get("/app", summary="Liveness")
async def health_app():
    return {
        "service": "Coaching API",
        "status": "ok",
    }
