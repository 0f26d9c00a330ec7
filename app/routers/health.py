# app/routers/health.py

from fastapi import APIRouter

from app.config import get_settings

settings = get_settings()
router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "freight-audit-api",
    }


@router.get("/ready")
async def readiness_check():
    """Readiness check - reports which collaborators are configured."""
    return {
        "status": "ready",
        "checks": {
            "database": "configured" if settings.supabase_url else "not_configured",
            "rate_service": "configured" if settings.rate_service_url else "not_configured",
        },
        "base_currency": settings.base_currency,
    }
