"""
Health check and status endpoints
"""
from fastapi import APIRouter, Depends

from app import __version__
from app.config import get_settings
from app.scheduler import get_scheduled_jobs
from app.services.health_poller import HealthPoller
from app.utils.helpers import utcnow

settings = get_settings()

router = APIRouter()


def get_poller() -> HealthPoller:
    return HealthPoller()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": __version__
    }


@router.get("/health/services")
async def services_health(poller: HealthPoller = Depends(get_poller)):
    """Check every dependent function and report the aggregate status"""
    return await poller.check_services()


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "scheduler": settings.enable_scheduler,
            "scheduled_sync": settings.enable_scheduled_sync,
            "health_alerts": settings.enable_health_alerts,
        },
        "cache_freshness_minutes": settings.cache_freshness_minutes,
        "scheduled_jobs": get_scheduled_jobs(),
        "timestamp": utcnow().isoformat()
    }
