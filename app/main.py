"""
Agency Analytics Engine
Main FastAPI application
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.errors import AnalyticsEngineError
from app.utils.logger import log
from app import __version__

# Import routers
from app.api import analytics, health, monitoring, sync
from app.middleware.auth_middleware import AuthMiddleware
from app.services.auth_service import IdentityClient

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from app.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the scheduler for health monitoring and syncs
    if settings.enable_scheduler:
        try:
            from app.scheduler import start_scheduler
            start_scheduler()
            log.info("Scheduler started successfully")
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")

    yield

    # Shutdown
    if settings.enable_scheduler:
        from app.scheduler import stop_scheduler
        stop_scheduler()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Multi-platform analytics aggregation and service health engine

    - Fans out to ads, analytics and commerce platform functions in parallel
    - Normalizes every platform into one metrics schema
    - Serves cached overviews inside a freshness window
    - Monitors dependent functions and alerts on sustained outages
    """,
    lifespan=lifespan
)

app.state.identity_client = IdentityClient()


@app.exception_handler(AnalyticsEngineError)
async def engine_error_handler(request: Request, exc: AnalyticsEngineError):
    """Map engine errors to their HTTP status with an ``error`` body"""
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Bearer-token authentication for sync and monitoring routes
app.add_middleware(AuthMiddleware)

# Gzip compression
from starlette.middleware.gzip import GZipMiddleware
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(analytics.router)
app.include_router(sync.router)
app.include_router(monitoring.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "analytics": "POST /analytics-api",
            "services_health": "GET /health/services",
            "sync_integrations": "POST /sync/integrations",
            "sync_client": "POST /sync/client/{client_id}",
            "monitor_run": "POST /monitor/run",
            "monitor_status": "GET /monitor/status",
            "monitor_history": "GET /monitor/history",
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1
    )
