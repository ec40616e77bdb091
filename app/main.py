"""
FAQ Miner - Main Application
FastAPI Entry Point with APScheduler for periodic re-scans
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
import structlog

from app.config import settings
from app.database import init_db
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.routers.jobs import router as jobs_router
from app.routers.emails import router as emails_router
from app.routers.faqs import router as faqs_router
from app.scheduler import start_scheduler, stop_scheduler
from app.services.monitoring.logging import configure_structlog, setup_logging
from app.services.monitoring.error_tracking import init_sentry

# Structured Logging Setup
configure_structlog()
setup_logging()
logger = structlog.get_logger()

# FastAPI App
app = FastAPI(
    title="FAQ Miner",
    description="Mines customer-support email threads for recurring questions and builds a FAQ",
    version="0.1.0",
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

app.add_middleware(CorrelationIdMiddleware)

# Register routers
app.include_router(jobs_router)
app.include_router(emails_router)
app.include_router(faqs_router)

# APScheduler instance (set on startup)
scheduler = None


@app.on_event("startup")
async def startup_event():
    """Application Startup"""
    global scheduler
    logger.info("startup", environment=settings.environment)

    init_sentry()

    # Initialize database connection
    init_db()
    logger.info("database_initialized")

    scheduler = start_scheduler(settings.environment)


@app.on_event("shutdown")
async def shutdown_event():
    """Application Shutdown"""
    logger.info("shutdown")
    stop_scheduler(scheduler)


@app.get("/")
async def root():
    """Root Endpoint"""
    return {
        "message": "FAQ Miner API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """
    Health Check Endpoint
    """
    health_status = {
        "status": "healthy",
        "environment": settings.environment,
        "services": {
            "api": "running",
            "scheduler": "running" if scheduler is not None and scheduler.running else "stopped"
        }
    }

    if settings.database_url:
        health_status["services"]["database"] = "configured"
    if settings.redis_url:
        health_status["services"]["redis"] = "configured"

    return JSONResponse(
        content=health_status,
        status_code=200
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development"
    )
