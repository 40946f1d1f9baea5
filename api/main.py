"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, ingestion, admin
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.exceptions import PipelineException, NonRetryableError
from core.logging import setup_logging
from ingestion.scheduler import DealScheduler
from schemas.api import ErrorResponse
import logging

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Deal Ingestion Backend API",
    description="Ingestion, quality gating and promotion of producer-submitted deals",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

scheduler = DealScheduler()


app.include_router(health.router)
app.include_router(ingestion.router)
app.include_router(admin.router)


@app.exception_handler(PipelineException)
async def pipeline_exception_handler(request: Request, exc: PipelineException):
    """Render pipeline errors as the standard error body"""
    status_code = 400 if isinstance(exc, NonRetryableError) else 503
    logger.error(f"[{getattr(request.state, 'request_id', None)}] {exc}")
    body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Deal Ingestion Backend API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Deal Ingestion Backend API")
    await scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Deal Ingestion Backend API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "ingestion": "/ingestion/jobs",
            "admin": "/admin/ingestion/pending"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)
