"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, imports
from core.config import settings
from core.exceptions import (
    ConfigurationError,
    ImportAlreadyRunningError,
    ImportPipelineError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.job import ImportJobDriver
from schemas.api import ErrorResponse

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="External Data Import API",
    description="Operator API for scheduled imports from external APIs into the search index",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Initialize job driver
app.state.job_driver = ImportJobDriver()


# Include routers
app.include_router(health.router)
app.include_router(imports.router)


# ============================================================================
# Error mapping
# ============================================================================

_STATUS_BY_ERROR = (
    (ResourceNotFoundError, 404),
    (ImportAlreadyRunningError, 409),
    (InvalidStateTransitionError, 409),
    (ConfigurationError, 422),
)


@app.exception_handler(ImportPipelineError)
async def import_error_handler(request: Request, exc: ImportPipelineError):
    status_code = next((code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)), 500)
    logger.warning(
        f"{request.method} {request.url.path} failed: {exc}",
        extra={"error_context": exc.to_dict()}
    )
    body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting External Data Import API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.IMPORT_JOB_ENABLED:
        app.state.job_driver.start()
    else:
        logger.info("Import job disabled (IMPORT_JOB_ENABLED=false)")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down External Data Import API")
    app.state.job_driver.shutdown()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "External Data Import API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "imports": "/imports",
            "export": "/imports/export",
        }
    }
