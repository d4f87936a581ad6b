"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from sitephotos.api.v1 import upload
from sitephotos.core.config import settings
from sitephotos.core.retry_utils import resilience_manager
from sitephotos.services.upload_registry import build_upload_registry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager."""
    # Startup: the registry lives as long as the process, not any request
    logger.info("Starting Site Photo Upload API")
    app.state.upload_registry = build_upload_registry()

    yield

    # Shutdown
    in_flight = app.state.upload_registry.in_flight_count
    if in_flight:
        logger.warning(f"Shutting down with {in_flight} upload batches still in flight; they are abandoned")
    logger.info("Shutting down Site Photo Upload API")


# Initialize FastAPI application
app = FastAPI(
    title="Site Photo Upload API",
    version="1.0.0",
    description="Background compression, storage and indexing of site photos",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with the request path."""
    logger.error(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # File payloads can end up in "input"; keep the response JSON serialisable.
    return [{k: v for k, v in err.items() if k not in ("input", "ctx")} for err in exc.errors()]


# Health check endpoint
@app.get("/health")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "message": "Site Photo Upload API is running"
    }


# Metrics endpoint
@app.get("/metrics")
async def get_metrics(request: Request):
    """Upload retry metrics and registry counts."""
    status = resilience_manager.get_health_status()
    registry = getattr(request.app.state, "upload_registry", None)
    if registry is not None:
        status["registry"] = {
            "in_flight_batches": registry.in_flight_count,
            "tracked_batches": len(registry.all_batches()),
        }
    return status


# Root endpoint
@app.get("/")
async def root() -> dict:
    """API information endpoint."""
    return {
        "name": "Site Photo Upload API",
        "version": "1.0.0",
        "description": "Background compression, storage and indexing of site photos",
        "docs": "/docs",
        "health": "/health"
    }


# Include API route modules
app.include_router(upload.router, prefix="/api/v1", tags=["Uploads"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
