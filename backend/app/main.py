"""Wellness Hub Backend Application.

This is the main entry point for the Wellness Hub upload backend, the service
the health-department admin dashboard uses to upload images and documents
for services, news, programs and published reports.

Modules:
    - uploads: Upload validation, storage and serving of stored files
    - config: YAML-backed settings (wellness.settings.yaml)
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_config
from app.uploads.policy import policies_from_config
from app.uploads.router import files_router, router as upload_router, set_upload_store
from app.uploads.service import StorageFailure, UploadStore

API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Multipart parsing logs every part at DEBUG; httpx logs every test request.
for _noisy in (
    "multipart",
    "python_multipart",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in wellness.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    try:
        store = UploadStore(
            root=config.uploads.dir,
            policies=policies_from_config(config.uploads),
        )
        set_upload_store(store)
        logger.info(
            "Upload store ready: dir=%s image_max=%dMB document_max=%dMB",
            store.root,
            config.uploads.image_max_mb,
            config.uploads.document_max_mb,
        )
    except StorageFailure as exc:
        logger.error("Upload store disabled: %s", exc)

    yield  # Application runs here

    # Shutdown
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Wellness Hub API",
    description="Upload backend for the Wellness Hub health-department portal",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    elapsed_ms = (time.time() - start_time) * 1000

    logger.info(
        "%s %s -> %d (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse({"error": "Not Found"}, status_code=404)
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse({"error": "Internal Server Error"}, status_code=500)


# Register all routers
app.include_router(upload_router)
app.include_router(files_router)


@app.get("/")
async def root() -> dict:
    """Service banner.

    Returns:
        dict: Name, version, status and current server time.
    """
    return {
        "message": "Wellness Hub API",
        "version": API_VERSION,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
