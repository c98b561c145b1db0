"""
StatJam Clip Worker
Main FastAPI Application Entry Point
"""

import shutil
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .utils.logger import setup_logger
from .utils.exceptions import ClipWorkerError
from .routers import jobs_router, clips_router, games_router, settings_router
from .services.pipeline import get_pipeline


# Set up logging
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings = get_settings()

    # Create required directories
    Path(settings.temp_dir).mkdir(parents=True, exist_ok=True)
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)

    pipeline = get_pipeline()
    await pipeline.startup()

    logger.info("=" * 60)
    logger.info(settings.app_name)
    logger.info("=" * 60)
    logger.info(f"Temp directory: {settings.temp_dir}")
    logger.info(f"Data directory: {settings.data_dir}")
    logger.info(f"Stream CDN: {settings.stream_cdn_url}")
    logger.info(f"Parallel clip workers: {settings.max_parallel_clips}")
    logger.info(f"Queue workers: {settings.job_worker_concurrency}")
    logger.info(f"Queue max pending jobs: {settings.max_pending_jobs}")

    if settings.storage_configured:
        logger.info(f"[OK] AWS S3 configured (bucket: {settings.s3_bucket_name})")
    else:
        logger.warning("[!] AWS S3 not configured (every clip upload will fail)")

    if shutil.which(settings.ffmpeg_binary):
        logger.info("[OK] FFmpeg found")
    else:
        logger.warning(f"[!] FFmpeg binary not found: {settings.ffmpeg_binary}")

    if settings.api_key:
        logger.info("[OK] API key authentication enabled")
    else:
        logger.warning("[!] API key authentication disabled")

    logger.info("=" * 60)

    yield

    await pipeline.shutdown()
    logger.info(f"Shutting down {settings.app_name}...")


# Create FastAPI app
app = FastAPI(
    title="StatJam Clip Worker",
    description="Cuts per-stat highlight clips from recorded game video",
    version=get_settings().app_version,
    lifespan=lifespan
)

# CORS middleware
settings = get_settings()
cors_origins = settings.cors_allowed_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
cors_allow_credentials = "*" not in cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


PUBLIC_PATHS = {
    "/",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}


def _extract_api_key(request: Request) -> str:
    api_key = request.headers.get("x-api-key", "").strip()
    if api_key:
        return api_key

    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return ""


@app.middleware("http")
async def api_key_auth_middleware(request: Request, call_next):
    settings = get_settings()
    if not settings.api_key:
        return await call_next(request)

    path = request.url.path
    if path in PUBLIC_PATHS or not path.startswith("/api"):
        return await call_next(request)

    provided_key = _extract_api_key(request)
    if provided_key != settings.api_key:
        return JSONResponse(
            status_code=401,
            content={"detail": "Unauthorized: invalid or missing API key"},
        )

    return await call_next(request)


# ============================================================================
# Global Exception Handlers
# ============================================================================

@app.exception_handler(ClipWorkerError)
async def clipworker_exception_handler(request: Request, exc: ClipWorkerError):
    """Handle all clip worker custom exceptions"""
    logger.error(f"ClipWorkerError [{exc.code}]: {exc.message}")
    status_code = exc.http_status or (400 if exc.recoverable else 500)
    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict()
    )


@app.exception_handler(ValueError)
async def validation_exception_handler(request: Request, exc: ValueError):
    """Handle validation errors"""
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": str(exc),
            "recoverable": True,
            "recovery_hint": "Check your input parameters and try again."
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle any unhandled exceptions"""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again.",
            "recoverable": True,
            "recovery_hint": "If this persists, check the server logs for details."
        }
    )


# Include routers
app.include_router(jobs_router)
app.include_router(clips_router)
app.include_router(games_router)
app.include_router(settings_router)


@app.get("/")
async def root():
    return {"message": "StatJam Clip Worker API", "docs": "/docs"}


@app.get("/health")
async def health():
    """Health check endpoint"""
    settings = get_settings()
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "ffmpeg": shutil.which(settings.ffmpeg_binary) is not None,
        "storage": settings.storage_configured
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clipworker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
