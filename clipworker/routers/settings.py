"""
Settings Router
Exposes effective configuration and system status
"""

import os
from typing import List, Optional

import psutil
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..config import get_settings
from ..services.pipeline import ClipPipeline, get_pipeline

router = APIRouter(prefix="/api/settings", tags=["settings"])


class ServiceStatus(BaseModel):
    """Status of an external service"""
    name: str
    configured: bool
    status: str


class SettingsResponse(BaseModel):
    """Current settings response"""
    app_version: str
    stream_cdn_url: str
    s3_bucket_name: Optional[str]
    s3_key_prefix: str
    max_parallel_clips: int
    extraction_timeout_seconds: float
    output_resolution: str
    record_planning_failures: bool
    services: List[ServiceStatus]


@router.get("/", response_model=SettingsResponse)
async def get_current_settings():
    """Get current application settings and service status"""
    settings = get_settings()

    services = [
        ServiceStatus(
            name="AWS S3",
            configured=settings.storage_configured,
            status="Ready" if settings.storage_configured else "Credentials required"
        ),
        ServiceStatus(
            name="Stream CDN",
            configured=bool(settings.stream_cdn_url),
            status="Ready" if settings.stream_cdn_url else "Not configured"
        ),
        ServiceStatus(
            name="API Security",
            configured=bool(settings.api_key),
            status="API key protected" if settings.api_key else "API key disabled"
        )
    ]

    return SettingsResponse(
        app_version=settings.app_version,
        stream_cdn_url=settings.stream_cdn_url,
        s3_bucket_name=settings.s3_bucket_name or None,
        s3_key_prefix=settings.s3_key_prefix,
        max_parallel_clips=settings.max_parallel_clips,
        extraction_timeout_seconds=settings.extraction_timeout_seconds,
        output_resolution=settings.output_resolution,
        record_planning_failures=settings.record_planning_failures,
        services=services
    )


def get_git_revision():
    """Get the current git commit hash (short)"""
    commit_sha = os.getenv('RAILWAY_GIT_COMMIT_SHA') or os.getenv('GIT_COMMIT_SHA')
    if commit_sha:
        return commit_sha[:7]
    return "dev"


@router.get("/system-status")
async def get_system_status(pipeline: ClipPipeline = Depends(get_pipeline)):
    """Get detailed system status"""
    ffmpeg_available = pipeline.processor.extractor.ffmpeg_available()

    disk = psutil.disk_usage('/')
    memory = psutil.virtual_memory()
    queue_stats = pipeline.queue.stats()

    return {
        "version": f"{get_settings().app_version}-{get_git_revision()}",
        "ffmpeg": {
            "available": ffmpeg_available,
            "status": "Ready" if ffmpeg_available else "Not installed"
        },
        "disk": {
            "total_gb": round(disk.total / (1024**3), 1),
            "free_gb": round(disk.free / (1024**3), 1),
            "used_percent": disk.percent
        },
        "memory": {
            "total_gb": round(memory.total / (1024**3), 1),
            "available_gb": round(memory.available / (1024**3), 1),
            "used_percent": memory.percent
        },
        "jobs_queue": queue_stats,
        "extraction": {
            "active": pipeline.processor.active,
            "max_parallel": pipeline.processor.max_parallel
        }
    }
