"""
Clips Router
Clip lookup and the manual retry entrypoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..models.clip import Clip
from ..models.job import Job
from ..services.pipeline import ClipPipeline, get_pipeline
from ..utils.exceptions import ClipNotFoundError
from ..utils.logger import get_logger

router = APIRouter(prefix="/api/clips", tags=["clips"])
logger = get_logger()


class RetryResponse(BaseModel):
    """Settled clip after a retry, with its job's counters"""
    clip: Clip
    job: Optional[Job] = None


@router.get("/{clip_id}", response_model=Clip)
async def get_clip(clip_id: str, pipeline: ClipPipeline = Depends(get_pipeline)):
    """Get a specific clip by ID."""
    clip = await pipeline.store.get_clip(clip_id)
    if clip is None:
        raise ClipNotFoundError(clip_id)
    return clip


@router.post("/{clip_id}/retry", response_model=RetryResponse)
async def retry_clip(clip_id: str, pipeline: ClipPipeline = Depends(get_pipeline)):
    """Re-run extraction and upload for one failed clip."""
    clip = await pipeline.retry_clip(clip_id)
    job = await pipeline.store.get_job(clip.job_id)
    return RetryResponse(clip=clip, job=job)
