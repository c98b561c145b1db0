"""
Jobs Router
Starts clip jobs for a game and exposes job diagnostics.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from ..models.clip import Clip, ClipStatus
from ..models.job import Job, JobCreate
from ..services.pipeline import ClipPipeline, get_pipeline
from ..utils.exceptions import JobNotFoundError
from ..utils.logger import get_logger

router = APIRouter(prefix="/api/jobs", tags=["jobs"])
logger = get_logger()


async def _require_job(pipeline: ClipPipeline, job_id: str) -> Job:
    job = await pipeline.store.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


@router.post("/", response_model=Job, status_code=status.HTTP_202_ACCEPTED)
async def create_job(
    request: JobCreate,
    pipeline: ClipPipeline = Depends(get_pipeline)
):
    """Plan clips for a game and queue them for extraction"""
    job = await pipeline.start_job(request.game_id, request.team_filter, rerun=request.rerun)
    logger.info(f"Job {job.id} accepted for game {request.game_id} ({job.status.value})")
    return job


@router.get("/", response_model=List[Job])
async def list_jobs(
    game_id: Optional[str] = None,
    pipeline: ClipPipeline = Depends(get_pipeline)
):
    """List jobs, newest first"""
    return await pipeline.store.list_jobs(game_id=game_id)


@router.get("/{job_id}", response_model=Job)
async def get_job(job_id: str, pipeline: ClipPipeline = Depends(get_pipeline)):
    """Get job status and counters"""
    return await _require_job(pipeline, job_id)


@router.get("/{job_id}/clips", response_model=List[Clip])
async def get_job_clips(
    job_id: str,
    status: Optional[ClipStatus] = None,
    pipeline: ClipPipeline = Depends(get_pipeline)
):
    """Get a job's clips with their status and error messages"""
    await _require_job(pipeline, job_id)
    return await pipeline.store.list_clips(job_id, status=status)
