"""
Games Router
Per-game and per-player views over jobs and finished clips.
"""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..models.clip import Clip
from ..models.job import Job, TeamFilter
from ..services.pipeline import ClipPipeline, get_pipeline

router = APIRouter(prefix="/api", tags=["games"])


class EligibleCountResponse(BaseModel):
    game_id: str
    team_filter: TeamFilter
    eligible_count: int


@router.get("/games/{game_id}/jobs", response_model=List[Job])
async def list_game_jobs(game_id: str, pipeline: ClipPipeline = Depends(get_pipeline)):
    """All jobs for a game, newest first"""
    return await pipeline.store.list_jobs(game_id=game_id)


@router.get("/games/{game_id}/eligible-count", response_model=EligibleCountResponse)
async def get_eligible_count(
    game_id: str,
    team_filter: TeamFilter = TeamFilter.ALL,
    pipeline: ClipPipeline = Depends(get_pipeline)
):
    """How many clips a job for this game would create"""
    count = await pipeline.selector.count_eligible(game_id, team_filter)
    return EligibleCountResponse(game_id=game_id, team_filter=team_filter, eligible_count=count)


@router.get("/games/{game_id}/clips", response_model=List[Clip])
async def list_game_clips(game_id: str, pipeline: ClipPipeline = Depends(get_pipeline)):
    """Ready clips for a game"""
    return await pipeline.store.list_ready_clips(game_id=game_id)


@router.get("/players/{player_id}/clips", response_model=List[Clip])
async def list_player_clips(player_id: str, pipeline: ClipPipeline = Depends(get_pipeline)):
    """Ready clips featuring a player"""
    return await pipeline.store.list_ready_clips(player_id=player_id)
