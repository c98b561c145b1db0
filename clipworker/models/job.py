"""
Job Data Models
Represents one clip-generation run for a game
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime
import uuid


class JobStatus(str, Enum):
    """Job processing status"""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class TeamFilter(str, Enum):
    """Which side's stat events become clips"""
    ALL = "all"
    MY_TEAM = "my_team"
    OPPONENT = "opponent"


class JobCreate(BaseModel):
    """Request model for starting a clip job"""
    game_id: str = Field(..., min_length=1, description="Game to generate clips for")
    team_filter: TeamFilter = Field(default=TeamFilter.ALL, description="Restrict clips to one team")
    rerun: bool = Field(default=False, description="Plan a new job even if one already exists")


class Job(BaseModel):
    """Complete job model with all fields"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    game_id: str
    video_id: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    team_filter: TeamFilter = TeamFilter.ALL
    total_clips: int = Field(default=0, ge=0)
    completed_clips: int = Field(default=0, ge=0)
    failed_clips: int = Field(default=0, ge=0)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)
