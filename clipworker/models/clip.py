"""
Clip Data Models
Represents one highlight-extraction work item
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime
import uuid


class ClipStatus(str, Enum):
    """Per-clip processing status"""
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


def can_claim(status: ClipStatus, retry: bool = False) -> bool:
    """
    Single claim rule for first attempts and manual retries.

    A first attempt may only take a pending clip, a retry only a failed one.
    Processing and ready clips are never claimed.
    """
    status = ClipStatus(status)
    if status is ClipStatus.PENDING:
        return not retry
    if status is ClipStatus.FAILED:
        return retry
    if status in (ClipStatus.PROCESSING, ClipStatus.READY):
        return False
    raise ValueError(f"Unhandled clip status: {status}")


class Clip(BaseModel):
    """Complete clip model"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_id: str
    game_id: str
    video_id: str
    stat_event_id: str
    player_id: Optional[str] = None
    custom_player_id: Optional[str] = None
    team_id: Optional[str] = None
    stat_type: str
    modifier: Optional[str] = None
    points_value: Optional[int] = None
    quarter: Optional[int] = None
    game_clock_minutes: Optional[int] = None
    game_clock_seconds: Optional[int] = None
    start_ms: int = Field(ge=0)
    end_ms: int
    status: ClipStatus = ClipStatus.PENDING
    storage_path: Optional[str] = None
    storage_url: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    generated_at: Optional[datetime] = None
