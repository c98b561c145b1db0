"""
Game Video Model
Read-only view of a recorded game video owned by the main app
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime


class VideoStatus(str, Enum):
    """Transcoding status reported by the video store"""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class GameVideo(BaseModel):
    """Recorded game video"""
    id: str
    game_id: str
    source_id: Optional[str] = Field(None, description="Stream library video id")
    status: VideoStatus = VideoStatus.UPLOADING
    duration_ms: Optional[int] = Field(None, ge=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_ready(self) -> bool:
        return (
            self.status == VideoStatus.READY
            and bool(self.source_id)
            and self.duration_ms is not None
        )

    def source_url(self, cdn_base: str) -> str:
        """Playable 720p rendition on the stream CDN"""
        base = cdn_base if cdn_base.startswith("http") else f"https://{cdn_base}"
        return f"{base.rstrip('/')}/{self.source_id}/play_720p.mp4"
