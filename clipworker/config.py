"""
Clip Worker Configuration
Centralized settings management using Pydantic Settings
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List, Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "StatJam Clip Worker"
    debug: bool = False
    app_version: str = "1.0.0"

    # ==========================================================================
    # AWS S3 (durable clip storage)
    # ==========================================================================
    aws_access_key_id: str = Field(default="", description="AWS Access Key ID")
    aws_secret_access_key: str = Field(default="", description="AWS Secret Key")
    aws_region: str = Field(default="us-east-1", description="AWS Region")
    s3_bucket_name: str = Field(default="", description="S3 Bucket Name")
    s3_key_prefix: str = Field(default="clips", description="Key prefix for uploaded clips")
    public_base_url: Optional[str] = Field(default=None, description="CDN base URL for uploaded clips")

    # ==========================================================================
    # Video Source
    # ==========================================================================
    stream_cdn_url: str = Field(
        default="https://statjam.b-cdn.net",
        description="Stream CDN serving transcoded game videos"
    )

    # ==========================================================================
    # Extraction Settings
    # ==========================================================================
    ffmpeg_binary: str = Field(default="ffmpeg", description="FFmpeg executable")
    extraction_timeout_seconds: float = Field(default=300, gt=0, le=3600, description="Per-clip FFmpeg timeout")
    output_resolution: str = Field(default="1280x720", description="Clip output resolution")
    video_bitrate: str = Field(default="2500k")
    audio_bitrate: str = Field(default="128k")
    ffmpeg_preset: str = Field(default="fast")

    # ==========================================================================
    # Concurrency
    # ==========================================================================
    max_parallel_clips: int = Field(default=4, ge=1, le=32, description="Concurrent extraction workers")
    job_worker_concurrency: int = Field(default=1, ge=1, le=4, description="Concurrent job dispatchers")
    max_pending_jobs: int = Field(default=50, ge=1, le=500, description="Max queued pending jobs")

    # ==========================================================================
    # Planning
    # ==========================================================================
    record_planning_failures: bool = Field(
        default=True,
        description="Persist a failed job when a game's video is not ready"
    )

    # ==========================================================================
    # Security
    # ==========================================================================
    api_key: str = Field(default="", description="Optional API key for /api routes")
    cors_allowed_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000"
        ],
        description="Allowed CORS origins"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================
    temp_dir: str = Field(default="temp", description="Scratch directory for extracted clips")
    data_dir: str = Field(default="data", description="Persistent application data directory")

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def storage_configured(self) -> bool:
        return bool(
            self.aws_access_key_id
            and self.aws_secret_access_key
            and self.s3_bucket_name
        )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
