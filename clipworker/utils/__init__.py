"""Utils package initialization"""
from .logger import setup_logger, get_logger
from .exceptions import (
    ClipWorkerError,
    VideoNotFoundError,
    VideoNotReadyError,
    NoEligibleEventsError,
    InvalidClipWindowError,
    FFmpegError,
    ExtractionTimeoutError,
    UploadError,
    StorageNotConfiguredError,
    JobNotFoundError,
    ClipNotFoundError,
    NotRetryableError,
    QueueFullError
)
from .retry import retry_async

__all__ = [
    "setup_logger",
    "get_logger",
    "ClipWorkerError",
    "VideoNotFoundError",
    "VideoNotReadyError",
    "NoEligibleEventsError",
    "InvalidClipWindowError",
    "FFmpegError",
    "ExtractionTimeoutError",
    "UploadError",
    "StorageNotConfiguredError",
    "JobNotFoundError",
    "ClipNotFoundError",
    "NotRetryableError",
    "QueueFullError",
    "retry_async"
]
