"""
Custom Exceptions for the Clip Worker
Structured error handling with recovery hints
"""

from typing import Optional, Dict, Any


class ClipWorkerError(Exception):
    """Base exception for all clip worker errors"""

    http_status: Optional[int] = None

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        recoverable: bool = False,
        recovery_hint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to JSON-serializable dict"""
        return {
            "error": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
            "details": self.details
        }


# ============================================================================
# Planning Errors
# ============================================================================

class VideoNotFoundError(ClipWorkerError):
    """No video recorded for the game"""

    http_status = 404

    def __init__(self, game_id: str):
        super().__init__(
            message=f"No video found for game: {game_id}",
            code="VIDEO_NOT_FOUND",
            recoverable=False,
            recovery_hint="Upload the game video before requesting clips.",
            details={"game_id": game_id}
        )


class VideoNotReadyError(ClipWorkerError):
    """Game video has not finished transcoding"""

    http_status = 409

    def __init__(self, video_id: str, status: str, reason: Optional[str] = None):
        super().__init__(
            message=reason or f"Video {video_id} is not ready (status: {status})",
            code="VIDEO_NOT_READY",
            recoverable=True,
            recovery_hint="Wait for the video to finish transcoding, then start the job again.",
            details={"video_id": video_id, "status": status}
        )


class NoEligibleEventsError(ClipWorkerError):
    """No stat events qualify for clip extraction"""

    def __init__(self, game_id: str, video_id: Optional[str] = None):
        super().__init__(
            message=f"No clip-eligible stat events for game: {game_id}",
            code="NO_ELIGIBLE_EVENTS",
            recoverable=False,
            details={"game_id": game_id, "video_id": video_id}
        )


# ============================================================================
# Extraction Errors
# ============================================================================

class InvalidClipWindowError(ClipWorkerError):
    """Clip window does not fit inside the source video"""

    def __init__(self, message: str, start_ms: int, end_ms: int, duration_ms: Optional[int]):
        super().__init__(
            message=message,
            code="INVALID_CLIP_WINDOW",
            recoverable=True,
            recovery_hint="Re-upload a complete source video and retry the clip.",
            details={"start_ms": start_ms, "end_ms": end_ms, "duration_ms": duration_ms}
        )


class FFmpegError(ClipWorkerError):
    """FFmpeg execution error"""

    def __init__(self, message: str, command: Optional[str] = None, stderr: Optional[str] = None):
        super().__init__(
            message=message,
            code="FFMPEG_ERROR",
            recoverable=True,
            recovery_hint="Ensure FFmpeg is installed and in PATH. Check the source video is reachable.",
            details={"command": command, "stderr": stderr[-500:] if stderr else None}
        )


class ExtractionTimeoutError(ClipWorkerError):
    """FFmpeg did not finish within the allowed time"""

    def __init__(self, timeout_seconds: float, command: Optional[str] = None):
        super().__init__(
            message=f"Clip extraction timed out after {timeout_seconds:g}s",
            code="EXTRACTION_TIMEOUT",
            recoverable=True,
            recovery_hint="Retry the clip. Check the stream CDN if timeouts persist.",
            details={"timeout_seconds": timeout_seconds, "command": command}
        )


# ============================================================================
# Upload Errors
# ============================================================================

class UploadError(ClipWorkerError):
    """Error uploading to durable storage"""

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        code: str = "UPLOAD_ERROR"
    ):
        super().__init__(
            message=message,
            code=code,
            recoverable=True,
            recovery_hint="Check AWS credentials and bucket permissions. Retry the clip.",
            details={"bucket": bucket, "key": key}
        )


class StorageNotConfiguredError(UploadError):
    """Durable storage credentials are missing"""

    def __init__(self):
        super().__init__(
            message="Clip storage is not configured",
            code="STORAGE_NOT_CONFIGURED"
        )


# ============================================================================
# Job Processing Errors
# ============================================================================

class JobNotFoundError(ClipWorkerError):
    """Job not found"""

    http_status = 404

    def __init__(self, job_id: str):
        super().__init__(
            message=f"Job not found: {job_id}",
            code="JOB_NOT_FOUND",
            recoverable=False,
            details={"job_id": job_id}
        )


class ClipNotFoundError(ClipWorkerError):
    """Clip not found"""

    http_status = 404

    def __init__(self, clip_id: str):
        super().__init__(
            message=f"Clip not found: {clip_id}",
            code="CLIP_NOT_FOUND",
            recoverable=False,
            details={"clip_id": clip_id}
        )


class NotRetryableError(ClipWorkerError):
    """Clip is not in a state that allows a retry"""

    http_status = 409

    def __init__(self, clip_id: str, status: str):
        super().__init__(
            message=f"Clip {clip_id} cannot be retried (status: {status})",
            code="NOT_RETRYABLE",
            recoverable=False,
            recovery_hint="Only failed clips can be retried.",
            details={"clip_id": clip_id, "status": status}
        )


class QueueFullError(ClipWorkerError):
    """Job dispatch queue is at capacity"""

    http_status = 429

    def __init__(self, max_pending: int):
        super().__init__(
            message="Job queue is full. Try again in a few minutes.",
            code="QUEUE_FULL",
            recoverable=True,
            recovery_hint="Wait for running jobs to finish.",
            details={"max_pending": max_pending}
        )
