"""Services package initialization"""
from .job_store import JobStore, get_job_store
from .eligibility import EligibilitySelector, is_clip_eligible, clip_timing_window
from .clip_planner import ClipPlanner, compute_window
from .clip_extractor import ClipExtractor, ExtractionConfig
from .s3_uploader import S3Uploader
from .upload_manager import UploadManager, StoredClip, clip_storage_key
from .progress_tracker import ProgressTracker, progress_delta
from .clip_processor import ClipProcessor, validate_window
from .retry_service import RetryService
from .job_queue import JobQueue
from .pipeline import ClipPipeline, get_pipeline

__all__ = [
    "JobStore",
    "get_job_store",
    "EligibilitySelector",
    "is_clip_eligible",
    "clip_timing_window",
    "ClipPlanner",
    "compute_window",
    "ClipExtractor",
    "ExtractionConfig",
    "S3Uploader",
    "UploadManager",
    "StoredClip",
    "clip_storage_key",
    "ProgressTracker",
    "progress_delta",
    "ClipProcessor",
    "validate_window",
    "RetryService",
    "JobQueue",
    "ClipPipeline",
    "get_pipeline"
]
