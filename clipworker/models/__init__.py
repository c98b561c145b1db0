"""Models package initialization"""
from .job import Job, JobStatus, JobCreate, TeamFilter
from .clip import Clip, ClipStatus, can_claim
from .video import GameVideo, VideoStatus
from .stat_event import StatEvent

__all__ = [
    "Job",
    "JobStatus",
    "JobCreate",
    "TeamFilter",
    "Clip",
    "ClipStatus",
    "can_claim",
    "GameVideo",
    "VideoStatus",
    "StatEvent"
]
