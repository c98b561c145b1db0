"""
Progress Tracker
Reconciles settled clips into their job's counters
"""

from typing import List, Optional, Tuple

from ..models.clip import Clip, ClipStatus
from ..utils.logger import get_logger
from .job_store import JobStore

logger = get_logger()


def progress_delta(previous_status: ClipStatus, outcome: ClipStatus) -> Tuple[int, int]:
    """
    (completed_delta, failed_delta) for a clip that settled.

    ``previous_status`` is where the clip was before this attempt: pending for
    a first attempt, failed for a retry (already counted as failed once).
    """
    previous_status = ClipStatus(previous_status)
    outcome = ClipStatus(outcome)

    if previous_status is ClipStatus.PENDING:
        if outcome is ClipStatus.READY:
            return 1, 0
        if outcome is ClipStatus.FAILED:
            return 0, 1
    elif previous_status is ClipStatus.FAILED:
        if outcome is ClipStatus.READY:
            return 1, -1
        if outcome is ClipStatus.FAILED:
            return 0, 0

    raise ValueError(f"No progress transition from {previous_status.value} to {outcome.value}")


class ProgressTracker:
    """Atomic counter updates and the single completed transition"""

    def __init__(self, store: JobStore):
        self.store = store

    async def settle(
        self,
        clip_id: str,
        previous_status: ClipStatus,
        outcome: ClipStatus,
        from_statuses: List[ClipStatus],
        **fields
    ) -> Optional[Clip]:
        """
        Store a clip's terminal status and count it against its job.

        ``previous_status`` is the status the clip was claimed from. Returns
        None when the clip had already left ``from_statuses``.
        """
        completed_delta, failed_delta = progress_delta(previous_status, outcome)
        clip, job, completed_now = await self.store.settle_clip(
            clip_id, from_statuses, outcome, completed_delta, failed_delta, **fields
        )
        if clip is None:
            return None
        if job is None:
            logger.error(f"Job {clip.job_id} vanished while recording clip {clip.id}")
            return clip

        logger.info(
            f"Job {job.id} progress: {job.completed_clips} ready, "
            f"{job.failed_clips} failed of {job.total_clips}"
        )
        if completed_now:
            logger.info(
                f"Job {job.id} completed: {job.completed_clips} success, {job.failed_clips} failed"
            )
        return clip
