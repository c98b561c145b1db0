"""
Retry Service
Manual re-run of a single failed clip
"""

from ..models.clip import Clip, can_claim
from ..utils.exceptions import ClipNotFoundError, NotRetryableError
from ..utils.logger import get_logger
from .clip_processor import ClipProcessor
from .job_store import JobStore

logger = get_logger()


class RetryService:
    """Re-enters the extraction worker for exactly one clip, bypassing planning"""

    def __init__(self, store: JobStore, processor: ClipProcessor):
        self.store = store
        self.processor = processor

    async def retry(self, clip_id: str) -> Clip:
        """
        Retry a failed clip and wait for it to settle.

        The stale storage object is only removed once this retry has claimed
        the clip, so a rejected retry changes nothing.

        Raises:
            ClipNotFoundError: unknown clip
            NotRetryableError: the clip is pending, processing, or ready
        """
        clip = await self.store.get_clip(clip_id)
        if clip is None:
            raise ClipNotFoundError(clip_id)

        if not can_claim(clip.status, retry=True):
            logger.warning(f"Rejected retry of clip {clip_id} (status: {clip.status.value})")
            raise NotRetryableError(clip_id, clip.status.value)

        logger.info(f"Retrying clip {clip_id} (previous error: {clip.error_message})")
        settled = await self.processor.process(clip_id, retry=True)
        logger.info(f"Retry of clip {clip_id} finished: {settled.status.value}")
        return settled
