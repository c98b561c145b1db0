"""
Clip Processor
Extraction worker shared by job dispatch and the retry endpoint.

Each call to ``process`` owns exactly one clip: validate the window,
claim the clip, cut it with FFmpeg, upload it, store the terminal status,
then report it to the progress tracker. Concurrency across all jobs and
retries is bounded by one semaphore so only ``max_parallel`` FFmpeg
processes ever run at once.
"""

import asyncio
from datetime import datetime
from typing import Iterable, List, Optional

from ..models.clip import Clip, ClipStatus, can_claim
from ..models.video import GameVideo
from ..utils.exceptions import ClipNotFoundError, ClipWorkerError, InvalidClipWindowError, NotRetryableError
from ..utils.logger import get_logger
from .clip_extractor import ClipExtractor
from .job_store import JobStore
from .progress_tracker import ProgressTracker
from .upload_manager import UploadManager

logger = get_logger()

WINDOW_EXCEEDS_DURATION = "requested window exceeds video duration"


def validate_window(clip: Clip, video: Optional[GameVideo]):
    """
    Require 0 <= start_ms < end_ms <= video duration.

    Raises:
        InvalidClipWindowError: the clip cannot be cut from this video
    """
    duration_ms = video.duration_ms if video else None

    if video is None or not video.is_ready:
        raise InvalidClipWindowError(
            "source video is not available", clip.start_ms, clip.end_ms, duration_ms
        )
    if clip.start_ms < 0 or clip.start_ms >= clip.end_ms:
        raise InvalidClipWindowError(
            f"invalid clip window {clip.start_ms}-{clip.end_ms}ms",
            clip.start_ms, clip.end_ms, duration_ms
        )
    if clip.end_ms > duration_ms:
        raise InvalidClipWindowError(
            f"{WINDOW_EXCEEDS_DURATION} ({clip.end_ms}ms > {duration_ms}ms)",
            clip.start_ms, clip.end_ms, duration_ms
        )


class ClipProcessor:
    """Bounded pool of extraction workers"""

    def __init__(
        self,
        store: JobStore,
        extractor: ClipExtractor,
        uploads: UploadManager,
        tracker: ProgressTracker,
        stream_cdn_url: str,
        max_parallel: int = 4
    ):
        self.store = store
        self.extractor = extractor
        self.uploads = uploads
        self.tracker = tracker
        self.stream_cdn_url = stream_cdn_url
        self.max_parallel = max(1, max_parallel)
        self._slots = asyncio.Semaphore(self.max_parallel)
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    async def process_many(self, clip_ids: Iterable[str]) -> List[Optional[Clip]]:
        """Process first attempts for pending clips; order of completion is irrelevant"""
        clip_ids = list(clip_ids)
        results = await asyncio.gather(
            *(self.process(clip_id) for clip_id in clip_ids),
            return_exceptions=True
        )

        settled: List[Optional[Clip]] = []
        for clip_id, result in zip(clip_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Clip {clip_id} could not be processed: {result!r}")
                settled.append(None)
            else:
                settled.append(result)
        return settled

    async def process(self, clip_id: str, retry: bool = False) -> Optional[Clip]:
        """
        Run one attempt for a clip and return it in its terminal state.

        Args:
            clip_id: Clip to process
            retry: False for a first attempt on a pending clip, True for a
                manual retry of a failed clip

        Returns:
            The settled clip, or None when a first attempt found the clip
            already taken by another worker

        Raises:
            ClipNotFoundError: unknown clip
            NotRetryableError: a retry found the clip no longer failed
        """
        async with self._slots:
            self._active += 1
            try:
                return await self._process(clip_id, retry)
            finally:
                self._active -= 1

    async def _process(self, clip_id: str, retry: bool) -> Optional[Clip]:
        clip = await self.store.get_clip(clip_id)
        if clip is None:
            raise ClipNotFoundError(clip_id)
        if not can_claim(clip.status, retry):
            return self._not_claimed(clip.id, clip.status, retry)

        previous_status = clip.status
        video = await self._current_video(clip)
        window_error: Optional[InvalidClipWindowError] = None
        try:
            validate_window(clip, video)
        except InvalidClipWindowError as exc:
            window_error = exc

        # An out-of-range first attempt fails without ever entering processing
        if window_error is not None and not retry:
            logger.warning(f"Skipping clip {clip.id}: {window_error.message}")
            return await self._settle_failure(clip, previous_status, [previous_status], window_error.message)

        claimed = await self.store.transition_clip(
            clip.id,
            [previous_status],
            ClipStatus.PROCESSING,
            bump_retry_count=retry,
            error_message=None,
        )
        if claimed is None:
            current = await self.store.get_clip(clip.id)
            return self._not_claimed(clip.id, current.status if current else None, retry)
        clip = claimed

        if window_error is not None:
            logger.warning(f"Retry of clip {clip.id} still invalid: {window_error.message}")
            return await self._settle_failure(clip, previous_status, [ClipStatus.PROCESSING], window_error.message)

        if retry and await self.uploads.discard(clip):
            logger.info(f"Removed stale artifact for clip {clip.id}")

        logger.info(f"Processing clip {clip.id} (attempt {clip.retry_count + 1})")
        try:
            local_path = await self.extractor.extract(
                video.source_url(self.stream_cdn_url),
                clip.start_ms,
                clip.end_ms,
                f"clip_{clip.id}.mp4"
            )
            stored = await self.uploads.upload(local_path, clip)
        except ClipWorkerError as exc:
            logger.error(f"Clip {clip.id} failed: {exc.message}")
            return await self._settle_failure(clip, previous_status, [ClipStatus.PROCESSING], exc.message)
        except Exception as exc:
            logger.exception(f"Clip {clip.id} failed unexpectedly: {exc}")
            return await self._settle_failure(clip, previous_status, [ClipStatus.PROCESSING], str(exc) or repr(exc))

        ready = await self.tracker.settle(
            clip.id,
            previous_status,
            ClipStatus.READY,
            [ClipStatus.PROCESSING],
            video_id=video.id,
            storage_path=stored.storage_path,
            storage_url=stored.url,
            error_message=None,
            generated_at=datetime.utcnow(),
        )
        if ready is None:
            logger.error(f"Clip {clip.id} left processing while it was being uploaded")
            return await self.store.get_clip(clip.id)

        logger.info(f"Clip ready: {clip.id}")
        return ready

    def _not_claimed(self, clip_id: str, status: Optional[ClipStatus], retry: bool) -> None:
        status_value = status.value if status else "missing"
        if retry:
            logger.warning(f"Rejected retry of clip {clip_id} (status: {status_value})")
            raise NotRetryableError(clip_id, status_value)
        logger.info(f"Clip {clip_id} already taken (status: {status_value}), skipping")
        return None

    async def _settle_failure(
        self,
        clip: Clip,
        previous_status: ClipStatus,
        from_statuses: List[ClipStatus],
        message: str
    ) -> Optional[Clip]:
        failed = await self.tracker.settle(
            clip.id,
            previous_status,
            ClipStatus.FAILED,
            from_statuses,
            error_message=message,
        )
        if failed is None:
            logger.info(f"Clip {clip.id} changed state before it could be failed, skipping")
            return await self.store.get_clip(clip.id)
        return failed

    async def _current_video(self, clip: Clip) -> Optional[GameVideo]:
        """The game's current video, so a re-uploaded source is picked up on retry"""
        video = await self.store.get_video_for_game(clip.game_id)
        if video is None or not video.is_ready:
            video = await self.store.get_video(clip.video_id)
        return video
