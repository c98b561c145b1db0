"""
Clip Pipeline
Start-job entrypoint, job dispatch, and restart recovery.

Flow: eligibility -> planning -> job queue -> bounded clip workers. The
retry path enters the same ``ClipProcessor.process`` used for first
attempts, so both paths share one extraction/upload/status sequence.
"""

from datetime import datetime
from typing import List, Optional

from ..config import Settings, get_settings
from ..models.clip import Clip, ClipStatus
from ..models.job import Job, JobStatus, TeamFilter
from ..models.stat_event import StatEvent
from ..models.video import GameVideo
from ..utils.exceptions import (
    JobNotFoundError,
    NoEligibleEventsError,
    QueueFullError,
    VideoNotReadyError,
)
from ..utils.logger import get_logger
from .clip_extractor import ClipExtractor
from .clip_planner import ClipPlanner
from .clip_processor import ClipProcessor
from .eligibility import EligibilitySelector
from .job_queue import JobQueue
from .job_store import JobStore, get_job_store
from .progress_tracker import ProgressTracker
from .retry_service import RetryService
from .s3_uploader import S3Uploader
from .upload_manager import UploadManager

logger = get_logger()

INTERRUPTED_MESSAGE = "Clip interrupted by worker restart"

_OPEN_JOB_STATUSES = (JobStatus.QUEUED, JobStatus.PROCESSING)


class ClipPipeline:
    """Wires the pipeline stages together behind the two external entrypoints"""

    def __init__(
        self,
        store: JobStore,
        selector: EligibilitySelector,
        planner: ClipPlanner,
        processor: ClipProcessor,
        retries: RetryService,
        queue: JobQueue,
        settings: Settings
    ):
        self.store = store
        self.selector = selector
        self.planner = planner
        self.processor = processor
        self.retries = retries
        self.queue = queue
        self.settings = settings
        self.queue.configure(
            runner=self.run_job,
            worker_count=settings.job_worker_concurrency,
            max_pending=settings.max_pending_jobs,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[JobStore] = None,
        extractor: Optional[ClipExtractor] = None,
        storage: Optional[S3Uploader] = None
    ) -> "ClipPipeline":
        settings = settings or get_settings()
        store = store or get_job_store()
        extractor = extractor or ClipExtractor.from_settings(settings)
        storage = storage or S3Uploader(settings)

        uploads = UploadManager(storage, key_prefix=settings.s3_key_prefix)
        tracker = ProgressTracker(store)
        processor = ClipProcessor(
            store,
            extractor,
            uploads,
            tracker,
            stream_cdn_url=settings.stream_cdn_url,
            max_parallel=settings.max_parallel_clips,
        )
        return cls(
            store=store,
            selector=EligibilitySelector(store),
            planner=ClipPlanner(store),
            processor=processor,
            retries=RetryService(store, processor),
            queue=JobQueue(),
            settings=settings,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self):
        """Open the store, start dispatch, and pick up work left by a crash."""
        await self.store.initialize()
        await self.queue.start()
        await self.recover_interrupted_jobs()

    async def shutdown(self):
        await self.queue.stop()

    # ------------------------------------------------------------------
    # Entrypoints
    # ------------------------------------------------------------------

    async def start_job(
        self,
        game_id: str,
        team_filter: TeamFilter = TeamFilter.ALL,
        rerun: bool = False
    ) -> Job:
        """
        Plan a job for a game and queue its clips for extraction.

        Raises:
            VideoNotFoundError: the game has no video
            VideoNotReadyError: the video has not finished transcoding
            QueueFullError: the dispatch queue is at capacity
        """
        team_filter = TeamFilter(team_filter)
        logger.info(f"Starting clip job for game {game_id} (team filter: {team_filter.value})")

        try:
            selection = await self.selector.select(game_id, team_filter)
        except NoEligibleEventsError as exc:
            video = await self.store.get_video(exc.details["video_id"])
            logger.info(f"No clip-eligible stats for game {game_id}, completing with zero clips")
            return await self._plan_and_dispatch(game_id, video, [], team_filter, rerun)
        except VideoNotReadyError as exc:
            if self.settings.record_planning_failures:
                await self.planner.record_failure(
                    game_id, exc.message, exc.details.get("video_id"), team_filter
                )
            raise

        return await self._plan_and_dispatch(
            game_id, selection.video, selection.events, team_filter, rerun
        )

    async def _plan_and_dispatch(
        self,
        game_id: str,
        video: GameVideo,
        events: List[StatEvent],
        team_filter: TeamFilter,
        rerun: bool
    ) -> Job:
        # A rejected request must not leave a queued job behind
        if not self.queue.can_accept():
            raise QueueFullError(self.settings.max_pending_jobs)

        job = await self.planner.plan(game_id, video, events, team_filter, supersede=rerun)

        if job.status in _OPEN_JOB_STATUSES:
            await self.dispatch(job)
        return job

    async def dispatch(self, job: Job):
        """Hand a planned job to the dispatch queue."""
        if not await self.queue.enqueue(job.id):
            raise QueueFullError(self.settings.max_pending_jobs)

    async def retry_clip(self, clip_id: str) -> Clip:
        """Retry a single failed clip and return it settled."""
        return await self.retries.retry(clip_id)

    async def run_job(self, job_id: str):
        """Run every pending clip of a job through the worker pool."""
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        started = await self.store.update_job_status(
            job_id,
            JobStatus.PROCESSING,
            from_statuses=[JobStatus.QUEUED],
            started_at=datetime.utcnow(),
        )
        if started is not None:
            logger.info(f"Job {job_id} processing {started.total_clips} clips")

        pending = await self.store.list_clips(job_id, status=ClipStatus.PENDING)
        if not pending:
            logger.info(f"Job {job_id} has no pending clips")
            return

        await self.processor.process_many([clip.id for clip in pending])

        job = await self.store.get_job(job_id)
        if job is not None:
            logger.info(
                f"Job {job_id} dispatch finished ({job.status.value}): "
                f"{job.completed_clips} ready, {job.failed_clips} failed of {job.total_clips}"
            )

    async def recover_interrupted_jobs(self) -> int:
        """
        Settle clips a crashed worker left in processing and requeue open jobs.

        Open jobs whose counters disagree with their clip rows are rebuilt
        from the clip statuses, so a job is never left open once every clip
        has settled.

        Returns:
            Number of jobs queued again
        """
        interrupted = await self.store.list_clips(status=ClipStatus.PROCESSING)
        for clip in interrupted:
            previous = ClipStatus.FAILED if clip.retry_count > 0 else ClipStatus.PENDING
            failed = await self.processor.tracker.settle(
                clip.id,
                previous,
                ClipStatus.FAILED,
                [ClipStatus.PROCESSING],
                error_message=INTERRUPTED_MESSAGE,
            )
            if failed is not None:
                logger.warning(f"Clip {clip.id} was interrupted by a restart, marked failed")

        requeued = 0
        for job in await self.store.list_jobs(statuses=_OPEN_JOB_STATUSES):
            counts = await self.store.get_clip_status_counts(job.id)
            drifted = (
                counts[ClipStatus.READY.value] != job.completed_clips
                or counts[ClipStatus.FAILED.value] != job.failed_clips
            )
            if drifted or counts[ClipStatus.PENDING.value] == 0:
                reconciled, completed_now = await self.store.reconcile_job_counters(job.id)
                if drifted:
                    logger.warning(
                        f"Job {job.id} counters rebuilt from clips: "
                        f"{reconciled.completed_clips} ready, {reconciled.failed_clips} failed"
                    )
                if completed_now:
                    logger.info(f"Job {job.id} completed during recovery")

            if counts[ClipStatus.PENDING.value] == 0:
                continue
            if await self.queue.enqueue(job.id):
                requeued += 1
            else:
                logger.warning(f"Could not requeue job {job.id}: queue full")

        if interrupted or requeued:
            logger.info(
                f"Recovery: {len(interrupted)} interrupted clips failed, {requeued} jobs requeued"
            )
        return requeued


_pipeline: Optional[ClipPipeline] = None


def get_pipeline() -> ClipPipeline:
    """Return singleton pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ClipPipeline.from_settings()
    return _pipeline
