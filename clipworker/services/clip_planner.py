"""
Clip Planner
Turns eligible stat events into a job and its pending clips
"""

from datetime import datetime
from typing import List, Optional, Tuple

from ..models.clip import Clip
from ..models.job import Job, JobStatus, TeamFilter
from ..models.stat_event import StatEvent
from ..models.video import GameVideo
from ..utils.logger import get_logger
from .eligibility import clip_timing_window
from .job_store import JobStore

logger = get_logger()


def compute_window(event: StatEvent) -> Tuple[int, int]:
    """
    Padded [start_ms, end_ms] around an event.

    The start is clamped at zero. The end is left as is: a window running
    past the end of the video is rejected at extraction time.
    """
    timing = clip_timing_window(event.stat_type, event.modifier)
    timestamp_ms = event.video_timestamp_ms or 0
    start_ms = max(0, timestamp_ms - round(timing.before * 1000))
    end_ms = timestamp_ms + round(timing.after * 1000)
    return start_ms, end_ms


class ClipPlanner:
    """Creates the job row and one pending clip per eligible event"""

    def __init__(self, store: JobStore):
        self.store = store

    def build_clips(self, job: Job, video: GameVideo, events: List[StatEvent]) -> List[Clip]:
        clips = []
        for event in events:
            start_ms, end_ms = compute_window(event)
            clips.append(Clip(
                job_id=job.id,
                game_id=job.game_id,
                video_id=video.id,
                stat_event_id=event.id,
                player_id=event.player_id,
                custom_player_id=event.custom_player_id,
                team_id=event.team_id,
                stat_type=event.stat_type,
                modifier=event.modifier,
                points_value=event.stat_value,
                quarter=event.quarter,
                game_clock_minutes=event.game_time_minutes,
                game_clock_seconds=event.game_time_seconds,
                start_ms=start_ms,
                end_ms=end_ms,
            ))
        return clips

    async def plan(
        self,
        game_id: str,
        video: GameVideo,
        events: List[StatEvent],
        team_filter: TeamFilter = TeamFilter.ALL,
        supersede: bool = False
    ) -> Job:
        """
        Create a job with ``total_clips == len(events)``.

        Idempotent per game: if the game already has a job that did not fail
        planning, that job is returned and nothing is written. A job with no
        events is created already completed.
        """
        job = Job(game_id=game_id, video_id=video.id, team_filter=team_filter)
        if not events:
            job.status = JobStatus.COMPLETED
            job.started_at = job.created_at
            job.completed_at = datetime.utcnow()

        clips = self.build_clips(job, video, events)
        job, created = await self.store.create_job_with_clips(job, clips, supersede=supersede)

        if created:
            logger.info(f"Planned job {job.id} for game {game_id} with {job.total_clips} clips")
        else:
            logger.info(f"Game {game_id} already has job {job.id} ({job.status.value}), reusing it")
        return job

    async def record_failure(
        self,
        game_id: str,
        error_message: str,
        video_id: Optional[str] = None,
        team_filter: TeamFilter = TeamFilter.ALL
    ) -> Job:
        """Persist a job that could not be planned"""
        job = Job(
            game_id=game_id,
            video_id=video_id,
            team_filter=team_filter,
            status=JobStatus.FAILED,
            error_message=error_message,
        )
        await self.store.create_job(job)
        logger.warning(f"Recorded failed planning for game {game_id}: {error_message}")
        return job
