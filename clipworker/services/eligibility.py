"""
Eligibility Selector
Decides which recorded stat events become highlight clips
"""

from dataclasses import dataclass
from typing import List, Optional

from ..models.job import TeamFilter
from ..models.stat_event import StatEvent
from ..models.video import GameVideo, VideoStatus
from ..utils.exceptions import NoEligibleEventsError, VideoNotFoundError, VideoNotReadyError
from ..utils.logger import get_logger
from .job_store import JobStore

logger = get_logger()

# Shots only count when made; the rest are always positive plays
MADE_SHOT_TYPES = frozenset({"field_goal", "three_pointer", "free_throw"})
ALWAYS_ELIGIBLE_TYPES = frozenset({"rebound", "assist", "steal", "block"})


@dataclass(frozen=True)
class TimingWindow:
    """Seconds of video kept before and after the stat event"""
    before: float
    after: float


DEFAULT_TIMING = TimingWindow(before=2, after=2)

_TIMING_BY_TYPE = {
    "assist": TimingWindow(before=2, after=4),     # the pass and the finish
    "rebound": TimingWindow(before=4, after=2),    # the missed shot first
    "steal": TimingWindow(before=2, after=4),      # fast break after
    "block": TimingWindow(before=2, after=3),
    "free_throw": TimingWindow(before=1, after=2),
}

_MADE_SHOT_TIMING = TimingWindow(before=3, after=3.5)


def is_clip_eligible(stat_type: str, modifier: Optional[str]) -> bool:
    """Check a stat type against the clip allow-list"""
    if stat_type in MADE_SHOT_TYPES:
        return modifier == "made"
    return stat_type in ALWAYS_ELIGIBLE_TYPES


def clip_timing_window(stat_type: str, modifier: Optional[str]) -> TimingWindow:
    """Stat-specific padding around the event timestamp"""
    if stat_type in ("field_goal", "three_pointer") and modifier == "made":
        return _MADE_SHOT_TIMING
    return _TIMING_BY_TYPE.get(stat_type, DEFAULT_TIMING)


def has_valid_timestamp(event: StatEvent) -> bool:
    return event.video_timestamp_ms is not None and event.video_timestamp_ms >= 0


def filter_by_team(events: List[StatEvent], team_filter: TeamFilter) -> List[StatEvent]:
    team_filter = TeamFilter(team_filter)
    if team_filter is TeamFilter.MY_TEAM:
        return [event for event in events if not event.is_opponent_stat]
    if team_filter is TeamFilter.OPPONENT:
        return [event for event in events if event.is_opponent_stat]
    return list(events)


@dataclass
class EligibleEvents:
    """Ready video plus the ordered events to clip from it"""
    video: GameVideo
    events: List[StatEvent]


class EligibilitySelector:
    """Pure read over the video and stat tables"""

    def __init__(self, store: JobStore):
        self.store = store

    async def resolve_video(self, game_id: str) -> GameVideo:
        """
        Find the game's video and make sure it finished transcoding.

        Raises:
            VideoNotFoundError: the game has no video
            VideoNotReadyError: the video is still uploading/transcoding
        """
        video = await self.store.get_video_for_game(game_id)
        if video is None:
            raise VideoNotFoundError(game_id)

        if not video.is_ready:
            reason = None
            if video.status == VideoStatus.READY and not video.source_id:
                reason = f"Video {video.id} has no stream source"
            elif video.status == VideoStatus.READY and video.duration_ms is None:
                reason = f"Video {video.id} has no known duration"
            raise VideoNotReadyError(video.id, video.status.value, reason)

        return video

    async def eligible_events(
        self,
        game_id: str,
        team_filter: TeamFilter = TeamFilter.ALL
    ) -> List[StatEvent]:
        """Allow-listed events with a usable video timestamp, in video order"""
        events = await self.store.get_stat_events(game_id)
        filtered = filter_by_team(events, team_filter)
        logger.info(
            f"Team filter {TeamFilter(team_filter).value}: {len(filtered)}/{len(events)} stats for game {game_id}"
        )
        return [
            event for event in filtered
            if has_valid_timestamp(event) and is_clip_eligible(event.stat_type, event.modifier)
        ]

    async def select(
        self,
        game_id: str,
        team_filter: TeamFilter = TeamFilter.ALL
    ) -> EligibleEvents:
        """
        Select the stat events that should become clips for a game.

        Raises:
            VideoNotFoundError, VideoNotReadyError: planning cannot start
            NoEligibleEventsError: nothing to clip (details carry the video id)
        """
        video = await self.resolve_video(game_id)
        events = await self.eligible_events(game_id, team_filter)

        if not events:
            raise NoEligibleEventsError(game_id, video_id=video.id)

        logger.info(f"Found {len(events)} clip-eligible stats for game {game_id}")
        return EligibleEvents(video=video, events=events)

    async def count_eligible(
        self,
        game_id: str,
        team_filter: TeamFilter = TeamFilter.ALL
    ) -> int:
        """Preview how many clips a job would create"""
        return len(await self.eligible_events(game_id, team_filter))
