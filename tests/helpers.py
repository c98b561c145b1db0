"""Builders for seeded games and a file-writing stand-in for FFmpeg."""

from pathlib import Path
from typing import List, Optional

from clipworker.models import GameVideo, StatEvent, VideoStatus
from clipworker.services.clip_extractor import ClipExtractor
from clipworker.services.job_store import JobStore

GAME_ID = "game-1"
VIDEO_ID = "video-1"


class FakeExtractor(ClipExtractor):
    """Real ClipExtractor with the FFmpeg process replaced by a file write."""

    def __init__(self, temp_dir: str):
        super().__init__(temp_dir=temp_dir, timeout_seconds=5)
        self.commands: List[List[str]] = []
        self.fail_with: Optional[BaseException] = None

    def _run_ffmpeg(self, cmd: List[str]):
        self.commands.append(cmd)
        if self.fail_with is not None:
            raise self.fail_with
        Path(cmd[-1]).write_bytes(b"\x00\x00\x00\x18ftypmp42")

    def ffmpeg_available(self) -> bool:
        return True


def make_video(
    duration_ms: Optional[int] = 600_000,
    status: VideoStatus = VideoStatus.READY,
    video_id: str = VIDEO_ID,
    game_id: str = GAME_ID,
    source_id: Optional[str] = "stream-abc",
) -> GameVideo:
    return GameVideo(
        id=video_id,
        game_id=game_id,
        source_id=source_id,
        status=status,
        duration_ms=duration_ms,
    )


def make_event(
    event_id: str,
    timestamp_ms: Optional[int],
    stat_type: str = "steal",
    modifier: Optional[str] = None,
    game_id: str = GAME_ID,
    is_opponent_stat: bool = False,
    player_id: Optional[str] = "player-7",
) -> StatEvent:
    return StatEvent(
        id=event_id,
        game_id=game_id,
        player_id=player_id,
        team_id="team-b" if is_opponent_stat else "team-a",
        stat_type=stat_type,
        modifier=modifier,
        quarter=2,
        game_time_minutes=5,
        game_time_seconds=30,
        video_timestamp_ms=timestamp_ms,
        is_opponent_stat=is_opponent_stat,
    )


async def seed_game(store: JobStore, timestamps_ms, duration_ms: Optional[int] = 600_000):
    """A ready video plus one steal per timestamp."""
    await store.upsert_video(make_video(duration_ms=duration_ms))
    await store.insert_stat_events([
        make_event(f"stat-{index}", timestamp)
        for index, timestamp in enumerate(timestamps_ms, start=1)
    ])
