"""Tests for the extraction worker: window validation, per-clip failures, bounded parallelism."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from clipworker.models import Clip, ClipStatus, JobStatus
from clipworker.services.clip_processor import WINDOW_EXCEEDS_DURATION, validate_window
from clipworker.utils.exceptions import FFmpegError, InvalidClipWindowError

from helpers import GAME_ID, make_video, seed_game


def _clip(start_ms: int, end_ms: int) -> Clip:
    return Clip(
        job_id="job-1",
        game_id=GAME_ID,
        video_id="video-1",
        stat_event_id="stat-1",
        stat_type="steal",
        start_ms=start_ms,
        end_ms=end_ms,
    )


def test_validate_window_accepts_window_inside_video() -> None:
    validate_window(_clip(0, 600_000), make_video(duration_ms=600_000))


@pytest.mark.parametrize(
    "start_ms,end_ms,video,message",
    [
        (596_700, 602_700, make_video(duration_ms=600_000), WINDOW_EXCEEDS_DURATION),
        (5_000, 5_000, make_video(), "invalid clip window"),
        (0, 4_000, None, "not available"),
        (0, 4_000, make_video(duration_ms=None), "not available"),
    ],
)
def test_validate_window_rejects(start_ms, end_ms, video, message) -> None:
    with pytest.raises(InvalidClipWindowError, match=message):
        validate_window(_clip(start_ms, end_ms), video)


@pytest.mark.anyio
async def test_end_to_end_partial_failure(pipeline, store, extractor, s3_client) -> None:
    await seed_game(store, [12_300, 340_100, 998_700], duration_ms=600_000)

    with patch.object(store, "transition_clip", wraps=store.transition_clip) as transitions:
        job = await pipeline.start_job(GAME_ID)
        assert job.total_clips == 3
        await pipeline.queue.join()

    job = await store.get_job(job.id)
    assert job.status is JobStatus.COMPLETED
    assert (job.total_clips, job.completed_clips, job.failed_clips) == (3, 2, 1)
    assert job.started_at is not None and job.completed_at is not None

    clips = {clip.stat_event_id: clip for clip in await store.list_clips(job.id)}
    out_of_range = clips["stat-3"]
    assert out_of_range.status is ClipStatus.FAILED
    assert WINDOW_EXCEEDS_DURATION in out_of_range.error_message
    assert out_of_range.storage_path is None

    # The out-of-range clip never entered processing and was never cut
    claimed = [
        call.args[0] for call in transitions.call_args_list
        if call.args[2] is ClipStatus.PROCESSING
    ]
    assert out_of_range.id not in claimed
    assert len(extractor.commands) == 2

    for key in ("stat-1", "stat-2"):
        ready = clips[key]
        assert ready.status is ClipStatus.READY
        assert ready.storage_path == f"clips/{GAME_ID}/{job.id}/{ready.id}.mp4"
        assert ready.storage_url == f"https://clips.test/{ready.storage_path}"
        assert ready.generated_at is not None
        assert ready.error_message is None
    assert s3_client.upload_file.call_count == 2
    assert extractor.commands[0][extractor.commands[0].index("-i") + 1] == (
        "https://cdn.test/stream-abc/play_720p.mp4"
    )
    assert list(Path(extractor.temp_dir).iterdir()) == []


@pytest.mark.anyio
async def test_extraction_failure_is_contained_to_the_clip(pipeline, store, extractor) -> None:
    await seed_game(store, [10_000, 20_000])
    extractor.fail_with = FFmpegError("FFmpeg exited with code 1")

    job = await pipeline.start_job(GAME_ID)
    await pipeline.queue.join()

    job = await store.get_job(job.id)
    assert job.status is JobStatus.COMPLETED
    assert (job.completed_clips, job.failed_clips) == (0, 2)
    for clip in await store.list_clips(job.id):
        assert clip.status is ClipStatus.FAILED
        assert clip.error_message == "FFmpeg exited with code 1"


@pytest.mark.anyio
async def test_upload_failure_is_contained_to_the_clip(pipeline, store, s3_client, extractor) -> None:
    await seed_game(store, [10_000, 20_000])
    s3_client.upload_file.side_effect = [RuntimeError("access denied"), None]

    job = await pipeline.start_job(GAME_ID)
    await pipeline.queue.join()

    job = await store.get_job(job.id)
    assert (job.completed_clips, job.failed_clips) == (1, 1)
    failed = await store.list_clips(job.id, status=ClipStatus.FAILED)
    assert "access denied" in failed[0].error_message
    assert list(Path(extractor.temp_dir).iterdir()) == []


@pytest.mark.anyio
async def test_parallel_extractions_are_bounded(pipeline, store, extractor) -> None:
    await seed_game(store, [index * 10_000 for index in range(1, 7)])
    running = 0
    peak = 0
    original = extractor.extract

    async def slow_extract(*args, **kwargs):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.1)
        try:
            return await original(*args, **kwargs)
        finally:
            running -= 1

    extractor.extract = slow_extract
    job = await pipeline.start_job(GAME_ID)
    await pipeline.queue.join()

    assert peak == pipeline.processor.max_parallel == 2
    assert (await store.get_job(job.id)).completed_clips == 6


@pytest.mark.anyio
async def test_processing_a_taken_clip_is_skipped(pipeline, store) -> None:
    await seed_game(store, [10_000])
    job = await pipeline.planner.plan(GAME_ID, make_video(), await store.get_stat_events(GAME_ID))
    clip = (await store.list_clips(job.id))[0]
    await store.transition_clip(clip.id, [ClipStatus.PENDING], ClipStatus.PROCESSING)

    assert await pipeline.processor.process(clip.id) is None
    assert (await store.get_job(job.id)).completed_clips == 0


@pytest.mark.anyio
async def test_first_attempt_does_not_take_a_failed_clip(pipeline, store, extractor) -> None:
    await seed_game(store, [10_000])
    job = await pipeline.planner.plan(GAME_ID, make_video(), await store.get_stat_events(GAME_ID))
    clip = (await store.list_clips(job.id))[0]
    failed = await pipeline.processor.tracker.settle(
        clip.id, ClipStatus.PENDING, ClipStatus.FAILED, [ClipStatus.PENDING], error_message="boom"
    )

    assert await pipeline.processor.process(clip.id) is None

    assert await store.get_clip(clip.id) == failed
    assert extractor.commands == []
    assert (await store.get_job(job.id)).failed_clips == 1
