"""Tests for progress deltas and job completion through the tracker."""

import pytest

from clipworker.models import Clip, ClipStatus, Job, JobStatus
from clipworker.services.progress_tracker import ProgressTracker, progress_delta

from helpers import GAME_ID, VIDEO_ID


@pytest.mark.parametrize(
    "previous,outcome,expected",
    [
        (ClipStatus.PENDING, ClipStatus.READY, (1, 0)),
        (ClipStatus.PENDING, ClipStatus.FAILED, (0, 1)),
        (ClipStatus.FAILED, ClipStatus.READY, (1, -1)),
        (ClipStatus.FAILED, ClipStatus.FAILED, (0, 0)),
    ],
)
def test_progress_delta(previous, outcome, expected) -> None:
    assert progress_delta(previous, outcome) == expected


@pytest.mark.parametrize(
    "previous,outcome",
    [
        (ClipStatus.PENDING, ClipStatus.PROCESSING),
        (ClipStatus.READY, ClipStatus.READY),
        (ClipStatus.PROCESSING, ClipStatus.FAILED),
    ],
)
def test_progress_delta_rejects_non_settling_transitions(previous, outcome) -> None:
    with pytest.raises(ValueError):
        progress_delta(previous, outcome)


async def _job_with_clips(store, count):
    job = Job(game_id=GAME_ID, video_id=VIDEO_ID, status=JobStatus.PROCESSING)
    clips = [
        Clip(
            job_id=job.id,
            game_id=GAME_ID,
            video_id=VIDEO_ID,
            stat_event_id=f"stat-{index}",
            stat_type="block",
            start_ms=0,
            end_ms=5_000,
        )
        for index in range(count)
    ]
    job, _ = await store.create_job_with_clips(job, clips)
    return job, await store.list_clips(job.id)


@pytest.mark.anyio
async def test_settle_completes_job_when_last_clip_settles(store) -> None:
    job, clips = await _job_with_clips(store, 2)
    tracker = ProgressTracker(store)

    ready = await tracker.settle(clips[0].id, ClipStatus.PENDING, ClipStatus.READY, [ClipStatus.PENDING])
    assert ready.status is ClipStatus.READY
    assert (await store.get_job(job.id)).status is JobStatus.PROCESSING

    failed = await tracker.settle(
        clips[1].id, ClipStatus.PENDING, ClipStatus.FAILED, [ClipStatus.PENDING], error_message="boom"
    )

    assert failed.error_message == "boom"
    job = await store.get_job(job.id)
    assert job.status is JobStatus.COMPLETED
    assert (job.completed_clips, job.failed_clips) == (1, 1)


@pytest.mark.anyio
async def test_settle_repeat_failure_leaves_counters_unchanged(store) -> None:
    job, clips = await _job_with_clips(store, 1)
    tracker = ProgressTracker(store)
    await tracker.settle(clips[0].id, ClipStatus.PENDING, ClipStatus.FAILED, [ClipStatus.PENDING])
    await store.transition_clip(clips[0].id, [ClipStatus.FAILED], ClipStatus.PROCESSING, bump_retry_count=True)

    again = await tracker.settle(
        clips[0].id, ClipStatus.FAILED, ClipStatus.FAILED, [ClipStatus.PROCESSING], error_message="again"
    )

    assert again.error_message == "again"
    job = await store.get_job(job.id)
    assert (job.completed_clips, job.failed_clips) == (0, 1)
    assert job.status is JobStatus.COMPLETED


@pytest.mark.anyio
async def test_settle_skips_clip_that_left_the_expected_state(store) -> None:
    job, clips = await _job_with_clips(store, 1)
    tracker = ProgressTracker(store)

    assert await tracker.settle(clips[0].id, ClipStatus.PENDING, ClipStatus.READY, [ClipStatus.PROCESSING]) is None
    assert (await store.get_job(job.id)).completed_clips == 0
