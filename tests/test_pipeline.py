"""Tests for job start, dispatch queue behavior and restart recovery."""

import asyncio
import sqlite3

import pytest

from clipworker.models import ClipStatus, JobStatus, TeamFilter, VideoStatus
from clipworker.services.job_queue import JobQueue
from clipworker.services.pipeline import INTERRUPTED_MESSAGE, ClipPipeline
from clipworker.utils.exceptions import QueueFullError, VideoNotFoundError, VideoNotReadyError

from helpers import GAME_ID, make_event, make_video, seed_game


@pytest.mark.anyio
async def test_start_job_without_eligible_events_completes_with_zero_clips(pipeline, store) -> None:
    await store.upsert_video(make_video())
    await store.insert_stat_events([make_event("foul", 5_000, stat_type="foul")])

    job = await pipeline.start_job(GAME_ID)

    assert job.status is JobStatus.COMPLETED
    assert (job.total_clips, job.completed_clips, job.failed_clips) == (0, 0, 0)
    assert pipeline.queue.stats()["pending"] == 0


@pytest.mark.anyio
async def test_start_job_for_unready_video_records_failed_job(pipeline, store) -> None:
    await store.upsert_video(make_video(status=VideoStatus.PROCESSING))

    with pytest.raises(VideoNotReadyError):
        await pipeline.start_job(GAME_ID)

    jobs = await store.list_jobs(game_id=GAME_ID)
    assert len(jobs) == 1
    assert jobs[0].status is JobStatus.FAILED
    assert "not ready" in jobs[0].error_message
    assert jobs[0].total_clips == 0


@pytest.mark.anyio
async def test_start_job_for_unready_video_without_failure_record(pipeline, store) -> None:
    pipeline.settings.record_planning_failures = False
    await store.upsert_video(make_video(status=VideoStatus.UPLOADING))

    with pytest.raises(VideoNotReadyError):
        await pipeline.start_job(GAME_ID)
    assert await store.list_jobs(game_id=GAME_ID) == []


@pytest.mark.anyio
async def test_start_job_without_video(pipeline) -> None:
    with pytest.raises(VideoNotFoundError):
        await pipeline.start_job("unknown-game")


@pytest.mark.anyio
async def test_start_job_twice_reuses_job(pipeline, store) -> None:
    await seed_game(store, [10_000, 20_000])

    first = await pipeline.start_job(GAME_ID)
    await pipeline.queue.join()
    second = await pipeline.start_job(GAME_ID)

    assert second.id == first.id
    assert second.status is JobStatus.COMPLETED
    assert len(await store.list_clips(first.id)) == 2


@pytest.mark.anyio
async def test_rerun_plans_a_new_job(pipeline, store) -> None:
    await seed_game(store, [10_000, 20_000])
    first = await pipeline.start_job(GAME_ID)
    await pipeline.queue.join()

    second = await pipeline.start_job(GAME_ID, TeamFilter.MY_TEAM, rerun=True)
    await pipeline.queue.join()

    assert second.id != first.id
    rerun = await store.get_job(second.id)
    assert rerun.team_filter is TeamFilter.MY_TEAM
    assert (rerun.status, rerun.completed_clips) == (JobStatus.COMPLETED, 2)


@pytest.mark.anyio
async def test_start_job_when_queue_is_full(settings, store, extractor, storage) -> None:
    settings.max_pending_jobs = 1
    pipeline = ClipPipeline.from_settings(settings=settings, store=store, extractor=extractor, storage=storage)
    release = asyncio.Event()

    async def blocked_runner(job_id: str):
        await release.wait()

    pipeline.queue.configure(blocked_runner, worker_count=1, max_pending=1)
    await pipeline.startup()
    try:
        for game in ("game-a", "game-b"):
            await store.upsert_video(make_video(video_id=f"video-{game}", game_id=game))
            await store.insert_stat_events([make_event(f"{game}-stat", 10_000, game_id=game)])
        await store.upsert_video(make_video(video_id="video-game-c", game_id="game-c"))
        await store.insert_stat_events([make_event("game-c-stat", 10_000, game_id="game-c")])

        await pipeline.start_job("game-a")
        await asyncio.sleep(0.05)
        await pipeline.start_job("game-b")

        with pytest.raises(QueueFullError):
            await pipeline.start_job("game-c")

        await store.upsert_video(make_video(video_id="video-game-d", game_id="game-d"))
        await store.insert_stat_events([make_event("game-d-foul", 10_000, stat_type="foul", game_id="game-d")])
        with pytest.raises(QueueFullError):
            await pipeline.start_job("game-d")
        assert await store.list_jobs(game_id="game-d") == []
    finally:
        release.set()
        await pipeline.shutdown()


@pytest.mark.anyio
async def test_job_queue_skips_duplicate_job_ids() -> None:
    ran = []

    async def runner(job_id: str):
        ran.append(job_id)

    queue = JobQueue()
    queue.configure(runner, worker_count=1, max_pending=3)
    with pytest.raises(RuntimeError):
        await queue.enqueue("job-1")

    await queue.start()
    assert await queue.enqueue("job-1")
    assert await queue.enqueue("job-1")
    await queue.join()
    await queue.stop()

    assert ran == ["job-1"]
    assert queue.stats()["running"] is False


@pytest.mark.anyio
async def test_recovery_fails_interrupted_clips_and_requeues_jobs(settings, store, extractor, storage) -> None:
    await seed_game(store, [10_000, 20_000, 30_000])
    crashed = ClipPipeline.from_settings(settings=settings, store=store, extractor=extractor, storage=storage)
    job = await crashed.planner.plan(GAME_ID, make_video(), await store.get_stat_events(GAME_ID))
    await store.update_job_status(job.id, JobStatus.PROCESSING)
    clips = await store.list_clips(job.id)
    await store.transition_clip(clips[0].id, [ClipStatus.PENDING], ClipStatus.PROCESSING)

    restarted = ClipPipeline.from_settings(settings=settings, store=store, extractor=extractor, storage=storage)
    await restarted.startup()
    try:
        await restarted.queue.join()
    finally:
        await restarted.shutdown()

    interrupted = await store.get_clip(clips[0].id)
    assert interrupted.status is ClipStatus.FAILED
    assert interrupted.error_message == INTERRUPTED_MESSAGE

    job = await store.get_job(job.id)
    assert job.status is JobStatus.COMPLETED
    assert (job.completed_clips, job.failed_clips) == (2, 1)


@pytest.mark.anyio
async def test_recovery_of_interrupted_retry_does_not_double_count(settings, store, extractor, storage) -> None:
    await seed_game(store, [10_000])
    pipeline = ClipPipeline.from_settings(settings=settings, store=store, extractor=extractor, storage=storage)
    job = await pipeline.planner.plan(GAME_ID, make_video(), await store.get_stat_events(GAME_ID))
    clip = (await store.list_clips(job.id))[0]
    await pipeline.processor.tracker.settle(
        clip.id, ClipStatus.PENDING, ClipStatus.FAILED, [ClipStatus.PENDING], error_message="boom"
    )
    await store.transition_clip(clip.id, [ClipStatus.FAILED], ClipStatus.PROCESSING, bump_retry_count=True)

    await pipeline.recover_interrupted_jobs()

    job = await store.get_job(job.id)
    assert (job.status, job.completed_clips, job.failed_clips) == (JobStatus.COMPLETED, 0, 1)
    assert (await store.get_clip(clip.id)).status is ClipStatus.FAILED


@pytest.mark.anyio
async def test_failed_settle_leaves_clip_for_recovery(pipeline, store) -> None:
    await seed_game(store, [10_000, 20_000])
    original = store.settle_clip
    calls = 0

    async def locked_once(*args, **kwargs):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise sqlite3.OperationalError("database is locked")
        return await original(*args, **kwargs)

    store.settle_clip = locked_once
    job = await pipeline.start_job(GAME_ID)
    await pipeline.queue.join()

    # Neither the clip status nor the counter was written for the first clip
    counts = await store.get_clip_status_counts(job.id)
    assert (counts["processing"], counts["ready"]) == (1, 1)
    assert (await store.get_job(job.id)).completed_clips == 1

    await pipeline.recover_interrupted_jobs()

    job = await store.get_job(job.id)
    assert job.status is JobStatus.COMPLETED
    assert (job.completed_clips, job.failed_clips) == (1, 1)


@pytest.mark.anyio
async def test_recovery_rebuilds_counters_of_settled_job(pipeline, store) -> None:
    await seed_game(store, [10_000, 20_000])
    job = await pipeline.planner.plan(GAME_ID, make_video(), await store.get_stat_events(GAME_ID))
    await store.update_job_status(job.id, JobStatus.PROCESSING)
    clips = await store.list_clips(job.id)
    await pipeline.processor.tracker.settle(clips[0].id, ClipStatus.PENDING, ClipStatus.READY, [ClipStatus.PENDING])
    # Settled without a counter update
    await store.transition_clip(clips[1].id, [ClipStatus.PENDING], ClipStatus.READY)

    assert await pipeline.recover_interrupted_jobs() == 0

    job = await store.get_job(job.id)
    assert job.status is JobStatus.COMPLETED
    assert (job.total_clips, job.completed_clips, job.failed_clips) == (2, 2, 0)
    assert job.completed_at is not None


@pytest.mark.anyio
async def test_start_job_dispatches_open_job_when_no_events_remain(pipeline, store) -> None:
    await seed_game(store, [10_000])
    planned = await pipeline.planner.plan(GAME_ID, make_video(), await store.get_stat_events(GAME_ID))
    await store.insert_stat_events([make_event("stat-1", 10_000, stat_type="foul")])

    job = await pipeline.start_job(GAME_ID)
    await pipeline.queue.join()

    assert job.id == planned.id
    job = await store.get_job(job.id)
    assert (job.status, job.completed_clips) == (JobStatus.COMPLETED, 1)
