"""Tests for window computation and idempotent job planning."""

import pytest

from clipworker.models import ClipStatus, JobStatus, TeamFilter
from clipworker.services.clip_planner import ClipPlanner, compute_window

from helpers import GAME_ID, make_event, make_video


def test_compute_window_pads_by_stat_type() -> None:
    assert compute_window(make_event("s", 12_300, stat_type="steal")) == (10_300, 16_300)
    assert compute_window(make_event("fg", 50_000, stat_type="field_goal", modifier="made")) == (47_000, 53_500)
    assert compute_window(make_event("r", 50_000, stat_type="rebound")) == (46_000, 52_000)


def test_compute_window_clamps_start_but_not_end() -> None:
    assert compute_window(make_event("early", 500, stat_type="rebound")) == (0, 2_500)
    # A window past the end of the video is left for extraction to reject
    assert compute_window(make_event("late", 998_700)) == (996_700, 1_002_700)


@pytest.mark.anyio
async def test_plan_creates_job_and_one_pending_clip_per_event(store) -> None:
    video = make_video()
    events = [make_event("stat-1", 12_300), make_event("stat-2", 340_100, stat_type="assist")]

    job = await ClipPlanner(store).plan(GAME_ID, video, events)

    assert job.status is JobStatus.QUEUED
    assert job.total_clips == 2
    clips = await store.list_clips(job.id)
    assert [clip.stat_event_id for clip in clips] == ["stat-1", "stat-2"]
    assert all(clip.status is ClipStatus.PENDING for clip in clips)
    assert clips[1].start_ms == 338_100
    assert clips[1].end_ms == 344_100
    assert clips[0].player_id == "player-7"
    assert clips[0].quarter == 2


@pytest.mark.anyio
async def test_plan_twice_is_idempotent(store) -> None:
    video = make_video()
    events = [make_event(f"stat-{i}", i * 10_000) for i in range(1, 4)]
    planner = ClipPlanner(store)

    first = await planner.plan(GAME_ID, video, events)
    second = await planner.plan(GAME_ID, video, events)

    assert second.id == first.id
    assert len(await store.list_jobs(game_id=GAME_ID)) == 1
    assert len(await store.list_clips(first.id)) == 3


@pytest.mark.anyio
async def test_plan_with_supersede_creates_new_job(store) -> None:
    video = make_video()
    events = [make_event("stat-1", 10_000)]
    planner = ClipPlanner(store)

    first = await planner.plan(GAME_ID, video, events)
    second = await planner.plan(GAME_ID, video, events, supersede=True)

    assert second.id != first.id
    assert len(await store.list_jobs(game_id=GAME_ID)) == 2
    assert (await store.get_active_job_for_game(GAME_ID)).id == second.id


@pytest.mark.anyio
async def test_plan_without_events_completes_immediately(store) -> None:
    job = await ClipPlanner(store).plan(GAME_ID, make_video(), [], TeamFilter.OPPONENT)

    stored = await store.get_job(job.id)
    assert stored.status is JobStatus.COMPLETED
    assert stored.total_clips == 0
    assert stored.completed_at is not None
    assert stored.team_filter is TeamFilter.OPPONENT


@pytest.mark.anyio
async def test_failed_planning_does_not_block_a_later_plan(store) -> None:
    planner = ClipPlanner(store)
    failed = await planner.record_failure(GAME_ID, "Video video-1 is not ready (status: processing)", "video-1")

    job = await planner.plan(GAME_ID, make_video(), [make_event("stat-1", 10_000)])

    assert (await store.get_job(failed.id)).status is JobStatus.FAILED
    assert job.id != failed.id
    assert job.status is JobStatus.QUEUED
