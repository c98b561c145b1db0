"""
Job Store Service
SQLite-backed persistence for clip jobs, clips, and the game data they read.

Job progress counters are only ever changed with in-place SQL arithmetic
(``completed_clips = completed_clips + ?``) so concurrent workers, in this
process or another one sharing the database, cannot lose increments. A
clip's terminal status and its counter delta commit in the same transaction
(``settle_clip``), so a clip is never ready or failed without being counted.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiosqlite

from ..config import get_settings
from ..models.clip import Clip, ClipStatus
from ..models.job import Job, JobStatus
from ..models.stat_event import StatEvent
from ..models.video import GameVideo
from ..utils.logger import get_logger

logger = get_logger()

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS game_videos (
        id TEXT PRIMARY KEY,
        game_id TEXT NOT NULL,
        source_id TEXT,
        status TEXT NOT NULL,
        duration_ms INTEGER,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_game_videos_game_id ON game_videos(game_id)",
    """
    CREATE TABLE IF NOT EXISTS game_stats (
        id TEXT PRIMARY KEY,
        game_id TEXT NOT NULL,
        player_id TEXT,
        custom_player_id TEXT,
        team_id TEXT,
        stat_type TEXT NOT NULL,
        modifier TEXT,
        stat_value INTEGER,
        quarter INTEGER NOT NULL DEFAULT 1,
        game_time_minutes INTEGER NOT NULL DEFAULT 0,
        game_time_seconds INTEGER NOT NULL DEFAULT 0,
        video_timestamp_ms INTEGER,
        is_opponent_stat INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_game_stats_game_id ON game_stats(game_id)",
    """
    CREATE TABLE IF NOT EXISTS clip_jobs (
        id TEXT PRIMARY KEY,
        game_id TEXT NOT NULL,
        video_id TEXT,
        status TEXT NOT NULL,
        team_filter TEXT NOT NULL,
        total_clips INTEGER NOT NULL DEFAULT 0,
        completed_clips INTEGER NOT NULL DEFAULT 0,
        failed_clips INTEGER NOT NULL DEFAULT 0,
        error_message TEXT,
        created_at TEXT NOT NULL,
        started_at TEXT,
        completed_at TEXT,
        updated_at TEXT NOT NULL,
        CHECK (completed_clips >= 0 AND failed_clips >= 0),
        CHECK (completed_clips + failed_clips <= total_clips)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_clip_jobs_game_id ON clip_jobs(game_id)",
    """
    CREATE TABLE IF NOT EXISTS clips (
        id TEXT PRIMARY KEY,
        job_id TEXT NOT NULL REFERENCES clip_jobs(id),
        game_id TEXT NOT NULL,
        video_id TEXT NOT NULL,
        stat_event_id TEXT NOT NULL,
        player_id TEXT,
        custom_player_id TEXT,
        team_id TEXT,
        stat_type TEXT NOT NULL,
        modifier TEXT,
        points_value INTEGER,
        quarter INTEGER,
        game_clock_minutes INTEGER,
        game_clock_seconds INTEGER,
        start_ms INTEGER NOT NULL,
        end_ms INTEGER NOT NULL,
        status TEXT NOT NULL,
        storage_path TEXT,
        storage_url TEXT,
        error_message TEXT,
        retry_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        generated_at TEXT,
        UNIQUE (job_id, stat_event_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_clips_job_id ON clips(job_id)",
    "CREATE INDEX IF NOT EXISTS idx_clips_player_id ON clips(player_id)",
)

_JOB_COLUMNS = (
    "id", "game_id", "video_id", "status", "team_filter", "total_clips",
    "completed_clips", "failed_clips", "error_message", "created_at",
    "started_at", "completed_at", "updated_at",
)

_CLIP_COLUMNS = (
    "id", "job_id", "game_id", "video_id", "stat_event_id", "player_id",
    "custom_player_id", "team_id", "stat_type", "modifier", "points_value",
    "quarter", "game_clock_minutes", "game_clock_seconds", "start_ms", "end_ms",
    "status", "storage_path", "storage_url", "error_message", "retry_count",
    "created_at", "updated_at", "generated_at",
)

_STAT_COLUMNS = (
    "id", "game_id", "player_id", "custom_player_id", "team_id", "stat_type",
    "modifier", "stat_value", "quarter", "game_time_minutes",
    "game_time_seconds", "video_timestamp_ms", "is_opponent_stat",
)

_JOB_UPDATABLE = {"video_id", "error_message", "started_at", "completed_at", "total_clips"}
_CLIP_UPDATABLE = {"video_id", "storage_path", "storage_url", "error_message", "generated_at"}

_OPEN_JOB_STATUSES = (JobStatus.QUEUED.value, JobStatus.PROCESSING.value)


def _now() -> str:
    return datetime.utcnow().isoformat()


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


def _row_values(model, columns: Iterable[str]) -> Tuple:
    data = model.model_dump()
    return tuple(_db_value(data[column]) for column in columns)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class JobStore:
    """Persistent storage for clip jobs and clips."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    async def initialize(self):
        """Initialize database schema."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path) as conn:
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute("PRAGMA synchronous=NORMAL")
                for statement in _SCHEMA:
                    await conn.execute(statement)
                await conn.commit()

            self._initialized = True
            logger.info(f"Job store initialized at {self.db_path}")

    @asynccontextmanager
    async def _connect(self):
        await self.initialize()
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA busy_timeout=5000")
            yield conn

    @asynccontextmanager
    async def _transaction(self):
        """Write transaction holding SQLite's reserved lock from the start."""
        await self.initialize()
        async with self._write_lock:
            async with aiosqlite.connect(self.db_path, isolation_level=None) as conn:
                conn.row_factory = aiosqlite.Row
                await conn.execute("PRAGMA busy_timeout=5000")
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    await conn.execute("ROLLBACK")
                    raise
                await conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Videos and stat events (owned by the main app, read here)
    # ------------------------------------------------------------------

    async def upsert_video(self, video: GameVideo):
        """Insert or update a game video record."""
        async with self._transaction() as conn:
            await conn.execute(
                """
                INSERT INTO game_videos (id, game_id, source_id, status, duration_ms, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    game_id = excluded.game_id,
                    source_id = excluded.source_id,
                    status = excluded.status,
                    duration_ms = excluded.duration_ms,
                    updated_at = excluded.updated_at
                """,
                (video.id, video.game_id, video.source_id, video.status.value,
                 video.duration_ms, _now()),
            )

    async def get_video(self, video_id: str) -> Optional[GameVideo]:
        async with self._connect() as conn:
            cursor = await conn.execute("SELECT * FROM game_videos WHERE id = ?", (video_id,))
            row = await cursor.fetchone()
            await cursor.close()
        return GameVideo(**dict(row)) if row else None

    async def get_video_for_game(self, game_id: str) -> Optional[GameVideo]:
        """Most recently updated video for a game."""
        async with self._connect() as conn:
            cursor = await conn.execute(
                "SELECT * FROM game_videos WHERE game_id = ? ORDER BY updated_at DESC LIMIT 1",
                (game_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()
        return GameVideo(**dict(row)) if row else None

    async def insert_stat_events(self, events: List[StatEvent]):
        """Insert or replace stat events."""
        if not events:
            return
        async with self._transaction() as conn:
            await conn.executemany(
                f"INSERT OR REPLACE INTO game_stats ({', '.join(_STAT_COLUMNS)}) "
                f"VALUES ({_placeholders(len(_STAT_COLUMNS))})",
                [_row_values(event, _STAT_COLUMNS) for event in events],
            )

    async def get_stat_events(self, game_id: str) -> List[StatEvent]:
        """Stat events carrying a video timestamp, in video order."""
        async with self._connect() as conn:
            cursor = await conn.execute(
                """
                SELECT * FROM game_stats
                WHERE game_id = ? AND video_timestamp_ms IS NOT NULL
                ORDER BY video_timestamp_ms ASC, id ASC
                """,
                (game_id,),
            )
            rows = await cursor.fetchall()
            await cursor.close()
        return [StatEvent(**dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def create_job(self, job: Job) -> Job:
        """Insert a job that owns no clips (zero-clip or planning failure)."""
        async with self._transaction() as conn:
            await self._insert_job(conn, job)
        return job

    async def create_job_with_clips(
        self,
        job: Job,
        clips: List[Clip],
        supersede: bool = False
    ) -> Tuple[Job, bool]:
        """
        Create a job and its pending clips in one transaction.

        Unless ``supersede`` is set, an existing non-failed job for the same
        game is returned instead and nothing is written.

        Returns:
            (job, created)
        """
        async with self._transaction() as conn:
            if not supersede:
                existing = await self._fetch_active_job(conn, job.game_id)
                if existing is not None:
                    return existing, False

            clips = list({clip.stat_event_id: clip for clip in clips}.values())
            job.total_clips = len(clips)
            await self._insert_job(conn, job)
            await conn.executemany(
                f"INSERT OR IGNORE INTO clips ({', '.join(_CLIP_COLUMNS)}) "
                f"VALUES ({_placeholders(len(_CLIP_COLUMNS))})",
                [_row_values(clip, _CLIP_COLUMNS) for clip in clips],
            )
        return job, True

    async def _insert_job(self, conn: aiosqlite.Connection, job: Job):
        await conn.execute(
            f"INSERT INTO clip_jobs ({', '.join(_JOB_COLUMNS)}) "
            f"VALUES ({_placeholders(len(_JOB_COLUMNS))})",
            _row_values(job, _JOB_COLUMNS),
        )

    async def _fetch_active_job(self, conn: aiosqlite.Connection, game_id: str) -> Optional[Job]:
        cursor = await conn.execute(
            """
            SELECT * FROM clip_jobs
            WHERE game_id = ? AND status != ?
            ORDER BY created_at DESC LIMIT 1
            """,
            (game_id, JobStatus.FAILED.value),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return Job(**dict(row)) if row else None

    async def _fetch_job(self, conn: aiosqlite.Connection, job_id: str) -> Optional[Job]:
        cursor = await conn.execute("SELECT * FROM clip_jobs WHERE id = ?", (job_id,))
        row = await cursor.fetchone()
        await cursor.close()
        return Job(**dict(row)) if row else None

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with self._connect() as conn:
            return await self._fetch_job(conn, job_id)

    async def get_active_job_for_game(self, game_id: str) -> Optional[Job]:
        """Latest job for the game that did not fail planning."""
        async with self._connect() as conn:
            return await self._fetch_active_job(conn, game_id)

    async def list_jobs(
        self,
        game_id: Optional[str] = None,
        statuses: Optional[Iterable[JobStatus]] = None
    ) -> List[Job]:
        """Return jobs, newest first, optionally filtered."""
        query = "SELECT * FROM clip_jobs"
        clauses: List[str] = []
        params: List[Any] = []

        if game_id:
            clauses.append("game_id = ?")
            params.append(game_id)
        if statuses:
            values = [JobStatus(status).value for status in statuses]
            clauses.append(f"status IN ({_placeholders(len(values))})")
            params.extend(values)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC"

        async with self._connect() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
        return [Job(**dict(row)) for row in rows]

    async def update_job_status(
        self,
        job_id: str,
        status: JobStatus,
        from_statuses: Optional[Iterable[JobStatus]] = None,
        **fields
    ) -> Optional[Job]:
        """
        Set a job's status plus optional timestamp/error fields.

        With ``from_statuses`` the update only applies when the job is
        currently in one of them; returns None when nothing was updated.
        """
        unknown = set(fields) - _JOB_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update job fields: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: List[Any] = [JobStatus(status).value, _now()]
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            params.append(_db_value(value))

        query = f"UPDATE clip_jobs SET {', '.join(assignments)} WHERE id = ?"
        params.append(job_id)
        if from_statuses is not None:
            values = [JobStatus(s).value for s in from_statuses]
            query += f" AND status IN ({_placeholders(len(values))})"
            params.extend(values)

        async with self._transaction() as conn:
            cursor = await conn.execute(query, params)
            if cursor.rowcount == 0:
                return None
            return await self._fetch_job(conn, job_id)

    async def _apply_progress(
        self,
        conn: aiosqlite.Connection,
        job_id: str,
        completed_delta: int,
        failed_delta: int
    ) -> Tuple[Optional[Job], bool]:
        now = _now()
        cursor = await conn.execute(
            """
            UPDATE clip_jobs SET
                completed_clips = completed_clips + ?,
                failed_clips = failed_clips + ?,
                updated_at = ?
            WHERE id = ?
            """,
            (completed_delta, failed_delta, now, job_id),
        )
        if cursor.rowcount == 0:
            return None, False
        return await self._complete_if_settled(conn, job_id, now)

    async def _complete_if_settled(
        self,
        conn: aiosqlite.Connection,
        job_id: str,
        now: str
    ) -> Tuple[Optional[Job], bool]:
        cursor = await conn.execute(
            f"""
            UPDATE clip_jobs SET status = ?, completed_at = ?, updated_at = ?
            WHERE id = ?
              AND status IN ({_placeholders(len(_OPEN_JOB_STATUSES))})
              AND completed_clips + failed_clips = total_clips
            """,
            (JobStatus.COMPLETED.value, now, now, job_id, *_OPEN_JOB_STATUSES),
        )
        completed_now = cursor.rowcount == 1
        return await self._fetch_job(conn, job_id), completed_now

    async def reconcile_job_counters(self, job_id: str) -> Tuple[Optional[Job], bool]:
        """
        Rebuild an open job's counters from its clip rows and complete it if settled.

        Returns:
            (job after the update, whether this call completed the job)
        """
        now = _now()
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"""
                UPDATE clip_jobs SET
                    completed_clips = (SELECT COUNT(*) FROM clips WHERE job_id = ? AND status = ?),
                    failed_clips = (SELECT COUNT(*) FROM clips WHERE job_id = ? AND status = ?),
                    updated_at = ?
                WHERE id = ? AND status IN ({_placeholders(len(_OPEN_JOB_STATUSES))})
                """,
                (job_id, ClipStatus.READY.value, job_id, ClipStatus.FAILED.value,
                 now, job_id, *_OPEN_JOB_STATUSES),
            )
            if cursor.rowcount == 0:
                return await self._fetch_job(conn, job_id), False
            return await self._complete_if_settled(conn, job_id, now)

    # ------------------------------------------------------------------
    # Clips
    # ------------------------------------------------------------------

    async def get_clip(self, clip_id: str) -> Optional[Clip]:
        async with self._connect() as conn:
            return await self._fetch_clip(conn, clip_id)

    async def _fetch_clip(self, conn: aiosqlite.Connection, clip_id: str) -> Optional[Clip]:
        cursor = await conn.execute("SELECT * FROM clips WHERE id = ?", (clip_id,))
        row = await cursor.fetchone()
        await cursor.close()
        return Clip(**dict(row)) if row else None

    async def list_clips(
        self,
        job_id: Optional[str] = None,
        status: Optional[ClipStatus] = None,
        limit: Optional[int] = None
    ) -> List[Clip]:
        """Return clips in video order, optionally by job and/or status."""
        clauses: List[str] = []
        params: List[Any] = []

        if job_id:
            clauses.append("job_id = ?")
            params.append(job_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(ClipStatus(status).value)

        query = "SELECT * FROM clips"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY job_id, start_ms ASC, id ASC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        async with self._connect() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
        return [Clip(**dict(row)) for row in rows]

    async def list_ready_clips(
        self,
        game_id: Optional[str] = None,
        player_id: Optional[str] = None
    ) -> List[Clip]:
        """Ready clips for a game and/or player, in video order."""
        clauses = ["status = ?"]
        params: List[Any] = [ClipStatus.READY.value]
        if game_id:
            clauses.append("game_id = ?")
            params.append(game_id)
        if player_id:
            clauses.append("(player_id = ? OR custom_player_id = ?)")
            params.extend([player_id, player_id])

        query = (
            f"SELECT * FROM clips WHERE {' AND '.join(clauses)} "
            "ORDER BY game_id, start_ms ASC"
        )
        async with self._connect() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
        return [Clip(**dict(row)) for row in rows]

    async def get_clip_status_counts(self, job_id: str) -> Dict[str, int]:
        """Number of clips per status for a job."""
        async with self._connect() as conn:
            cursor = await conn.execute(
                "SELECT status, COUNT(*) FROM clips WHERE job_id = ? GROUP BY status",
                (job_id,),
            )
            rows = await cursor.fetchall()
            await cursor.close()
        counts = {status.value: 0 for status in ClipStatus}
        counts.update({status: count for status, count in rows})
        return counts

    async def transition_clip(
        self,
        clip_id: str,
        from_statuses: Iterable[ClipStatus],
        to_status: ClipStatus,
        bump_retry_count: bool = False,
        **fields
    ) -> Optional[Clip]:
        """
        Compare-and-set a clip's status.

        The update only applies while the clip is in one of ``from_statuses``.
        Returns the updated clip, or None if the clip was in another state.
        """
        async with self._transaction() as conn:
            return await self._update_clip(
                conn, clip_id, from_statuses, to_status, bump_retry_count, fields
            )

    async def settle_clip(
        self,
        clip_id: str,
        from_statuses: Iterable[ClipStatus],
        to_status: ClipStatus,
        completed_delta: int,
        failed_delta: int,
        **fields
    ) -> Tuple[Optional[Clip], Optional[Job], bool]:
        """
        Store a clip's terminal status and move its job's counters in one transaction.

        Nothing is written when the clip is not in one of ``from_statuses``.

        Returns:
            (settled clip or None, job after the update, whether this call completed the job)
        """
        async with self._transaction() as conn:
            clip = await self._update_clip(conn, clip_id, from_statuses, to_status, False, fields)
            if clip is None:
                return None, None, False
            if completed_delta == 0 and failed_delta == 0:
                return clip, await self._fetch_job(conn, clip.job_id), False
            job, completed_now = await self._apply_progress(
                conn, clip.job_id, completed_delta, failed_delta
            )
        return clip, job, completed_now

    async def _update_clip(
        self,
        conn: aiosqlite.Connection,
        clip_id: str,
        from_statuses: Iterable[ClipStatus],
        to_status: ClipStatus,
        bump_retry_count: bool,
        fields: Dict[str, Any]
    ) -> Optional[Clip]:
        unknown = set(fields) - _CLIP_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update clip fields: {sorted(unknown)}")

        expected = [ClipStatus(s).value for s in from_statuses]
        assignments = ["status = ?", "updated_at = ?"]
        params: List[Any] = [ClipStatus(to_status).value, _now()]
        if bump_retry_count:
            assignments.append("retry_count = retry_count + 1")
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            params.append(_db_value(value))
        params.append(clip_id)
        params.extend(expected)

        cursor = await conn.execute(
            f"UPDATE clips SET {', '.join(assignments)} "
            f"WHERE id = ? AND status IN ({_placeholders(len(expected))})",
            params,
        )
        if cursor.rowcount == 0:
            return None
        return await self._fetch_clip(conn, clip_id)


_job_store: Optional[JobStore] = None


def get_job_store() -> JobStore:
    """Return singleton job store."""
    global _job_store
    if _job_store is None:
        settings = get_settings()
        db_path = Path(settings.data_dir) / "clipworker.db"
        _job_store = JobStore(str(db_path))
    return _job_store
