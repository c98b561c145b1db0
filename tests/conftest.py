"""Shared fixtures: a per-test SQLite store and a pipeline with FFmpeg/S3 faked out."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from clipworker.config import Settings
from clipworker.services.job_store import JobStore
from clipworker.services.pipeline import ClipPipeline
from clipworker.services.s3_uploader import S3Uploader

from helpers import FakeExtractor


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        aws_access_key_id="test-key",
        aws_secret_access_key="test-secret",
        s3_bucket_name="test-bucket",
        public_base_url="https://clips.test",
        stream_cdn_url="https://cdn.test",
        max_parallel_clips=2,
        max_pending_jobs=5,
        temp_dir=str(tmp_path / "temp"),
        data_dir=str(tmp_path / "data"),
    )


@pytest.fixture
def store(tmp_path: Path) -> JobStore:
    return JobStore(str(tmp_path / "data" / "clipworker.db"))


@pytest.fixture
def extractor(settings: Settings) -> FakeExtractor:
    return FakeExtractor(settings.temp_dir)


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def storage(settings: Settings, s3_client: MagicMock) -> S3Uploader:
    return S3Uploader(settings, client=s3_client)


@pytest.fixture
async def pipeline(anyio_backend, settings, store, extractor, storage):
    pipeline = ClipPipeline.from_settings(
        settings=settings, store=store, extractor=extractor, storage=storage
    )
    await pipeline.startup()
    yield pipeline
    await pipeline.shutdown()
