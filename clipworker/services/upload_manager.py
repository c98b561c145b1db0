"""
Upload Manager
Moves an extracted clip from local scratch space into durable storage
"""

import os
from contextlib import contextmanager
from dataclasses import dataclass

from ..models.clip import Clip
from ..utils.exceptions import UploadError
from ..utils.logger import get_logger
from .s3_uploader import S3Uploader

logger = get_logger()


@dataclass
class StoredClip:
    """Where a clip ended up"""
    storage_path: str
    url: str


def clip_storage_key(prefix: str, game_id: str, job_id: str, clip_id: str) -> str:
    """Deterministic object key, so re-uploads overwrite instead of piling up"""
    return f"{prefix.strip('/')}/{game_id}/{job_id}/{clip_id}.mp4"


@contextmanager
def local_clip_file(path: str):
    """Yield a scratch clip path and delete the file however the block exits"""
    try:
        yield path
    finally:
        try:
            if os.path.exists(path):
                os.remove(path)
                logger.debug(f"Cleaned up: {path}")
        except OSError as exc:
            logger.warning(f"Failed to cleanup {path}: {exc}")


class UploadManager:
    """Uploads clips under (game, job, clip) keys"""

    def __init__(self, storage: S3Uploader, key_prefix: str = "clips"):
        self.storage = storage
        self.key_prefix = key_prefix

    def storage_key(self, clip: Clip) -> str:
        return clip_storage_key(self.key_prefix, clip.game_id, clip.job_id, clip.id)

    async def upload(self, local_path: str, clip: Clip) -> StoredClip:
        """
        Upload an extracted clip; the local file is removed on every path.

        Raises:
            UploadError: the clip could not be stored
        """
        key = self.storage_key(clip)
        with local_clip_file(local_path):
            try:
                url = await self.storage.upload_file(local_path, key)
            except UploadError:
                raise
            except Exception as exc:
                raise UploadError(f"Upload failed: {exc}", key=key) from exc

        return StoredClip(storage_path=key, url=url)

    async def discard(self, clip: Clip) -> bool:
        """Remove whatever an earlier attempt left at the clip's key"""
        return await self.storage.delete_file(self.storage_key(clip))
