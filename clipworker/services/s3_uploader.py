"""
S3 Uploader Service
Durable object storage for finished clips
"""

import asyncio
import mimetypes
import os
from typing import Optional

from botocore.exceptions import ConnectionClosedError, EndpointConnectionError, ReadTimeoutError

from ..config import Settings, get_settings
from ..utils.exceptions import StorageNotConfiguredError, UploadError
from ..utils.logger import get_logger
from ..utils.retry import retry_async

logger = get_logger()

TRANSIENT_S3_ERRORS = (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)


class S3Uploader:
    """Async S3 file uploader with multipart support"""

    def __init__(self, settings: Optional[Settings] = None, client=None):
        self.settings = settings or get_settings()
        self._client = client
        self._initialized = client is not None

    @property
    def bucket(self) -> str:
        return self.settings.s3_bucket_name

    @property
    def configured(self) -> bool:
        return self._client is not None or self.settings.storage_configured

    def _ensure_initialized(self):
        """Lazy initialize S3 client"""
        if self._initialized:
            return

        if not self.settings.storage_configured:
            logger.warning("AWS credentials not configured, clip upload disabled")
            raise StorageNotConfiguredError()

        import boto3
        from botocore.config import Config

        config = Config(
            retries={'max_attempts': 3, 'mode': 'adaptive'},
            max_pool_connections=10
        )

        self._client = boto3.client(
            's3',
            aws_access_key_id=self.settings.aws_access_key_id,
            aws_secret_access_key=self.settings.aws_secret_access_key,
            region_name=self.settings.aws_region,
            config=config
        )

        self._initialized = True
        logger.info(f"S3 client initialized for bucket: {self.bucket}")

    def public_url(self, key: str) -> str:
        """URL a finished clip is served from"""
        if self.settings.public_base_url:
            return f"{self.settings.public_base_url.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.{self.settings.aws_region}.amazonaws.com/{key}"

    async def upload_file(self, local_path: str, key: str) -> str:
        """
        Upload a file to S3, overwriting any object at the same key

        Args:
            local_path: Local file path
            key: S3 object key

        Returns:
            Public URL of the uploaded object

        Raises:
            UploadError: file missing, storage not configured, or S3 failure
        """
        self._ensure_initialized()

        if not os.path.exists(local_path):
            raise UploadError(f"File not found: {local_path}", bucket=self.bucket, key=key)

        file_size = os.path.getsize(local_path)
        logger.info(f"Uploading to S3: {key} ({file_size / 1024 / 1024:.1f} MB)")

        content_type, _ = mimetypes.guess_type(local_path)
        content_type = content_type or 'video/mp4'

        try:
            await self._upload_with_retry(local_path, key, content_type)
        except Exception as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise UploadError(f"S3 upload failed: {e}", bucket=self.bucket, key=key) from e

        url = self.public_url(key)
        logger.info(f"Upload complete: {url}")
        return url

    @retry_async(max_retries=2, base_delay=1.0, retryable_exceptions=TRANSIENT_S3_ERRORS)
    async def _upload_with_retry(self, local_path: str, key: str, content_type: str):
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._do_upload, local_path, key, content_type)

    def _do_upload(self, local_path: str, key: str, content_type: str):
        """Perform the actual upload (blocking)"""
        from boto3.s3.transfer import TransferConfig

        config = TransferConfig(
            multipart_threshold=5 * 1024 * 1024,
            multipart_chunksize=5 * 1024 * 1024,
            max_concurrency=4,
            use_threads=True
        )

        self._client.upload_file(
            local_path,
            self.bucket,
            key,
            ExtraArgs={'ContentType': content_type},
            Config=config
        )

    async def delete_file(self, key: str) -> bool:
        """Delete an object from S3"""
        try:
            self._ensure_initialized()
        except StorageNotConfiguredError:
            return False

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None,
                lambda: self._client.delete_object(
                    Bucket=self.bucket,
                    Key=key
                )
            )
            logger.info(f"Deleted from S3: {key}")
            return True
        except Exception as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            return False
