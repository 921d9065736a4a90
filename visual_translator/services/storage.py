"""Object storage access for uploaded assets (MinIO/S3)."""

import asyncio
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from visual_translator.config import Settings, get_settings
from visual_translator.exceptions import DownloadError

logger = logging.getLogger(__name__)


class StorageService:
    """Read-only view of the asset bucket."""

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()
        self._client = None
        self._bucket = self._settings.minio_bucket

    @property
    def client(self):
        """Lazy initialization of S3 client."""
        if self._client is None:
            s = self._settings
            endpoint_url = f"{'https' if s.minio_use_ssl else 'http'}://{s.minio_endpoint}"
            self._client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=s.minio_access_key,
                aws_secret_access_key=s.minio_secret_key,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=s.storage_timeout_seconds,
                    read_timeout=s.storage_timeout_seconds,
                    retries={"max_attempts": 3},
                ),
            )
        return self._client

    def _download_sync(self, storage_path: str) -> bytes:
        response = self.client.get_object(Bucket=self._bucket, Key=storage_path)
        return response["Body"].read()

    async def download(self, storage_path: str) -> bytes:
        """
        Download an asset's content.

        boto3 is blocking, so the call runs in a worker thread.

        Raises:
            DownloadError: on any storage error
        """
        try:
            content = await asyncio.to_thread(self._download_sync, storage_path)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            raise DownloadError(f"Failed to download asset {storage_path}: {code}") from e
        except BotoCoreError as e:
            raise DownloadError(f"Failed to download asset {storage_path}: {e}") from e

        logger.debug(f"Downloaded {len(content)} bytes from {storage_path}")
        return content

    def health_check(self) -> bool:
        """Check if storage is accessible."""
        try:
            self.client.head_bucket(Bucket=self._bucket)
            return True
        except (ClientError, BotoCoreError):
            return False


# Singleton instance
storage_service = StorageService()


def get_storage() -> StorageService:
    """FastAPI dependency for the shared storage service."""
    return storage_service
