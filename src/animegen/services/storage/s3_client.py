"""S3-compatible object storage for generated images."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import boto3
import structlog
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from animegen.core.config import Settings
from animegen.services.exceptions import StorageError

logger = structlog.get_logger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


@dataclass(frozen=True)
class StoredObject:
    """Blob read back from storage."""

    key: str
    body: bytes
    content_type: str
    etag: str
    size: int


def image_storage_key(image_id: str, now: datetime) -> str:
    """Storage key namespaced by year and month: images/YYYY/MM/<id>.png"""
    return f"images/{now.year:04d}/{now.month:02d}/{image_id}.png"


class S3BlobStore:
    """Blob store backed by an S3-compatible bucket (S3, R2, MinIO).

    boto3 is synchronous, so each call runs in a worker thread.
    """

    def __init__(self, client, bucket: str):
        """Initialize blob store.

        Args:
            client: boto3 S3 client
            bucket: Bucket name
        """
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3BlobStore":
        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
            aws_access_key_id=settings.s3_access_key_id or None,
            aws_secret_access_key=settings.s3_secret_access_key or None,
            region_name=settings.s3_region,
            config=Config(signature_version="s3v4"),
        )
        return cls(client, settings.s3_bucket_name)

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "image/png",
        cache_control: str = IMMUTABLE_CACHE_CONTROL,
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        """Upload bytes under key.

        Returns:
            The storage key

        Raises:
            StorageError: If the upload fails
        """

        def _put_object() -> None:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=cache_control,
                Metadata=metadata or {},
            )

        try:
            await asyncio.to_thread(_put_object)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to store object {key}: {e}") from e

        logger.info("storage.object_stored", key=key, bucket=self.bucket, size=len(data))
        return key

    async def get(self, key: str) -> StoredObject | None:
        """Read an object.

        Returns:
            StoredObject, or None if the key does not exist

        Raises:
            StorageError: For failures other than a missing key
        """

        def _get_object() -> StoredObject | None:
            try:
                response = self.client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "")
                if code in ("NoSuchKey", "404", "NotFound"):
                    return None
                raise
            body = response["Body"].read()
            return StoredObject(
                key=key,
                body=body,
                content_type=response.get("ContentType") or "image/png",
                etag=response.get("ETag", ""),
                size=response.get("ContentLength", len(body)),
            )

        try:
            return await asyncio.to_thread(_get_object)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to read object {key}: {e}") from e

    async def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error in S3."""

        def _delete_object() -> None:
            self.client.delete_object(Bucket=self.bucket, Key=key)

        try:
            await asyncio.to_thread(_delete_object)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete object {key}: {e}") from e
