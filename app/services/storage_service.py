"""S3 storage service for booking receipts.

Receipts live at a deterministic key per booking, so a retried upload
overwrites the previous object instead of creating a duplicate.
"""

import asyncio
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings, settings as default_settings
from app.core.exceptions import StorageFailure

logger = logging.getLogger(__name__)


def receipt_key(booking_id: str) -> str:
    """S3 key for a booking's receipt."""
    return f"bookings/{booking_id}/receipt.pdf"


class StorageService:
    """S3/MinIO storage service."""

    def __init__(self, settings: Settings | None = None, client=None) -> None:
        """Initialize S3 settings; the client is created lazily unless injected."""
        self._settings = settings or default_settings
        self._client = client
        self._bucket = self._settings.s3_bucket_name
        self._timeout = self._settings.storage_timeout_seconds

    @property
    def client(self):
        """Lazy-load S3 client."""
        if self._client is None:
            config = Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
                connect_timeout=5,
                read_timeout=self._timeout,
            )
            self._client = boto3.client(
                "s3",
                aws_access_key_id=self._settings.aws_access_key_id,
                aws_secret_access_key=self._settings.aws_secret_access_key,
                region_name=self._settings.aws_region,
                endpoint_url=self._settings.s3_endpoint_url,  # For MinIO in dev
                config=config,
            )
        return self._client

    def public_url(self, key: str) -> str:
        """Public URL for ``key``, derived from bucket, region and endpoint."""
        if self._settings.s3_endpoint_url:
            # MinIO in development
            return f"{self._settings.s3_endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        # AWS S3
        return f"https://{self._bucket}.s3.{self._settings.aws_region}.amazonaws.com/{key}"

    def _put_object(self, key: str, data: bytes, content_type: str) -> None:
        extra_args = {}
        if self._settings.s3_public_read:
            extra_args["ACL"] = "public-read"

        self.client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            **extra_args,
        )

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Upload bytes to S3.

        Args:
            key: Destination object key
            data: Object content
            content_type: MIME type

        Returns:
            str: Public URL of the uploaded object

        Raises:
            StorageFailure: on S3 errors or when the upload exceeds the timeout
        """
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._put_object, key, data, content_type),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise StorageFailure(f"upload of {key} exceeded {self._timeout}s")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise StorageFailure(str(e))

        logger.info(f"Uploaded {len(data)} bytes to s3://{self._bucket}/{key}")
        return self.public_url(key)

    def get_presigned_url(self, key: str, expires_in: int | None = None) -> str:
        """Generate a presigned URL for downloading an object.

        Args:
            key: S3 object key
            expires_in: URL expiration in seconds

        Returns:
            str: Presigned URL
        """
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in or self._settings.receipt_url_expiry_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageFailure(str(e))
