"""
Attachment storage in S3/MinIO
"""
import asyncio
import logging
from typing import Any, BinaryIO, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..domain.repositories import IAttachmentStore
from ..errors import AdapterError, AdapterErrorKind
from ..result import Result

logger = logging.getLogger(__name__)


def create_s3_client(settings: Settings) -> Any:
    """Build a boto3 S3 client for the configured storage type"""
    boto_config = BotoConfig(
        connect_timeout=settings.ADAPTER_TIMEOUT_SECONDS,
        read_timeout=settings.ADAPTER_TIMEOUT_SECONDS,
        retries={"max_attempts": 1},
    )
    if settings.STORAGE_TYPE == "minio":
        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or "minioadmin",
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or "minioadmin",
            region_name=settings.AWS_REGION,
            config=boto_config
        )
    return boto3.client(
        "s3",
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        region_name=settings.AWS_REGION,
        config=boto_config
    )


class S3AttachmentStore(IAttachmentStore):
    """Store attachments as public-read objects in S3/MinIO"""

    def __init__(self, client: Any, settings: Settings):
        self.client = client
        self.settings = settings

    def public_url(self, bucket: str, key: str) -> str:
        """Directly dereferenceable link to a stored object"""
        if self.settings.MEDIA_PUBLIC_BASE_URL:
            return f"{self.settings.MEDIA_PUBLIC_BASE_URL.rstrip('/')}/{key}"
        if self.settings.STORAGE_TYPE == "minio":
            return f"{self.settings.S3_ENDPOINT_URL.rstrip('/')}/{bucket}/{key}"
        return f"https://{bucket}.s3.{self.settings.AWS_REGION}.amazonaws.com/{key}"

    async def put(
        self,
        content: BinaryIO,
        bucket: str,
        key: str,
        content_type: Optional[str] = None
    ) -> Result[str, AdapterError]:
        return await asyncio.to_thread(self._put, content, bucket, key, content_type)

    def _put(
        self,
        content: BinaryIO,
        bucket: str,
        key: str,
        content_type: Optional[str]
    ) -> Result[str, AdapterError]:
        # The bucket must already exist; it is never created on demand
        try:
            self.client.head_bucket(Bucket=bucket)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Bucket {bucket} is not reachable: {e}")
            return Result.err(AdapterError(AdapterErrorKind.STORAGE_UNAVAILABLE, str(e)))

        extra_args = {"ACL": "public-read"}
        if content_type:
            extra_args["ContentType"] = content_type

        try:
            self.client.upload_fileobj(content, bucket, key, ExtraArgs=extra_args)
        except (S3UploadFailedError, ClientError, BotoCoreError, OSError, ValueError) as e:
            logger.error(f"Failed to upload {key} to {bucket}: {e}")
            return Result.err(AdapterError(AdapterErrorKind.WRITE_FAILED, str(e)))

        url = self.public_url(bucket, key)
        logger.info(f"Post attachment is saved to storage: {url}")
        return Result.ok(url)
