"""
S3 object storage for captured part images.
"""
import time
import uuid
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from partscan.core.config import settings
from partscan.core.exceptions import ImagePersistenceError


class S3Service:
    """Service for storing capture images in an S3 (or S3-compatible) bucket."""

    def __init__(
        self,
        bucket_name: str = None,
        client=None,
        public_base_url: Optional[str] = None,
        cache_control: str = None,
    ):
        self.s3_client = client or boto3.client(
            's3',
            region_name=settings.AWS_REGION,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            endpoint_url=settings.S3_ENDPOINT_URL
        )
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME
        self.public_base_url = public_base_url or settings.S3_PUBLIC_BASE_URL
        self.cache_control = cache_control or settings.S3_CACHE_CONTROL
        logger.info(f"Initialized S3 service with bucket: {self.bucket_name}")

    @staticmethod
    def build_key(naming_hint: str) -> str:
        """
        Build a unique object key for an upload.

        Args:
            naming_hint: Caller supplied prefix, e.g. ``session_<id>``

        Returns:
            str: Key of the form ``<epoch millis>_<hint>_<suffix>.jpg``
        """
        return f"{int(time.time() * 1000)}_{naming_hint}_{uuid.uuid4().hex[:8]}.jpg"

    def public_url(self, key: str) -> str:
        """Public URL of an object in the bucket."""
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        region = self.s3_client.meta.region_name or settings.AWS_REGION
        return f"https://{self.bucket_name}.s3.{region}.amazonaws.com/{key}"

    def upload_image(self, payload: bytes, naming_hint: str) -> str:
        """
        Upload a JPEG payload and return its public URL.

        Args:
            payload: Encoded JPEG bytes
            naming_hint: Prefix used in the object key

        Returns:
            str: Public URL of the stored object

        Raises:
            ImagePersistenceError: If the upload was rejected
        """
        key = self.build_key(naming_hint)
        try:
            logger.debug(f"Uploading {len(payload)} bytes to {key}")
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=payload,
                ContentType='image/jpeg',
                CacheControl=self.cache_control
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Storage upload error for {key}: {e}")
            raise ImagePersistenceError(f"Storage upload error: {e}") from e
        return self.public_url(key)
