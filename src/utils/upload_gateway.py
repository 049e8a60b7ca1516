"""
Upload gateway to the media hosting provider (S3-compatible object storage).

The client is built from an explicit config at startup. Nothing here reads the
environment or keeps a module-level client.
"""
import asyncio
import logging
import mimetypes
import os
import subprocess
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

VIDEO = "video"
IMAGE = "image"
PROBE_TIMEOUT_SECONDS = 60


class ProviderError(Exception):
    """Raised by the gateway when the provider call fails."""


@dataclass(frozen=True)
class UploadGatewayConfig:
    bucket: str
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = "us-east-1"
    public_base_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings):
        return cls(
            bucket=settings.AWS_S3_BUCKET,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region=settings.AWS_REGION,
            public_base_url=settings.S3_PUBLIC_BASE_URL,
        )


@dataclass(frozen=True)
class UploadResult:
    url: str
    key: str
    resource_type: str
    bytes: int
    duration_seconds: Optional[float] = None


def probe_duration(file_path: str, timeout: float = PROBE_TIMEOUT_SECONDS) -> float:
    """
    Reads the container duration of a media file with ffprobe.

    Raises:
        ProviderError: If ffprobe fails, hangs past the timeout or prints something
            that isn't a number
    """
    command = [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        file_path,
    ]
    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ProviderError("ffprobe is not installed") from e
    except subprocess.CalledProcessError as e:
        raise ProviderError(f"ffprobe failed: {e.stderr.decode(errors='replace')}") from e
    except subprocess.TimeoutExpired as e:
        raise ProviderError(f"ffprobe timed out after {timeout}s on {file_path}") from e

    output = completed.stdout.decode().strip()
    try:
        return round(float(output), 3)
    except ValueError as e:
        raise ProviderError(f"ffprobe returned no duration for {file_path}") from e


class S3UploadGateway:
    def __init__(self, config: UploadGatewayConfig, client=None):
        if not config.bucket:
            raise ValueError("upload bucket is not configured")
        self.config = config
        self.client = client or boto3.client(
            "s3",
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
        )

    def object_url(self, key: str) -> str:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        return f"https://{self.config.bucket}.s3.{self.config.region}.amazonaws.com/{key}"

    def _build_key(self, local_path: str, resource_type: str) -> str:
        _, ext = os.path.splitext(local_path)
        folder = "videos" if resource_type == VIDEO else "thumbnails"
        return f"{folder}/{uuid4().hex}{ext.lower()}"

    def _put(self, local_path: str, key: str, content_type: str) -> int:
        with open(local_path, "rb") as body:
            self.client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )
        return os.path.getsize(local_path)

    def _upload_sync(self, local_path: str, resource_type: str) -> UploadResult:
        duration = probe_duration(local_path) if resource_type == VIDEO else None

        key = self._build_key(local_path, resource_type)
        content_type = mimetypes.guess_type(local_path)[0] or "application/octet-stream"
        try:
            size = self._put(local_path, key, content_type)
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(f"S3 upload failed for {key}: {e}") from e
        except OSError as e:
            raise ProviderError(f"could not read {local_path}: {e}") from e

        url = self.object_url(key)
        logger.info("file uploaded at %s", url, extra={"key": key})
        return UploadResult(
            url=url,
            key=key,
            resource_type=resource_type,
            bytes=size,
            duration_seconds=duration,
        )

    async def upload(self, local_path: str, options: Optional[dict] = None) -> UploadResult:
        """
        Uploads a local file to the bucket.

        Options:
            resource_type: "video" or "image" (default "video")

        Raises:
            ProviderError: On any provider or probe failure
        """
        options = options or {}
        resource_type = options.get("resource_type", VIDEO)
        # boto3 is blocking; keep it off the event loop
        return await asyncio.to_thread(self._upload_sync, local_path, resource_type)

    def _delete_sync(self, key: str):
        try:
            self.client.delete_object(Bucket=self.config.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(f"S3 delete failed for {key}: {e}") from e
        logger.info("file removed from bucket", extra={"key": key})

    async def delete(self, key: str):
        """
        Removes an uploaded object.

        Raises:
            ProviderError: If S3 refuses the delete
        """
        await asyncio.to_thread(self._delete_sync, key)
