import asyncio
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def normalize_ref(value: str) -> str:
    """Strips an asset reference and checks it is an absolute URL."""
    if value is None:
        raise ValueError("asset reference is required")
    value = str(value).strip()
    if not value:
        raise ValueError("asset reference must not be empty")
    parsed = urlparse(value)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"asset reference must be an absolute URL: {value!r}")
    return value


class ResolveStatus(str, Enum):
    RESOLVED = "resolved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class AssetRef:
    url: str
    resource_type: str
    key: Optional[str] = None
    duration_seconds: Optional[float] = None


@dataclass(frozen=True)
class ResolveResult:
    status: ResolveStatus
    asset: Optional[AssetRef] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResolveStatus.RESOLVED


@contextmanager
def scoped_local_file(local_path: str):
    """Yields the path and removes the file on every way out."""
    try:
        yield local_path
    finally:
        if local_path:
            remove_quietly(local_path)


def remove_quietly(local_path: str):
    try:
        os.remove(local_path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.exception("Could not remove temp file %s", local_path)


class AssetResolver:
    """
    Turns a local temp file into a hosted asset reference.

    Never raises for provider failures or timeouts: callers get a FAILED
    result and must check it. Cancellation still propagates.
    """

    def __init__(self, gateway, timeout: Optional[float] = None):
        self.gateway = gateway
        self.timeout = timeout

    async def resolve(self, local_path: Optional[str], resource_type: str = "video") -> ResolveResult:
        if not local_path:
            return ResolveResult(status=ResolveStatus.SKIPPED)

        with scoped_local_file(local_path):
            try:
                response = await asyncio.wait_for(
                    self.gateway.upload(local_path, {"resource_type": resource_type}),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                # only the wait is cancelled; a put already running in the gateway's
                # worker thread can still land in the bucket after this FAILED result
                logger.error("Upload timed out after %ss: %s", self.timeout, local_path)
                return ResolveResult(
                    status=ResolveStatus.FAILED,
                    error=f"upload timed out after {self.timeout}s",
                )
            except Exception as e:
                logger.error("Error while uploading %s: %s", local_path, e)
                return ResolveResult(status=ResolveStatus.FAILED, error=str(e) or type(e).__name__)

        if resource_type == "video" and response.duration_seconds is None:
            await self.discard_key(response.key)
            return ResolveResult(
                status=ResolveStatus.FAILED,
                error="provider did not report a duration for the video",
            )

        try:
            url = normalize_ref(response.url)
        except ValueError as e:
            await self.discard_key(response.key)
            return ResolveResult(status=ResolveStatus.FAILED, error=str(e))

        asset = AssetRef(
            url=url,
            resource_type=resource_type,
            key=response.key,
            duration_seconds=response.duration_seconds,
        )
        return ResolveResult(status=ResolveStatus.RESOLVED, asset=asset)

    async def discard_key(self, key: Optional[str]) -> bool:
        """
        Removes an already uploaded object. Returns False when the provider
        refuses, so a failed rollback is logged rather than masking the
        original error.
        """
        if not key:
            return False
        try:
            await asyncio.wait_for(self.gateway.delete(key), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Removing %s timed out, the object is orphaned", key)
            return False
        except Exception:
            logger.exception("Could not remove %s, the object is orphaned", key)
            return False
        return True

    async def discard(self, asset: AssetRef) -> bool:
        return await self.discard_key(asset.key)
