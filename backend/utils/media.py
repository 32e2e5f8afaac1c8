import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from core.config import settings

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class UploadResult:
    url: Optional[str] = None
    asset_id: Optional[str] = None
    failed: bool = False

    @classmethod
    def failure(cls) -> "UploadResult":
        return cls(failed=True)


def remove_local_file(local_path: Optional[str]) -> None:
    """Best-effort cleanup of a staged upload; failures are logged only."""
    if not local_path:
        return
    try:
        if os.path.exists(local_path):
            os.remove(local_path)
    except OSError as e:
        logger.warning(f"Could not remove temporary file {local_path}: {e}")


async def stage_upload(upload: UploadFile, tmp_dir: Optional[str] = None) -> str:
    """Write a multipart file part to the temp dir and return its path"""
    directory = Path(tmp_dir or settings.UPLOAD_TMP_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix
    local_path = directory / f"{uuid.uuid4().hex}{suffix}"
    try:
        out = await run_in_threadpool(open, local_path, "wb")
        try:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                await run_in_threadpool(out.write, chunk)
        finally:
            await run_in_threadpool(out.close)
    except Exception:
        remove_local_file(str(local_path))
        raise
    finally:
        await upload.close()
    return str(local_path)


class MediaHost:
    """Cloudinary-backed asset host. Configured once at startup."""

    def __init__(self, cloud_name: Optional[str] = None, api_key: Optional[str] = None, api_secret: Optional[str] = None):
        self.cloud_name = cloud_name or settings.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key or settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret or settings.CLOUDINARY_API_SECRET

    def configure(self) -> None:
        if not (self.cloud_name and self.api_key and self.api_secret):
            logger.warning("Cloudinary credentials are not fully configured; uploads will fail")
        cloudinary.config(
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
            secure=True,
        )

    def _upload_sync(self, local_path: str) -> dict:
        return cloudinary.uploader.upload(local_path, resource_type="auto")

    async def upload(self, local_path: Optional[str]) -> UploadResult:
        """Upload a local file; the file is removed whatever the outcome."""
        if not local_path:
            return UploadResult.failure()
        try:
            response = await run_in_threadpool(self._upload_sync, local_path)
            url = response.get("secure_url") or response.get("url")
            if not url:
                logger.error(f"Cloudinary returned no url for {local_path}")
                return UploadResult.failure()
            return UploadResult(url=url, asset_id=response.get("public_id"))
        except Exception as e:
            logger.error(f"Error uploading file to Cloudinary: {e}")
            return UploadResult.failure()
        finally:
            remove_local_file(local_path)


_media_host: Optional[MediaHost] = None

def init_media_host() -> MediaHost:
    global _media_host
    if _media_host is None:
        _media_host = MediaHost()
        _media_host.configure()
    return _media_host

def get_media_host() -> MediaHost:
    if _media_host is None:
        raise RuntimeError("Media host is not initialized; call init_media_host() on startup")
    return _media_host
