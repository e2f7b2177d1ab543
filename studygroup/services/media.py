import io
from abc import ABC, abstractmethod
from typing import Optional

import cloudinary
import cloudinary.uploader
import structlog
from starlette.concurrency import run_in_threadpool

from studygroup.core import config
from studygroup.core.errors import MediaStoreError

logger = structlog.get_logger(__name__)

AVATAR_FOLDER = "study-group-avatars"


class MediaStore(ABC):
    """Where uploaded bytes live. ``delete`` is best-effort and never raises."""

    @abstractmethod
    async def store(self, data: bytes, content_type: str, filename: Optional[str] = None, folder: str = "") -> str:
        ...

    @abstractmethod
    async def delete(self, url: str) -> None:
        ...

    def owns(self, url: Optional[str]) -> bool:
        return False


def public_id_from_url(url: str) -> Optional[str]:
    # https://res.cloudinary.com/<cloud>/image/upload/v1234567/<folder>/<public_id>.jpg
    parts = url.rstrip("/").split("/")
    if len(parts) < 2 or not parts[-1]:
        return None
    return f"{parts[-2]}/{parts[-1].split('.')[0]}"


class CloudinaryMediaStore(MediaStore):
    def __init__(self):
        # CLOUDINARY_URL is picked up by the SDK itself
        if config.CLOUDINARY_CLOUD_NAME:
            cloudinary.config(
                cloud_name=config.CLOUDINARY_CLOUD_NAME,
                api_key=config.CLOUDINARY_API_KEY,
                api_secret=config.CLOUDINARY_API_SECRET,
                secure=True,
            )

    def owns(self, url: Optional[str]) -> bool:
        return bool(url) and "cloudinary.com" in url

    async def store(self, data: bytes, content_type: str, filename: Optional[str] = None, folder: str = "") -> str:
        options = {"folder": folder, "resource_type": "auto"}
        if folder == AVATAR_FOLDER:
            options["transformation"] = {"width": 500, "height": 500, "crop": "limit", "quality": "auto"}
        if filename:
            options["use_filename"] = True
            options["filename_override"] = filename

        try:
            result = await run_in_threadpool(cloudinary.uploader.upload, io.BytesIO(data), **options)
        except Exception as e:
            logger.error("media_upload_failed", folder=folder, content_type=content_type, error=str(e))
            raise MediaStoreError("Failed to upload file to media storage") from e
        return result["secure_url"]

    async def delete(self, url: str) -> None:
        if not self.owns(url):
            return
        public_id = public_id_from_url(url)
        if not public_id:
            return
        try:
            await run_in_threadpool(cloudinary.uploader.destroy, public_id)
        except Exception as e:
            logger.warning("media_delete_failed", url=url, error=str(e))


_media_store: Optional[MediaStore] = None


def get_media_store() -> MediaStore:
    global _media_store
    if _media_store is None:
        _media_store = CloudinaryMediaStore()
    return _media_store
