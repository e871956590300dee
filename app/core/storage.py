"""
Supabase Storage adapter for listing images.

Images live in a single bucket and are referenced from annonces rows by object key.
The default sentinel key never touches the bucket.
"""

import logging
import re
import time
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from app.core.config import Settings, get_settings
from app.core.exceptions import DependencyError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_FILENAME_LEN = 100


class StorageError(DependencyError):
    """Object storage is unreachable, misconfigured, or rejected the call."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="storage")


def build_object_key(filename: str | None, now_ms: int | None = None) -> str:
    """Object key for a new upload: '<epoch-ms>-<sanitized filename>'."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    name = _UNSAFE_KEY_CHARS.sub("_", (filename or "").strip()).strip("._")
    if not name:
        name = "image"
    return f"{now_ms}-{name[-MAX_FILENAME_LEN:]}"


class ImageStorage:
    """Upload, remove and resolve public URLs for listing images in one bucket."""

    def __init__(self, settings: Settings, client: Any | None = None) -> None:
        self._settings = settings
        self._client = client
        self.bucket = settings.STORAGE_BUCKET
        self.default_key = settings.DEFAULT_IMAGE_KEY

    def _get_client(self) -> Client:
        if self._client is None:
            if not self._settings.storage_configured:
                raise StorageError(
                    "Supabase configuration missing. Set SUPABASE_URL and SUPABASE_KEY."
                )
            self._client = create_client(
                self._settings.SUPABASE_URL,
                self._settings.SUPABASE_KEY.get_secret_value(),
            )
        return self._client

    def _bucket(self) -> Any:
        return self._get_client().storage.from_(self.bucket)

    def is_default(self, key: str | None) -> bool:
        return not key or key == self.default_key

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store data under key; return the key. Raises StorageError on failure."""
        bucket = self._bucket()
        try:
            bucket.upload(
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            logger.error("Image upload failed: bucket=%s key=%s error=%s", self.bucket, key, e)
            raise StorageError("Image upload failed") from e
        logger.info("Image uploaded: bucket=%s key=%s bytes=%s", self.bucket, key, len(data))
        return key

    def remove(self, key: str) -> None:
        """Delete the object at key. The default sentinel is never removed."""
        if self.is_default(key):
            return
        bucket = self._bucket()
        try:
            bucket.remove([key])
        except Exception as e:
            logger.error("Image removal failed: bucket=%s key=%s error=%s", self.bucket, key, e)
            raise StorageError("Image removal failed") from e
        logger.info("Image removed: bucket=%s key=%s", self.bucket, key)

    def public_url(self, key: str) -> str:
        try:
            return self._bucket().get_public_url(key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError("Could not resolve image URL") from e

    def image_url(self, key: str | None) -> str:
        """Browsable URL for a stored image key; the default sentinel maps to DEFAULT_IMAGE_URL."""
        if self.is_default(key):
            return self._settings.DEFAULT_IMAGE_URL
        return self.public_url(key)


@lru_cache
def _cached_storage() -> ImageStorage:
    return ImageStorage(get_settings())


def get_storage() -> ImageStorage:
    """Dependency returning the process-wide ImageStorage (client created lazily)."""
    return _cached_storage()
