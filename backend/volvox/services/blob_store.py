"""Blob storage for post images and content files. Local filesystem backed.

Blobs are addressed by relative path keys such as ``post_images/<name>``.
Each stored blob is reachable at ``BLOB_PUBLIC_BASE_URL/<path>``; the app
serves the storage directory at ``BLOB_MOUNT_PATH``.
"""
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os

from volvox.config import settings

logger = logging.getLogger(__name__)

POST_IMAGES_PREFIX = "post_images/"
POST_FILES_PREFIX = "post_files/"


class BlobNotFoundError(FileNotFoundError):
    """Raised when a blob path has no stored object."""
    pass


class BlobStore:
    """Handles blob upload, URL resolution and deletion on local disk."""

    def __init__(self, base_path: str, public_base_url: str):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        """Map a blob path onto disk, rejecting anything outside base_path."""
        segments = path.split("/")
        if not path or "\\" in path or any(seg in ("", ".", "..") for seg in segments):
            raise ValueError(f"Invalid blob path: {path!r}")
        target = self.base_path.joinpath(*segments)
        if not target.resolve().is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Invalid blob path: {path!r}")
        return target

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Write blob bytes at path, replacing any previous object."""
        target = self._resolve(path)
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        logger.info(f"Uploaded blob {path} ({len(data)} bytes, {content_type or 'unknown type'})")

    async def get_url(self, path: str) -> str:
        """Return the public URL of an existing blob."""
        target = self._resolve(path)
        if not await aiofiles.os.path.isfile(target):
            raise BlobNotFoundError(f"Blob not found: {path}")
        return f"{self.public_base_url}/{quote(path)}"

    async def delete(self, path: str) -> None:
        """Delete a blob. Raises BlobNotFoundError if nothing is stored there."""
        target = self._resolve(path)
        if not await aiofiles.os.path.isfile(target):
            raise BlobNotFoundError(f"Blob not found: {path}")
        await aiofiles.os.remove(target)
        logger.info(f"Deleted blob {path}")

    def path_for_url(self, url: Optional[str]) -> Optional[str]:
        """Return the blob path behind a URL this store issued, else None."""
        if not url:
            return None
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            return None
        path = unquote(url[len(prefix):].split("?", 1)[0])
        try:
            self._resolve(path)
        except ValueError:
            return None
        return path


blob_store = BlobStore(settings.BLOB_STORAGE_PATH, settings.BLOB_PUBLIC_BASE_URL)


def get_blob_store() -> BlobStore:
    """FastAPI dependency returning the process-wide blob store."""
    return blob_store
