"""Durable file storage for generated media."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Optional, Protocol

from .config import FileStoreConfig

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
}


def extension_for(mime_type: str) -> str:
    mime_type = mime_type.split(";")[0].strip().lower()
    return _EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type) or ""


class FileStore(Protocol):
    """Collaborator that turns raw bytes into a durable URL."""

    async def put(self, data: bytes, mime_type: str, name: Optional[str] = None) -> str:
        """Store ``data`` and return its URL."""

    def owns(self, url: str) -> bool:
        """``True`` when ``url`` was produced by this store."""

    def local_path(self, url: str) -> Optional[Path]:
        """Return the on-disk path for a URL this store owns, if any."""

    def absolute_url(self, url: str) -> str:
        """Return a URL reachable from outside the process."""


class LocalFileStore(FileStore):
    """Store files in a local directory served under ``public_prefix``."""

    def __init__(
        self,
        root: str | Path,
        public_prefix: str = "/uploads/",
        public_base_url: str = "http://localhost:3000",
    ) -> None:
        self.root = Path(root)
        self.public_prefix = public_prefix if public_prefix.endswith("/") else public_prefix + "/"
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_config(cls, config: FileStoreConfig) -> "LocalFileStore":
        return cls(config.root, config.public_prefix, config.public_base_url)

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def put(self, data: bytes, mime_type: str, name: Optional[str] = None) -> str:
        file_name = name or f"{uuid.uuid4().hex}{extension_for(mime_type)}"
        path = self.root / file_name
        await asyncio.to_thread(self._write, path, data)
        logger.debug(f"Stored {len(data)} bytes as {path}")
        return f"{self.public_prefix}{file_name}"

    def owns(self, url: str) -> bool:
        return url.startswith(self.public_prefix)

    def local_path(self, url: str) -> Optional[Path]:
        if not self.owns(url):
            return None
        root = self.root.resolve()
        path = (root / url[len(self.public_prefix):]).resolve()
        if not path.is_relative_to(root):
            logger.warning(f"Rejected file URL outside the store: {url}")
            return None
        return path if path.is_file() else None

    def absolute_url(self, url: str) -> str:
        if self.owns(url):
            return f"{self.public_base_url}{url}"
        return url
