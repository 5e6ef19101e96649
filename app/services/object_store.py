"""Path-addressed blob storage for photo variants."""
import logging
import os
from typing import Protocol

from app.config import settings

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    def put(self, data: bytes, path: str) -> str:
        """Store ``data`` under ``path`` and return its public URL."""

    def delete(self, path: str) -> None:
        """Remove ``path``; missing paths are ignored."""

    def path_for_url(self, url: str) -> str | None:
        """Map a URL returned by ``put`` back to its storage path."""


class LocalObjectStore:
    """Stores blobs on the local filesystem and serves them under a URL prefix."""

    def __init__(self, root: str, url_prefix: str = "/uploads"):
        self.root = os.path.abspath(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _resolve(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path.lstrip("/")))
        if os.path.commonpath([full, self.root]) != self.root:
            raise ValueError(f"path escapes storage root: {path}")
        return full

    def put(self, data: bytes, path: str) -> str:
        full = self._resolve(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        tmp = f"{full}.part"
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, full)
        return f"{self.url_prefix}/{path.lstrip('/')}"

    def delete(self, path: str) -> None:
        try:
            os.remove(self._resolve(path))
        except FileNotFoundError:
            logger.debug("Blob already gone: %s", path)

    def path_for_url(self, url: str) -> str | None:
        prefix = f"{self.url_prefix}/"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):]

    def local_file(self, path: str) -> str:
        return self._resolve(path)


def get_object_store() -> LocalObjectStore:
    return LocalObjectStore(os.path.join(settings.data_dir, "uploads"), settings.uploads_url_prefix)
