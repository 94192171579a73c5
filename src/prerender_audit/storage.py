"""
Blob storage layer used for snapshots and status documents.

Provides an abstract interface for object stores, a filesystem-backed
implementation, and the key conventions shared by the scraper and the audit.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from pathlib import Path
from urllib.parse import urlparse

SERVER_SIDE_HTML = "server-side.html"
CLIENT_SIDE_HTML = "client-side.html"
SCRAPE_JSON = "scrape.json"
STATUS_JSON = "status.json"


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class StorageFetchError(StorageError):
    """Exception raised when an object cannot be read or a prefix cannot be listed."""

    pass


class BlobStore(ABC):
    """
    Abstract interface for object storage backends.

    Implementations return ``None`` for missing keys and raise
    :class:`StorageError` for everything else that goes wrong.
    """

    @abstractmethod
    async def get(self, bucket: str, key: str) -> bytes | None:
        """
        Read an object.

        Args:
            bucket: Bucket name
            key: Object key

        Returns:
            Object body, or None if the key does not exist
        """
        pass

    @abstractmethod
    async def put(
        self, bucket: str, key: str, body: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        """Write an object, replacing any previous version."""
        pass

    @abstractmethod
    async def list(self, bucket: str, prefix: str) -> list[str]:
        """
        List keys under a prefix.

        Args:
            bucket: Bucket name
            prefix: Key prefix

        Returns:
            Keys starting with ``prefix``
        """
        pass


class FileBlobStore(BlobStore):
    """
    Filesystem-backed blob store.

    Each bucket is a directory under ``root`` and each key a relative path
    inside it. Blocking file IO runs in a worker thread.
    """

    def __init__(self, root: str = "."):
        """
        Initialize file storage.

        Args:
            root: Directory holding one sub-directory per bucket
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / key.lstrip("/")

    async def get(self, bucket: str, key: str) -> bytes | None:
        path = self._path(bucket, key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageFetchError(f"Failed to read {bucket}/{key}: {e}") from e

    async def put(
        self, bucket: str, key: str, body: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        path = self._path(bucket, key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write {bucket}/{key}: {e}") from e

    async def list(self, bucket: str, prefix: str) -> list[str]:
        bucket_dir = self.root / bucket

        def _walk() -> list[str]:
            if not bucket_dir.is_dir():
                return []
            keys = []
            for path in bucket_dir.rglob("*"):
                if path.is_file():
                    key = path.relative_to(bucket_dir).as_posix()
                    if key.startswith(prefix):
                        keys.append(key)
            return sorted(keys)

        try:
            return await asyncio.to_thread(_walk)
        except OSError as e:
            raise StorageFetchError(f"Failed to list {bucket}/{prefix}: {e}") from e


def sanitize_path(path: str) -> str:
    """
    Turn a URL path into a single key segment.

    ``/blog/my_post.html/`` becomes ``blog-my-post-html``; the root path
    becomes an empty string.
    """
    path = re.sub(r"^/+|/+$", "", path)
    path = re.sub(r"[/._]", "-", path)
    path = re.sub(r"-+", "-", path)
    return re.sub(r"^-|-$", "", path)


def snapshot_key(url: str, storage_id: str, file_name: str, storage_prefix: str = "prerender") -> str:
    """
    Build the key of a scraped artifact for a URL.

    Args:
        url: Page URL
        storage_id: Scrape job id or site id the artifacts were stored under
        file_name: One of ``server-side.html``, ``client-side.html``, ``scrape.json``
        storage_prefix: Top-level prefix of the audit

    Returns:
        ``{storage_prefix}/scrapes/{storage_id}[/{sanitized path}]/{file_name}``
    """
    segment = sanitize_path(urlparse(url).path)
    path_part = f"/{segment}" if segment else ""
    return f"{storage_prefix}/scrapes/{storage_id}{path_part}/{file_name}"


def status_key(site_id: str, storage_prefix: str = "prerender") -> str:
    """Key of the status document for a site."""
    return f"{storage_prefix}/scrapes/{site_id}/{STATUS_JSON}"
