"""
Media Cache Store
================

Directory-per-post on-disk store for downloaded media.

Layout: ``<root>/<source_id>/<post_key>/image.<ext>``. A post directory
holds at most one file; whichever non-empty file is present is the stored
item, so repeated or racing stores for the same post never duplicate it.
"""

import asyncio
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..ingestion.feed_source import HttpClient
from ..recovery.retry_logic import RetryConfig, RetryManager
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DownloadFailedError, ErrorCode, TransientFetchError

# URL prefix under which stored media is served
PUBLIC_PREFIX = "images"

DEFAULT_MIME_TYPE = "image/jpeg"

MIME_SIGNATURES = (
    ("image/jpeg", b"\xff\xd8\xff"),
    ("image/png", b"\x89PNG"),
    ("image/gif", b"GIF8"),
    ("image/webp", b"RIFF"),
)

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def detect_mime_type(data: bytes) -> str:
    """Infer an image MIME type from the leading bytes; JPEG when nothing matches."""
    for mime_type, signature in MIME_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    return DEFAULT_MIME_TYPE


def extension_for(mime_type: str) -> str:
    return MIME_EXTENSIONS.get(mime_type, ".jpg")


def is_safe_component(name: str) -> bool:
    """True when ``name`` can be used as one path segment inside the store."""
    return bool(name) and name not in (".", "..") and not any(
        c in name for c in ("/", "\\", "\x00")
    )


@dataclass(frozen=True)
class MediaItem:
    """Metadata of one stored media file."""

    path: Path
    filename: str
    size: int
    mime_type: str
    relative_path: str


class MediaStore:
    """Content-addressed store keyed by (source identifier, post ordering key)."""

    def __init__(
        self,
        root_dir: str,
        http_client: HttpClient,
        retry_manager: Optional[RetryManager] = None,
        download_timeout: float = 30,
    ):
        self.root_dir = Path(root_dir)
        self.http_client = http_client
        self.retry_manager = retry_manager or RetryManager(
            RetryConfig(max_attempts=3, base_delay=2.0), component="media_store"
        )
        self.download_timeout = download_timeout
        self.logger = get_logger_for_component("media_store")
        self._locks: Dict[Tuple[str, int], asyncio.Lock] = {}

    def lock_for(self, source_id: str, post_key: int) -> asyncio.Lock:
        key = (source_id, post_key)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _post_dir(self, source_id: str, post_key: int) -> Path:
        if not is_safe_component(source_id):
            raise ValueError(f"Unsafe source identifier for media store: {source_id!r}")
        return self.root_dir / source_id / str(post_key)

    @staticmethod
    def _relative_path(source_id: str, post_key: int, filename: str) -> str:
        return "/".join((PUBLIC_PREFIX, source_id, str(post_key), filename))

    def _load_existing(self, source_id: str, post_key: int) -> Optional[MediaItem]:
        post_dir = self._post_dir(source_id, post_key)
        if not post_dir.is_dir():
            return None

        for candidate in sorted(post_dir.iterdir()):
            if not candidate.is_file():
                continue
            if candidate.stat().st_size == 0:
                # Leftover of an interrupted write; not a valid item
                self.logger.warning(f"Removing empty media file {candidate}")
                candidate.unlink(missing_ok=True)
                continue

            data = candidate.read_bytes()
            return MediaItem(
                path=candidate,
                filename=candidate.name,
                size=len(data),
                mime_type=detect_mime_type(data),
                relative_path=self._relative_path(source_id, post_key, candidate.name),
            )

        return None

    def _write_item(self, source_id: str, post_key: int, data: bytes) -> MediaItem:
        post_dir = self._post_dir(source_id, post_key)
        post_dir.mkdir(parents=True, exist_ok=True)

        existing = self._load_existing(source_id, post_key)
        if existing is not None:
            return existing

        mime_type = detect_mime_type(data)
        filename = f"image{extension_for(mime_type)}"
        target = post_dir / filename

        # Stage next to the post directory so it never holds a partial file
        fd, tmp_name = tempfile.mkstemp(dir=post_dir.parent, prefix=".download-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        return MediaItem(
            path=target,
            filename=filename,
            size=len(data),
            mime_type=mime_type,
            relative_path=self._relative_path(source_id, post_key, filename),
        )

    async def ensure(self, source_id: str, post_key: int) -> Optional[MediaItem]:
        """Return the already stored item for a post, without network access."""
        return await asyncio.to_thread(self._load_existing, source_id, post_key)

    async def _download(self, url: str) -> bytes:
        data = await self.http_client.get_bytes(url, timeout=self.download_timeout)
        if not data:
            raise TransientFetchError(
                f"Empty response body for {url}",
                url=url,
                error_code=ErrorCode.MEDIA_FETCH_FAILED,
            )
        return data

    async def store(self, source_id: str, post_key: int, url: str) -> MediaItem:
        """Download and persist the media of a post, unless it is already stored.

        Stores for the same post are serialized, so the first one to finish
        decides the item and later callers get it back unchanged.

        Raises:
            DownloadFailedError: when every download attempt failed
        """
        async with self.lock_for(source_id, post_key):
            return await self._store_locked(source_id, post_key, url)

    async def _store_locked(self, source_id: str, post_key: int, url: str) -> MediaItem:
        existing = await self.ensure(source_id, post_key)
        if existing is not None:
            return existing

        try:
            data = await self.retry_manager.retry_async(
                self._download, url, operation=f"media download {url}"
            )
        except Exception as e:
            raise DownloadFailedError(
                f"Failed to download media after retries: {e}",
                source_id=source_id,
                post_key=post_key,
                url=url,
            ) from e

        item = await asyncio.to_thread(self._write_item, source_id, post_key, data)
        self.logger.debug(
            f"Stored {item.relative_path} ({item.size} bytes, {item.mime_type})",
            extra={"source_id": source_id},
        )
        return item

    async def read(self, source_id: str, post_key: str, filename: str) -> Optional[Tuple[bytes, str]]:
        """Bytes and detected MIME type of a stored file, or None if absent."""
        if not all(is_safe_component(part) for part in (source_id, post_key, filename)):
            return None

        path = self.root_dir / source_id / post_key / filename

        def _read() -> Optional[bytes]:
            try:
                return path.read_bytes()
            except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
                return None

        data = await asyncio.to_thread(_read)
        if data is None:
            return None
        return data, detect_mime_type(data)
