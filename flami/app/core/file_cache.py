"""File content cache.

Memoizes file bytes by absolute path for the lifetime of the process.
Read failures are never cached: a file that is missing now is looked for
again on the next request, so assets added after startup are picked up.

There is no size bound, TTL or invalidation. A file that changes on disk
after it has been cached keeps being served with its old content until the
server restarts.
"""

import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except OSError as e:
        logger.debug(f"File read failed for {path}: {e}")
        return None


class FileCache:
    """In-memory cache of file contents.

    Entries are immutable once written. Two concurrent misses for the same
    path may both read the file; the second write replaces the first with
    identical bytes, so no lock is taken around the read.
    """

    def __init__(self) -> None:
        self._data: dict[Path, bytes] = {}
        self._hits = 0
        self._misses = 0

    async def get(self, path: Path | str) -> bytes | None:
        """Return the bytes of ``path``, reading it on first use.

        Args:
            path: Absolute file path.

        Returns:
            The file content, or None if it could not be read.
        """
        key = Path(path)
        content = self._data.get(key)
        if content is not None:
            self._hits += 1
            return content

        self._misses += 1
        loop = asyncio.get_running_loop()
        content = await loop.run_in_executor(None, _read_bytes, key)
        if content is not None:
            self._data[key] = content
        return content

    def __contains__(self, path: Path | str) -> bool:
        return Path(path) in self._data

    def __len__(self) -> int:
        return len(self._data)

    def stats(self) -> dict[str, int]:
        """Get cache statistics."""
        return {
            "entries": len(self._data),
            "hits": self._hits,
            "misses": self._misses,
        }
