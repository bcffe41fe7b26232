"""
Incremental sync cache.

Persists, per page ID, the last edited time that was rendered and the
relative path of the file it was rendered to:

    {"pages": {"<page id>": {"last_edited": "...", "output_path": "..."}}}
"""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from notion_md_gen.errors import CacheError


@dataclass
class CacheEntry:
    """Cached state of one rendered page."""

    last_edited: str
    output_path: str


@dataclass
class SyncCache:
    """
    Page ID → CacheEntry mapping.

    ``put`` and ``get`` take a lock so worker threads can record results
    concurrently.
    """

    pages: dict[str, CacheEntry] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def get(self, page_id: str) -> Optional[CacheEntry]:
        with self._lock:
            return self.pages.get(page_id)

    def put(self, page_id: str, last_edited: str, output_path: str) -> None:
        with self._lock:
            self.pages[page_id] = CacheEntry(last_edited=last_edited, output_path=output_path)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        with self._lock:
            return {
                "pages": {
                    page_id: {
                        "last_edited": entry.last_edited,
                        "output_path": entry.output_path,
                    }
                    for page_id, entry in self.pages.items()
                }
            }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncCache":
        """Create from dictionary."""
        cache = cls()
        for page_id, page_data in (data.get("pages") or {}).items():
            cache.pages[page_id] = CacheEntry(
                last_edited=page_data.get("last_edited", ""),
                output_path=page_data.get("output_path", ""),
            )
        return cache


def load_cache(path: Union[str, Path, None]) -> SyncCache:
    """
    Load the cache file.

    An empty path or a missing file gives an empty cache. A file that
    exists but cannot be parsed is an error, so corruption is never
    silently discarded.

    Raises:
        CacheError: If the file cannot be read or parsed.
    """
    if not path:
        return SyncCache()

    path = Path(path)
    if not path.exists():
        return SyncCache()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise CacheError(f"failed loading cache file {str(path)!r}: {e}") from e

    if not isinstance(data, dict):
        raise CacheError(f"failed loading cache file {str(path)!r}: expected a JSON object")

    try:
        return SyncCache.from_dict(data)
    except (AttributeError, TypeError) as e:
        raise CacheError(f"failed loading cache file {str(path)!r}: {e}") from e


def save_cache(path: Union[str, Path, None], cache: SyncCache) -> None:
    """Write the cache file, creating parent directories. No-op for an empty path."""
    if not path:
        return

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(cache.to_dict(), f, indent=2, sort_keys=True, ensure_ascii=False)


def cache_timestamp(edited_time: datetime) -> str:
    """
    Canonical UTC timestamp used for storage and comparison.

    Fractional seconds are written without trailing zeros and omitted when
    zero, e.g. ``2024-03-05T10:00:00Z`` or ``2024-03-05T10:00:00.5Z``.
    """
    if edited_time.tzinfo is None:
        edited_time = edited_time.replace(tzinfo=timezone.utc)
    utc = edited_time.astimezone(timezone.utc)

    stamp = utc.strftime("%Y-%m-%dT%H:%M:%S")
    if utc.microsecond:
        stamp += "." + f"{utc.microsecond:06d}".rstrip("0")
    return stamp + "Z"


def is_unchanged(cache: SyncCache, page_id: str, edited_time: datetime, output_file: Path) -> bool:
    """
    True if a page can be skipped by an incremental run.

    Requires a cache entry whose timestamp string equals the page's current
    one, and the previously generated file to still exist on disk.
    """
    entry = cache.get(page_id)
    if entry is None:
        return False
    if entry.last_edited != cache_timestamp(edited_time):
        return False
    return Path(output_file).exists()
