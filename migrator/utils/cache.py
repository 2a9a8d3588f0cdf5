"""JSON file cache for expensive upstream fetches."""

from __future__ import annotations

import json
import logging
import pathlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from migrator.utils.dates import describe_age, now_ms

logger = logging.getLogger(__name__)

CACHE_DIR = pathlib.Path("cache")
CACHE_FORMAT_VERSION = "1.0.0"


@dataclass(slots=True)
class CacheInfo:
    exists: bool
    age_ms: int | None = None
    size_bytes: int | None = None


class CacheStore:
    """One ``<key>.json`` file per entry holding ``{data, timestamp, version}``.

    The cache only saves re-fetching. Writes that fail are logged and dropped,
    and unreadable entries load as ``None``, so every caller needs a miss path.
    """

    def __init__(self, path: pathlib.Path | str = CACHE_DIR, *, clock: Callable[[], int] = now_ms) -> None:
        self.path = pathlib.Path(path)
        self._clock = clock
        if not self.path.exists():
            self.path.mkdir(parents=True, exist_ok=True)
            logger.info("Created cache directory %s", self.path)

    def _entry_path(self, key: str) -> pathlib.Path:
        return self.path / f"{key}.json"

    def save(self, key: str, data: Any) -> None:
        entry = {"data": data, "timestamp": self._clock(), "version": CACHE_FORMAT_VERSION}
        target = self._entry_path(key)
        tmp = target.with_suffix(".json.tmp")
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(entry, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(target)
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to save cache entry %s: %s", key, exc)
            tmp.unlink(missing_ok=True)
            return
        logger.info("Saved cache entry %s", key)

    def load(self, key: str, max_age: float | None = None) -> Any | None:
        """Return the cached payload, or ``None`` if missing, corrupt or older than ``max_age`` seconds."""
        target = self._entry_path(key)
        if not target.exists():
            logger.debug("No cache entry for %s", key)
            return None
        try:
            entry = json.loads(target.read_text(encoding="utf-8"))
            age = self._clock() - int(entry["timestamp"])
            data = entry["data"]
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.error("Failed to read cache entry %s: %s", key, exc)
            return None
        if max_age is not None and age > max_age * 1000:
            logger.info("Cache entry %s expired (%s old)", key, describe_age(age))
            return None
        logger.info("Loaded cache entry %s (%s old)", key, describe_age(age))
        return data

    def delete(self, key: str) -> None:
        target = self._entry_path(key)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to delete cache entry %s: %s", key, exc)
            return
        logger.info("Deleted cache entry %s", key)

    def clear(self) -> int:
        removed = 0
        if not self.path.exists():
            return removed
        for entry in self.path.glob("*.json"):
            try:
                entry.unlink(missing_ok=True)
            except OSError as exc:
                logger.error("Failed to delete cache file %s: %s", entry, exc)
                continue
            removed += 1
        logger.info("Cleared %s cache entries", removed)
        return removed

    def get_info(self, key: str) -> CacheInfo:
        target = self._entry_path(key)
        try:
            size = target.stat().st_size
        except FileNotFoundError:
            return CacheInfo(exists=False)
        try:
            timestamp = int(json.loads(target.read_text(encoding="utf-8"))["timestamp"])
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Cache entry %s is unreadable: %s", key, exc)
            return CacheInfo(exists=True, size_bytes=size)
        return CacheInfo(exists=True, age_ms=self._clock() - timestamp, size_bytes=size)
