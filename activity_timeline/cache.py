"""Explicit key -> {value, stored_at} caches with manual invalidation.

Two flavours share one small interface (``get``/``set``/``invalidate``/``clear``):

- ``MemoryCache``: in-process, used for per-user place inference results.
- ``JsonDiskCache``: a JSON snapshot plus an append-only journal, used for
  external place-name lookups so results survive between runs.

Both take an optional TTL and an injectable clock (epoch ms) so tests never sleep.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[V]):
    value: V
    stored_at_ms: int


class MemoryCache(Generic[V]):
    """In-memory cache. ``ttl_ms=None`` means entries live until invalidated."""

    def __init__(self, ttl_ms: int | None = None, clock: Clock = wall_clock_ms) -> None:
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._data: dict[str, CacheEntry[V]] = {}

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> V | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if self._ttl_ms is not None and self._clock() - entry.stored_at_ms > self._ttl_ms:
            del self._data[key]
            return None
        return entry.value

    def set(self, key: str, value: V) -> None:
        self._data[key] = CacheEntry(value=value, stored_at_ms=self._clock())

    def invalidate(self, key: str) -> bool:
        """Drop one key. Returns True if something was removed."""

        return self._data.pop(key, None) is not None

    def clear(self) -> None:
        self._data.clear()


class JsonDiskCache:
    """A JSON cache persisted on disk (key -> JSON object), with a write-ahead journal.

    Entries are stored as ``{"v": value, "t": stored_at_ms}``. ``set`` appends
    to ``<stem>.journal.jsonl`` immediately; ``flush`` writes the full snapshot
    and clears the journal. On load the journal is replayed over the snapshot,
    so a crash between flushes loses nothing that was already journaled.
    """

    def __init__(
        self,
        path: str | Path,
        ttl_ms: int | None = None,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self._path = Path(path)
        # Example: place_names.json -> place_names.journal.jsonl
        self._journal_path = self._path.with_name(f"{self._path.stem}.journal.jsonl")
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._data: dict[str, dict[str, Any]] = {}
        self._loaded = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def journal_path(self) -> Path:
        return self._journal_path

    def load(self) -> None:
        """Load cache from disk (no-op if file does not exist or is already loaded)."""

        if self._loaded:
            return
        self._data = {}
        if self._path.exists():
            text = self._path.read_text(encoding="utf-8").strip()
            if text:
                try:
                    raw = json.loads(text)
                except json.JSONDecodeError:
                    # Snapshot corrupted: keep a backup and start fresh
                    backup = self._path.with_suffix(self._path.suffix + ".broken")
                    backup.write_text(text, encoding="utf-8")
                    logger.warning("Cache file %s is corrupted; moved to %s", self._path, backup)
                    raw = {}
                if isinstance(raw, dict):
                    self._data = {k: v for k, v in raw.items() if isinstance(v, dict) and "v" in v}

        self._replay_journal()
        self._loaded = True

    def get(self, key: str) -> Any | None:
        self.load()
        entry = self._data.get(key)
        if entry is None:
            return None
        if self._ttl_ms is not None and self._clock() - int(entry.get("t", 0)) > self._ttl_ms:
            return None
        return entry["v"]

    def set(self, key: str, value: Any) -> None:
        self.load()
        entry = {"v": value, "t": self._clock()}
        self._data[key] = entry
        self._append_journal(key, entry)

    def invalidate(self, key: str) -> bool:
        self.load()
        removed = self._data.pop(key, None) is not None
        if removed:
            self._append_journal(key, None)
        return removed

    def clear(self) -> None:
        self._data = {}
        self._loaded = True
        self.flush()

    def flush(self) -> None:
        """Persist the full snapshot to disk and clear the journal."""

        self.load()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self._path)
        self._clear_journal()

    def _append_journal(self, key: str, entry: dict[str, Any] | None) -> None:
        self._journal_path.parent.mkdir(parents=True, exist_ok=True)
        record = {"k": key, "e": entry}
        with self._journal_path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    def _replay_journal(self) -> None:
        if not self._journal_path.exists():
            return
        try:
            with self._journal_path.open("r", encoding="utf-8") as f:
                for line in f:
                    s = line.strip()
                    if not s:
                        continue
                    try:
                        rec = json.loads(s)
                    except json.JSONDecodeError:
                        # broken tail line
                        continue
                    k = rec.get("k")
                    e = rec.get("e")
                    if not isinstance(k, str):
                        continue
                    if e is None:
                        self._data.pop(k, None)
                    elif isinstance(e, dict) and "v" in e:
                        self._data[k] = e
        except OSError as exc:
            logger.warning("Cannot read cache journal %s: %s", self._journal_path, exc)

    def _clear_journal(self) -> None:
        try:
            if self._journal_path.exists():
                self._journal_path.unlink()
        except OSError as exc:
            logger.warning("Cannot remove cache journal %s: %s", self._journal_path, exc)
