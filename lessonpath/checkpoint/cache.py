"""
Best-effort checkpoint cache.

A plain string key-value store scoped to one learner session. Cached
checkpoints make reloads stable: the same section shows the same question
without another tutor call. Nothing here ever raises to the caller; a
missing, unreadable or corrupt cache simply means "regenerate".
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from loguru import logger
from pydantic import ValidationError

from lessonpath.generation.payload import CheckpointIntent, CheckpointPayload

CACHE_KEY_PREFIX = "checkpoint_v2"


class CheckpointCache(Protocol):
    """String key-value store."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryCache:
    """In-process cache; lives as long as the session object."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class JsonFileCache:
    """
    Cache persisted as a single JSON object on disk.

    Survives a CLI restart within the same working session. Read and write
    failures are logged and otherwise ignored.
    """

    def __init__(self, path: Path):
        self.path = path
        self._data: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._data is None:
            self._data = {}
            if self.path.exists():
                try:
                    raw = json.loads(self.path.read_text(encoding="utf-8"))
                    if isinstance(raw, dict):
                        self._data = {str(k): v for k, v in raw.items() if isinstance(v, str)}
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Ignoring unreadable checkpoint cache {self.path}: {e}")
        return self._data

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not write checkpoint cache {self.path}: {e}")


@dataclass(frozen=True)
class CacheEntry:
    payload: CheckpointPayload
    intent: CheckpointIntent

    def to_json(self) -> str:
        return json.dumps({"payload": self.payload.to_dict(), "intent": self.intent.value}, ensure_ascii=False)


def cache_key(lesson_id: int | None, section_index: int, intent: CheckpointIntent) -> str:
    lid = lesson_id if lesson_id is not None else "unknown"
    return f"{CACHE_KEY_PREFIX}:{lid}:{section_index}:{intent.value}"


def read_entry(cache: CheckpointCache | None, key: str) -> CacheEntry | None:
    """Read and decode an entry; any failure reads as a miss."""
    if cache is None:
        return None
    try:
        raw = cache.get(key)
    except Exception as e:
        logger.warning(f"Checkpoint cache read failed for {key}: {e}")
        return None
    if not raw:
        return None
    try:
        data = json.loads(raw)
        return CacheEntry(
            payload=CheckpointPayload.model_validate(data["payload"]),
            intent=CheckpointIntent(data["intent"]),
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError) as e:
        logger.debug(f"Discarding corrupt cache entry {key}: {e}")
        return None


def write_entry(cache: CheckpointCache | None, key: str, entry: CacheEntry) -> None:
    if cache is None:
        return
    try:
        cache.set(key, entry.to_json())
    except Exception as e:
        logger.warning(f"Checkpoint cache write failed for {key}: {e}")
