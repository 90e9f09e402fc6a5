# registry.py
"""Tracked anime and their last seen episode, mirrored to a JSON file."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

from .errors import CorruptStateError, PersistenceError
from .models import TrackedItem

LOGGER = logging.getLogger(__name__)

# 작업 디렉터리의 animes.json을 기본으로 사용
STATE_PATH = Path("animes.json")


class Registry:
    """Process-wide mapping of anime id -> TrackedItem.

    Writers in this process are serialized by one lock. Writers in other
    processes (the ``add`` command next to a running poller) are serialized
    by an flock on ``<path>.lock``: every save re-reads the file under that
    lock and only overwrites the entries changed here, so an entry written
    by another process is never dropped.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else STATE_PATH
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._items: Dict[int, TrackedItem] = {}
        self._dirty: Set[int] = set()
        self._lock = threading.RLock()

    def load(self) -> "Registry":
        """Read the state file, replacing whatever is held in memory."""
        items = self._read_file()
        with self._lock:
            self._items = items
            self._dirty.clear()
        LOGGER.info("Loaded %d tracked anime from %s", len(items), self.path)
        return self

    def refresh(self) -> None:
        """Pick up entries written by other processes, keeping unsaved changes."""
        with self._lock:
            items = self._read_file()
            for item_id in self._dirty:
                items[item_id] = self._items[item_id]
            self._items = items

    def save(self) -> None:
        """Merge unsaved changes into the file and rewrite it atomically."""
        with self._lock, self._file_lock():
            try:
                merged = self._read_file()
            except CorruptStateError as exc:
                raise PersistenceError(f"Refusing to overwrite {self.path}: {exc}") from exc
            for item_id in self._dirty:
                merged[item_id] = self._items[item_id]

            data = {str(item_id): item.to_dict() for item_id, item in merged.items()}
            tmp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
            try:
                tmp_path.write_text(
                    json.dumps(data, ensure_ascii=False, indent=2),
                    encoding="utf-8",
                )
                os.replace(tmp_path, self.path)
            except OSError as exc:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
                raise PersistenceError(f"Failed to write {self.path}: {exc}") from exc

            self._items = merged
            self._dirty.clear()
        LOGGER.debug("Saved %d tracked anime to %s", len(data), self.path)

    def get(self, item_id: int) -> Optional[TrackedItem]:
        with self._lock:
            return self._items.get(int(item_id))

    def set(self, item_id: int, item: TrackedItem) -> None:
        with self._lock:
            self._items[int(item_id)] = item
            self._dirty.add(int(item_id))

    def has(self, item_id: int) -> bool:
        with self._lock:
            return int(item_id) in self._items

    def keys(self) -> List[int]:
        """Snapshot of the tracked ids, safe to iterate while others write."""
        with self._lock:
            return list(self._items)

    def store(self, item: TrackedItem) -> None:
        """Set ``item`` and persist the registry as one serialized step.

        If the save fails the in-memory entry is kept (and retried by the
        next save) and PersistenceError propagates to the caller.
        """
        with self._lock:
            self.set(item.id, item)
            self.save()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @contextlib.contextmanager
    def _file_lock(self) -> Iterator[None]:
        import fcntl

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(self.lock_path, "w")
        except OSError as exc:
            raise PersistenceError(f"Cannot open lock file {self.lock_path}: {exc}") from exc
        with lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_file(self) -> Dict[int, TrackedItem]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            LOGGER.info("%s not found, starting with an empty registry", self.path)
            return {}
        except UnicodeDecodeError as exc:
            raise CorruptStateError(f"{self.path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise CorruptStateError(f"Cannot read {self.path}: {exc}") from exc
        return _parse_document(raw, self.path)


def _parse_document(raw: str, path: Path) -> Dict[int, TrackedItem]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CorruptStateError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise CorruptStateError(f"{path} must contain a JSON object")

    items: Dict[int, TrackedItem] = {}
    for key, value in data.items():
        try:
            item_id = int(key)
        except ValueError as exc:
            raise CorruptStateError(f"{path}: invalid anime id {key!r}") from exc

        if not isinstance(value, dict):
            raise CorruptStateError(f"{path}: entry {key} must be an object")

        last_id = value.get("lastEpisodeId")
        # bool은 int의 하위 클래스라 따로 걸러냄
        if last_id is not None and (isinstance(last_id, bool) or not isinstance(last_id, int)):
            raise CorruptStateError(f"{path}: entry {key} has invalid lastEpisodeId {last_id!r}")

        items[item_id] = TrackedItem.from_dict(item_id, value)
    return items
