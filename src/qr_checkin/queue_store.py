"""Durable, ordered store of scans waiting for delivery."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .records import ScanRecord

LOGGER = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Queue state could not be read from or written to durable storage."""


class QueueStorage(Protocol):
    """Where the queue snapshot lives between runs."""

    def load(self) -> Optional[List[Dict[str, Any]]]:
        """Return the stored snapshot, or ``None`` when nothing was ever saved."""

    def save(self, entries: List[Dict[str, Any]]) -> None:
        """Overwrite the stored snapshot with ``entries``."""


class JsonFileStorage:
    """Keep the queue as a JSON array in a single file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[List[Dict[str, Any]]]:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self._set_aside()
            raise PersistenceError(f"Unreadable queue file {self._path}: {exc}") from exc
        if not isinstance(payload, list):
            self._set_aside()
            raise PersistenceError(f"Queue file {self._path} must hold a JSON array")
        return payload

    def save(self, entries: List[Dict[str, Any]]) -> None:
        # Write a sibling then swap it in so readers never see a partial file.
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            if self._path.parent and not self._path.parent.exists():
                self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(entries, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise PersistenceError(f"Could not write queue file {self._path}: {exc}") from exc

    def _set_aside(self) -> None:
        target = self._path.with_name(self._path.name + ".corrupt")
        try:
            os.replace(self._path, target)
        except OSError as exc:
            LOGGER.warning("Could not move corrupt queue file aside: %s", exc)
        else:
            LOGGER.warning("Moved unreadable queue file to %s", target)


class MemoryStorage:
    """Process-local storage, for tests and stations run with --memory-queue."""

    def __init__(self, entries: Optional[List[Dict[str, Any]]] = None) -> None:
        self._entries = None if entries is None else [dict(e) for e in entries]
        self.saves = 0

    def load(self) -> Optional[List[Dict[str, Any]]]:
        if self._entries is None:
            return None
        return [dict(e) for e in self._entries]

    def save(self, entries: List[Dict[str, Any]]) -> None:
        self._entries = [dict(e) for e in entries]
        self.saves += 1


class PersistentQueueStore:
    """FIFO of undelivered scans, persisted as a full snapshot on every change.

    If the storage backend fails, entries stay in memory and the store
    reports ``degraded`` until a later write succeeds.
    """

    def __init__(
        self,
        storage: QueueStorage,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._storage = storage
        self._entries: List[ScanRecord] = []
        self._degraded = False
        self._logger = logger or LOGGER

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def degraded(self) -> bool:
        return self._degraded

    def load(self) -> List[ScanRecord]:
        try:
            stored = self._storage.load()
        except PersistenceError as exc:
            self._logger.error("Starting with an empty offline queue: %s", exc)
            stored = None
        entries: List[ScanRecord] = []
        for item in stored or []:
            try:
                entries.append(ScanRecord.from_wire(item))
            except (TypeError, ValueError) as exc:
                self._logger.warning("Dropping unreadable queued scan %r: %s", item, exc)
        self._entries = entries
        if entries:
            self._logger.info("Loaded %d pending scan(s) from storage", len(entries))
        return list(entries)

    def entries(self) -> List[ScanRecord]:
        return list(self._entries)

    def enqueue(self, record: ScanRecord) -> None:
        self._entries.append(record)
        self._persist()

    def replace(self, records: Sequence[ScanRecord]) -> None:
        self._entries = list(records)
        self._persist()

    def _persist(self) -> None:
        snapshot = [record.to_wire() for record in self._entries]
        try:
            self._storage.save(snapshot)
        except PersistenceError as exc:
            if not self._degraded:
                self._logger.error("Offline queue kept in memory only: %s", exc)
            self._degraded = True
            return
        if self._degraded:
            self._logger.info("Offline queue persisted again (%d entries)", len(snapshot))
        self._degraded = False
