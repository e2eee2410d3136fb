"""Replay of queued scans once the station is back online."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .client import ScanSubmitter, SubmissionError
from .connectivity import ConnectivityMonitor
from .queue_store import PersistentQueueStore
from .records import ScanRecord

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    """What one sync pass did with the queue it was given."""

    attempted: int
    delivered: int
    remaining: List[ScanRecord] = field(default_factory=list)
    failures: List[Tuple[ScanRecord, SubmissionError]] = field(default_factory=list)


class SyncCoordinator:
    """Drain the offline queue in FIFO order through the submitter.

    One failing entry never blocks the rest: every entry is tried once per
    pass and the failed ones are kept, in order, for the next pass.
    """

    def __init__(
        self,
        store: PersistentQueueStore,
        submitter: ScanSubmitter,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._store = store
        self._submitter = submitter
        self._logger = logger or LOGGER
        self._task: Optional[asyncio.Task[SyncReport]] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def current_pass(self) -> Optional[asyncio.Task[SyncReport]]:
        return self._task if self.in_flight else None

    async def sync(self, entries: Sequence[ScanRecord]) -> SyncReport:
        remaining: List[ScanRecord] = []
        failures: List[Tuple[ScanRecord, SubmissionError]] = []
        for record in entries:
            try:
                await self._submitter.submit(record)
            except SubmissionError as exc:
                self._logger.debug("Queued scan %r not delivered: %s", record.raw_payload, exc)
                remaining.append(record)
                failures.append((record, exc))
        return SyncReport(
            attempted=len(entries),
            delivered=len(entries) - len(remaining),
            remaining=remaining,
            failures=failures,
        )

    async def drain(self) -> SyncReport:
        """Run one pass over the stored queue and persist what is left."""
        if self.in_flight and self._task is not asyncio.current_task():
            return await asyncio.shield(self._task)
        snapshot = self._store.entries()
        report = await self.sync(snapshot)
        # Scans queued while the pass was running go after the leftovers.
        appended = self._store.entries()[len(snapshot):]
        self._store.replace(report.remaining + appended)
        self._logger.info(
            "Sync pass: %d sent, %d still pending", report.delivered, len(self._store)
        )
        return report

    def request_sync(self) -> Optional[asyncio.Task[SyncReport]]:
        """Start a background pass unless one is running or nothing is queued."""
        if self.in_flight or not len(self._store):
            return None
        self._task = asyncio.get_running_loop().create_task(self.drain())
        return self._task

    def attach(self, monitor: ConnectivityMonitor) -> None:
        self.detach()
        self._unsubscribe = monitor.subscribe(self._on_connectivity)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def wait_idle(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def _on_connectivity(self, online: bool) -> None:
        if online:
            self.request_sync()
