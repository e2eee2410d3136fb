"""Scan lifecycle of the station: idle, scanning, showing a result.

The controller owns every transition so it can be driven and tested without
any rendering layer. A decode moves SCANNING to RESULT once the scan has been
submitted or queued; RESULT returns to SCANNING on its own after a fixed
delay. There is no way from RESULT straight back to IDLE.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Sequence, Tuple

from .client import ScanSubmitter, SubmissionError
from .connectivity import ConnectivityMonitor
from .payload import build_record
from .queue_store import PersistentQueueStore
from .records import Counters, ScanOutcome

LOGGER = logging.getLogger(__name__)

RESUME_DELAY_SECONDS = 3.0
OFFLINE_MESSAGE = "Saved offline - will sync when the connection returns"
FAILURE_PREFIX = "Could not process QR: "


class ScanState(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    RESULT = "result"


class InvalidTransition(RuntimeError):
    def __init__(self, state: ScanState, action: str) -> None:
        super().__init__(f"Cannot {action} while {state.value}")
        self.state = state
        self.action = action


TRANSITIONS: Dict[Tuple[ScanState, str], ScanState] = {
    (ScanState.IDLE, "start"): ScanState.SCANNING,
    (ScanState.SCANNING, "stop"): ScanState.IDLE,
    (ScanState.SCANNING, "decode"): ScanState.RESULT,
    (ScanState.RESULT, "resume"): ScanState.SCANNING,
}


@dataclass(frozen=True)
class StationView:
    """Everything a renderer needs to draw the station."""

    state: ScanState
    outcome: Optional[ScanOutcome]
    counters: Dict[str, int]
    pending: int
    online: bool
    degraded: bool


class LifecycleController:
    def __init__(
        self,
        submitter: ScanSubmitter,
        store: PersistentQueueStore,
        monitor: ConnectivityMonitor,
        *,
        resume_delay: float = RESUME_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_change: Optional[Callable[[StationView], None]] = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._submitter = submitter
        self._store = store
        self._monitor = monitor
        self._resume_delay = resume_delay
        self._sleep = sleep
        self._on_change = on_change
        self._logger = logger or LOGGER
        self._state = ScanState.IDLE
        self._outcome: Optional[ScanOutcome] = None
        self._busy = False
        self._resume_task: Optional[asyncio.Task[None]] = None
        self.counters = Counters()

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def outcome(self) -> Optional[ScanOutcome]:
        return self._outcome

    def view(self) -> StationView:
        return StationView(
            state=self._state,
            outcome=self._outcome,
            counters=self.counters.as_dict(),
            pending=len(self._store),
            online=self._monitor.is_online,
            degraded=self._store.degraded,
        )

    def start(self) -> None:
        self._transition("start")

    def stop(self) -> None:
        if self._busy:
            raise InvalidTransition(self._state, "stop")
        self._transition("stop")

    def resume(self) -> None:
        self._outcome = None
        self._transition("resume")

    async def handle_decode(self, values: Sequence[str]) -> Optional[ScanOutcome]:
        """Process the first decoded value of a batch.

        Returns the outcome, or ``None`` when the decode was ignored because
        the station is not scanning or is still handling a previous code.
        """
        raw = values[0] if values else None
        if not raw:
            return None
        if self._state is not ScanState.SCANNING or self._busy:
            self._logger.debug("Ignoring decode while %s", self._state.value)
            return None

        self._busy = True
        try:
            outcome = await self._process(raw)
            self.counters.record(outcome)
            self._outcome = outcome
            self._transition("decode")
        finally:
            self._busy = False
        self._resume_task = asyncio.get_running_loop().create_task(self._resume_later())
        return outcome

    async def close(self) -> None:
        task, self._resume_task = self._resume_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _process(self, raw: str) -> ScanOutcome:
        record = build_record(raw)
        if not self._monitor.is_online:
            self._store.enqueue(record)
            self._logger.debug("Queued scan %r (%d pending)", raw, len(self._store))
            return ScanOutcome(
                success=True,
                message=OFFLINE_MESSAGE,
                raw_payload=raw,
                payload=record.to_wire(),
                queued=True,
            )
        try:
            return await self._submitter.submit(record)
        except SubmissionError as exc:
            return ScanOutcome(success=False, message=FAILURE_PREFIX + exc.message, raw_payload=raw)

    async def _resume_later(self) -> None:
        await self._sleep(self._resume_delay)
        if self._state is ScanState.RESULT:
            self.resume()

    def _transition(self, action: str) -> None:
        target = TRANSITIONS.get((self._state, action))
        if target is None:
            raise InvalidTransition(self._state, action)
        self._logger.debug("%s: %s -> %s", action, self._state.value, target.value)
        self._state = target
        if self._on_change is not None:
            self._on_change(self.view())
