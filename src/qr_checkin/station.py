"""Wiring of the check-in station and its terminal rendering."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import AsyncIterable, Optional

from .client import WebhookClient
from .config import Config
from .connectivity import ConnectivityMonitor, ConnectivityPoller, HttpProbe, Probe, StaticProbe
from .feed import COMMANDS, FeedItem
from .lifecycle import InvalidTransition, LifecycleController, ScanState, StationView
from .logger import get_logger, progress, step, success
from .queue_store import JsonFileStorage, MemoryStorage, PersistentQueueStore, QueueStorage
from .records import ScanOutcome
from .sync import SyncCoordinator


def render_outcome(outcome: ScanOutcome, log: logging.LoggerAdapter) -> None:
    if outcome.queued:
        log.log(logging.INFO, outcome.message, layer="queued")
    elif outcome.success:
        name = outcome.attendee_name
        log.log(logging.INFO, f"{outcome.message} – {name}" if name else outcome.message, layer="success")
    else:
        log.error(outcome.message)


def format_summary(view: StationView) -> str:
    counters = view.counters
    lines = [
        f"Total scans: {counters['total']}",
        f"Successful: {counters['successful']}",
        f"Failed: {counters['failed']}",
        f"Pending sync: {view.pending}",
        f"Connection: {'online' if view.online else 'offline'}",
    ]
    if view.degraded:
        lines.append("Offline queue is NOT being saved to disk")
    return "\n".join(lines)


class Station:
    """Own every component for the lifetime of one station session."""

    def __init__(
        self,
        config: Config,
        *,
        storage: Optional[QueueStorage] = None,
        probe: Optional[Probe] = None,
        client: Optional[WebhookClient] = None,
    ) -> None:
        self.config = config
        self.log = get_logger("station")
        self.monitor = ConnectivityMonitor()
        self.store = PersistentQueueStore(storage or JsonFileStorage(config.QUEUE_FILE))
        self.client = client or WebhookClient(config.WEBHOOK_URL, timeout=config.SUBMIT_TIMEOUT)
        self.coordinator = SyncCoordinator(self.store, self.client)
        self.controller = LifecycleController(
            self.client,
            self.store,
            self.monitor,
            resume_delay=config.resume_delay,
            on_change=self._render,
        )
        self._probe = probe or HttpProbe(config.PROBE_URL, timeout=config.PROBE_TIMEOUT)
        self._stack = AsyncExitStack()
        self._last_pending = 0

    @classmethod
    def from_options(cls, config: Config, *, force_offline: bool = False, memory_queue: bool = False) -> "Station":
        return cls(
            config,
            storage=MemoryStorage() if memory_queue else None,
            probe=StaticProbe(False) if force_offline else None,
        )

    async def __aenter__(self) -> "Station":
        self.store.load()
        self._last_pending = len(self.store)
        await self._stack.enter_async_context(self.client)
        # Let a running sync pass finish before the HTTP session goes away.
        self._stack.push_async_callback(self.coordinator.wait_idle)
        poller = ConnectivityPoller(self.monitor, self._probe, interval=self.config.PROBE_INTERVAL)
        await self._stack.enter_async_context(poller)
        self.coordinator.attach(self.monitor)
        self._stack.callback(self.coordinator.detach)
        unsubscribe = self.monitor.subscribe(self._on_connectivity)
        self._stack.callback(unsubscribe)
        self._stack.push_async_callback(self.controller.close)
        step(f"Station ready ({'online' if self.monitor.is_online else 'offline'}, {len(self.store)} pending)")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._stack.aclose()

    async def run(self, feed: AsyncIterable[FeedItem]) -> None:
        if self.config.AUTO_START:
            self.controller.start()
        async for item in feed:
            if item.command is not None:
                if not await self.handle_command(item.command):
                    break
                continue
            outcome = await self.controller.handle_decode(item.values)
            if outcome is None and self.controller.state is not ScanState.SCANNING:
                self.log.warning("Not scanning right now; scan ignored")
        await self.coordinator.wait_idle()
        self.log.info("Session summary:\n%s", format_summary(self.controller.view()))

    async def handle_command(self, command: str) -> bool:
        """Apply an operator command; return False when the station should exit."""
        try:
            if command == "start":
                self.controller.start()
            elif command == "stop":
                self.controller.stop()
            elif command == "stats":
                self.log.info("\n%s", format_summary(self.controller.view()))
            elif command == "sync":
                await self.sync_now()
            elif command == "quit":
                return False
            else:
                choices = ", ".join("/" + name for name in COMMANDS)
                self.log.warning("Unknown command /%s (try %s)", command, choices)
        except InvalidTransition as exc:
            self.log.warning(str(exc))
        return True

    async def sync_now(self) -> None:
        if not len(self.store):
            self.log.info("Nothing to sync")
            return
        if not self.monitor.is_online:
            self.log.warning("Still offline; %d scan(s) pending", len(self.store))
            return
        task = self.coordinator.request_sync()
        if task is not None:
            await asyncio.shield(task)
        else:
            await self.coordinator.wait_idle()
        self._report_pending()

    def _on_connectivity(self, online: bool) -> None:
        if online:
            self.log.log(logging.INFO, "Back online", layer="success")
            # The coordinator subscribed first, so a reconnect pass is already running.
            task = self.coordinator.current_pass
            if task is not None:
                task.add_done_callback(lambda _: self._report_pending())
        else:
            self.log.warning("Offline mode: scans will be saved and sent later")

    def _render(self, view: StationView) -> None:
        if view.state is ScanState.RESULT and view.outcome is not None:
            render_outcome(view.outcome, self.log)
            self._report_pending()
        elif view.state is ScanState.SCANNING:
            self._report_pending()
            progress("Ready for the next code")
        else:
            self.log.info("Scanner stopped")

    def _report_pending(self) -> None:
        pending = len(self.store)
        if pending == self._last_pending:
            return
        if pending:
            self.log.log(logging.INFO, f"{pending} scan(s) waiting to be synced", layer="queued")
        else:
            success("All pending scans synced")
        self._last_pending = pending
