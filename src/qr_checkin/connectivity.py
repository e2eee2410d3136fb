"""Online/offline tracking fed by a periodic reachability probe."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import aiohttp

LOGGER = logging.getLogger(__name__)

Listener = Callable[[bool], None]
Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """Hold the current connectivity and notify listeners on transitions only."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._listeners: List[Listener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def start(self, online: bool) -> None:
        """Adopt the platform's current state without notifying anyone."""
        self._online = online

    def signal(self, online: bool) -> bool:
        if online == self._online:
            return False
        self._online = online
        LOGGER.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            listener(online)
        return True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class HttpProbe:
    """Consider the network up when ``url`` answers with any HTTP status."""

    def __init__(self, url: str, *, timeout: float = 3.0) -> None:
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __call__(self) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.head(self._url, allow_redirects=False):
                    return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOGGER.debug("Probe %s failed: %s", self._url, exc)
            return False


class StaticProbe:
    """Probe with a fixed answer, used for --offline and in tests."""

    def __init__(self, online: bool) -> None:
        self.online = online

    async def __call__(self) -> bool:
        return self.online


class ConnectivityPoller:
    """Scoped polling of ``probe`` into ``monitor``.

    Entering probes once and adopts the result; leaving cancels the polling
    task and waits for it.
    """

    def __init__(self, monitor: ConnectivityMonitor, probe: Probe, *, interval: float = 5.0) -> None:
        self._monitor = monitor
        self._probe = probe
        self._interval = interval
        self._task: Optional[asyncio.Task[None]] = None

    async def __aenter__(self) -> "ConnectivityPoller":
        self._monitor.start(await self._probe())
        self._task = asyncio.create_task(self._poll())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._monitor.signal(await self._probe())
