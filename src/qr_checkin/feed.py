"""Decoder feed: decoded QR text arriving one payload per line.

Handheld scanners in keyboard mode type the decoded text followed by Enter,
so a line on stdin is one decode batch. Lines starting with ``/`` are
operator commands rather than scans.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, TextIO

COMMAND_PREFIX = "/"
COMMANDS = ("start", "stop", "stats", "sync", "quit")


@dataclass(frozen=True)
class FeedItem:
    """Either a decode batch or an operator command."""

    values: List[str]
    command: Optional[str] = None


def classify_line(line: str) -> Optional[FeedItem]:
    text = line.rstrip("\r\n")
    if not text.strip():
        return None
    stripped = text.strip()
    if stripped.startswith(COMMAND_PREFIX):
        name = stripped[len(COMMAND_PREFIX):].split(maxsplit=1)
        return FeedItem(values=[], command=name[0].lower() if name else "")
    return FeedItem(values=[text])


async def read_decodes(stream: TextIO) -> AsyncIterator[FeedItem]:
    """Yield feed items from ``stream`` until EOF.

    Blocking reads run in the default executor so the event loop keeps
    serving timers, probes and sync passes in the meantime.
    """
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            return
        item = classify_line(line)
        if item is not None:
            yield item
