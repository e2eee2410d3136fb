"""
src/qr_checkin/main.py
Command line entry point for the QR check-in station.

Typical use, with a USB scanner in keyboard mode:
    qr-checkin                 # scan, submit, queue while offline
    qr-checkin --pending       # list scans waiting to be delivered
    qr-checkin --sync-only     # deliver the queue once and exit
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from .config import Config, load_config
from .feed import read_decodes
from .logger import logger, set_log_profile, spinner, step
from .station import Station


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qr-checkin",
        description="Attendance check-in station: scan QR codes, report them, queue while offline",
    )
    parser.add_argument("--env-file", default=".env", help="Configuration file (created from a template if missing)")
    parser.add_argument("--offline", action="store_true", help="Treat the network as down; every scan is queued")
    parser.add_argument("--memory-queue", action="store_true", help="Keep the offline queue in memory only")
    parser.add_argument("--no-autostart", action="store_true", help="Wait for /start before scanning")
    parser.add_argument("--pending", action="store_true", help="List scans waiting to be synced and exit")
    parser.add_argument("--sync-only", action="store_true", help="Deliver pending scans once and exit")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging")
    return parser


def list_pending(station: Station) -> int:
    entries = station.store.load()
    if not entries:
        logger.info("No pending scans")
        return 0
    step(f"{len(entries)} pending scan(s)")
    for index, record in enumerate(entries, start=1):
        body = record.to_wire()
        logger.info(
            "%d. %s  event=%s invitado=%s  %s",
            index,
            body["scannedAt"],
            record.event_id or "-",
            record.invitado_id or "-",
            record.raw_payload,
        )
    return 0


async def sync_once(station: Station) -> int:
    async with station:
        if not station.monitor.is_online:
            logger.error("Webhook unreachable; %d scan(s) remain queued", len(station.store))
            return 1
        async with spinner(f"Syncing {len(station.store)} pending scan(s)") as spin:
            report = await station.coordinator.drain()
            if report.remaining:
                spin.fail(f"{report.delivered} sent, {len(report.remaining)} still pending")
            else:
                spin.update(f"{report.delivered} scan(s) sent")
        return 1 if report.remaining else 0


async def run_station(station: Station) -> int:
    async with station:
        logger.info("Scan a code, or type /start, /stop, /stats, /sync, /quit")
        await station.run(read_decodes(sys.stdin))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.debug:
        set_log_profile("debug")

    config: Config = load_config(Path(args.env_file))
    if args.no_autostart:
        config.AUTO_START = False
    station = Station.from_options(config, force_offline=args.offline, memory_queue=args.memory_queue)

    if args.pending:
        return list_pending(station)
    try:
        if args.sync_only:
            return asyncio.run(sync_once(station))
        return asyncio.run(run_station(station))
    except KeyboardInterrupt:
        logger.warning("Interrupted; pending scans stay queued")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
