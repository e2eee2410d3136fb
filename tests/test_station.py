import asyncio
import io
import json
import logging
from pathlib import Path

import pytest
from aiohttp import web

from helpers import WEBHOOK_PATH, WebhookStub, serve, settle
from qr_checkin.config import Config
from qr_checkin.connectivity import StaticProbe
from qr_checkin.feed import FeedItem, classify_line, read_decodes
from qr_checkin.lifecycle import ScanState
from qr_checkin.main import list_pending
from qr_checkin.payload import build_record
from qr_checkin.queue_store import JsonFileStorage, MemoryStorage, PersistentQueueStore
from qr_checkin.station import Station, format_summary


def _config(url: str = "http://127.0.0.1:9/hook", queue_file: Path = Path("pending.json")) -> Config:
    return Config(
        WEBHOOK_URL=url,
        QUEUE_FILE=queue_file,
        PROBE_URL=url,
        PROBE_INTERVAL=60.0,
        PROBE_TIMEOUT=1.0,
        RESUME_DELAY_MS=10,
        SUBMIT_TIMEOUT=None,
        AUTO_START=True,
    )


async def _feed(*items: FeedItem):
    for item in items:
        yield item
        # Give the result timer room to bring the station back to scanning.
        await asyncio.sleep(0.05)


def test_classify_line() -> None:
    assert classify_line("EVENT:1|INVITADO:2\n") == FeedItem(values=["EVENT:1|INVITADO:2"])
    assert classify_line("  /Stop \n") == FeedItem(values=[], command="stop")
    assert classify_line("   \n") is None


def test_read_decodes_stops_at_eof() -> None:
    stream = io.StringIO("EVENT:1\n\n/stats\nEVENT:2\n")

    async def collect():
        return [item async for item in read_decodes(stream)]

    items = asyncio.run(collect())

    assert items == [
        FeedItem(values=["EVENT:1"]),
        FeedItem(values=[], command="stats"),
        FeedItem(values=["EVENT:2"]),
    ]


def test_offline_station_queues_scans() -> None:
    storage = MemoryStorage()
    station = Station(_config(), storage=storage, probe=StaticProbe(False))

    async def scenario():
        async with station:
            await station.run(_feed(FeedItem(["EVENT:1|INVITADO:1"]), FeedItem(["EVENT:1|INVITADO:2"])))

    asyncio.run(scenario())

    assert [entry["qrData"] for entry in storage.load()] == ["EVENT:1|INVITADO:1", "EVENT:1|INVITADO:2"]
    assert station.controller.counters.as_dict() == {"total": 2, "successful": 2, "failed": 0}


def test_online_station_submits_and_syncs_backlog_on_reconnect(webhook_stub: WebhookStub) -> None:
    backlog = build_record("EVENT:1|INVITADO:old").to_wire()
    storage = MemoryStorage([backlog])
    probe = StaticProbe(False)

    async def scenario():
        server = await serve(webhook_stub.handle)
        url = str(server.make_url(WEBHOOK_PATH))
        station = Station(_config(url), storage=storage, probe=probe)
        station.config.PROBE_INTERVAL = 0.01
        try:
            async with station:
                assert station.monitor.is_online is False
                probe.online = True
                for _ in range(100):
                    await asyncio.sleep(0.01)
                    if not len(station.store) and not station.coordinator.in_flight:
                        break
                await station.run(_feed(FeedItem(["EVENT:1|INVITADO:new"])))
        finally:
            await server.close()
        return station

    station = asyncio.run(scenario())

    assert [body["qrData"] for body in webhook_stub.requests] == ["EVENT:1|INVITADO:old", "EVENT:1|INVITADO:new"]
    assert storage.load() == []
    assert station.controller.counters.as_dict() == {"total": 1, "successful": 1, "failed": 0}


def test_failed_submission_is_rendered_as_error(
    webhook_stub: WebhookStub, caplog: pytest.LogCaptureFixture
) -> None:
    webhook_stub.replies.append(lambda body: web.json_response({"error": "QR ya utilizado"}, status=409))

    async def scenario():
        server = await serve(webhook_stub.handle)
        station = Station(
            _config(str(server.make_url(WEBHOOK_PATH))),
            storage=MemoryStorage(),
            probe=StaticProbe(True),
        )
        try:
            async with station:
                await station.run(_feed(FeedItem(["EVENT:1|INVITADO:7"])))
        finally:
            await server.close()
        return station

    with caplog.at_level(logging.INFO, logger="qr_checkin"):
        station = asyncio.run(scenario())

    assert station.controller.counters.failed == 1
    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert any("QR ya utilizado" in message for message in errors)


def test_commands_drive_the_lifecycle() -> None:
    config = _config()
    config.AUTO_START = False
    station = Station(config, storage=MemoryStorage(), probe=StaticProbe(False))

    async def scenario():
        async with station:
            assert await station.handle_command("start") is True
            assert station.controller.state is ScanState.SCANNING
            assert await station.handle_command("stop") is True
            assert station.controller.state is ScanState.IDLE
            # Illegal transitions are reported, not raised.
            assert await station.handle_command("stop") is True
            assert await station.handle_command("bogus") is True
            assert await station.handle_command("quit") is False

    asyncio.run(scenario())


def test_quit_command_ends_the_run() -> None:
    storage = MemoryStorage()
    station = Station(_config(), storage=storage, probe=StaticProbe(False))

    async def scenario():
        async with station:
            await station.run(_feed(FeedItem([], command="quit"), FeedItem(["EVENT:1"])))

    asyncio.run(scenario())
    assert storage.load() is None


def test_format_summary_mentions_degraded_queue() -> None:
    station = Station(_config(), storage=MemoryStorage(), probe=StaticProbe(False))
    view = station.controller.view()

    summary = format_summary(view)

    assert "Total scans: 0" in summary
    assert "Connection: online" in summary
    assert "NOT being saved" not in summary


def test_list_pending_reads_queue_file(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    queue_file = tmp_path / "pending.json"
    store = PersistentQueueStore(JsonFileStorage(queue_file))
    store.enqueue(build_record("EVENT:4|INVITADO:44"))
    station = Station(_config(queue_file=queue_file), probe=StaticProbe(False))

    with caplog.at_level(logging.INFO, logger="qr_checkin"):
        assert list_pending(station) == 0

    assert any("EVENT:4|INVITADO:44" in r.getMessage() for r in caplog.records)
    assert json.loads(queue_file.read_text(encoding="utf-8"))[0]["invitadoId"] == "44"


def test_ready_message_uses_progress_layer(caplog: pytest.LogCaptureFixture) -> None:
    station = Station(_config(), storage=MemoryStorage(), probe=StaticProbe(False))

    with caplog.at_level(logging.INFO, logger="qr_checkin"):
        station.controller.start()

    ready = [r for r in caplog.records if r.getMessage() == "Ready for the next code"]
    assert [r.layer for r in ready] == ["progress"]


def test_unknown_command_lists_known_ones(caplog: pytest.LogCaptureFixture) -> None:
    station = Station(_config(), storage=MemoryStorage(), probe=StaticProbe(False))

    with caplog.at_level(logging.INFO, logger="qr_checkin"):
        assert asyncio.run(station.handle_command("bogus")) is True

    warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert warnings == ["Unknown command /bogus (try /start, /stop, /stats, /sync, /quit)"]


def test_reconnect_sync_reports_cleared_backlog(
    webhook_stub: WebhookStub, caplog: pytest.LogCaptureFixture
) -> None:
    storage = MemoryStorage([build_record("EVENT:1|INVITADO:old").to_wire()])
    probe = StaticProbe(False)

    async def scenario():
        server = await serve(webhook_stub.handle)
        station = Station(_config(str(server.make_url(WEBHOOK_PATH))), storage=storage, probe=probe)
        station.config.PROBE_INTERVAL = 0.01
        try:
            async with station:
                probe.online = True
                for _ in range(100):
                    await asyncio.sleep(0.01)
                    if station.monitor.is_online and not station.coordinator.in_flight:
                        break
                await settle()
                return [r.getMessage() for r in caplog.records]
        finally:
            await server.close()

    with caplog.at_level(logging.INFO, logger="qr_checkin"):
        messages = asyncio.run(scenario())

    assert "All pending scans synced" in messages
