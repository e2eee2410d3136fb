"""Shared fakes for the station tests."""

import asyncio
from typing import Callable, List, Optional

from aiohttp import web
from aiohttp.test_utils import TestServer

from qr_checkin.client import SubmissionError
from qr_checkin.records import ScanOutcome, ScanRecord

WEBHOOK_PATH = "/webhook/scan-qr"


class WebhookStub:
    """In-process webhook; each response is taken from ``replies`` in turn."""

    def __init__(self) -> None:
        self.requests: List[dict] = []
        self.content_types: List[str] = []
        self.replies: List[Callable[[dict], web.StreamResponse]] = []

    async def handle(self, request: web.Request) -> web.StreamResponse:
        body = await request.json()
        self.requests.append(body)
        self.content_types.append(request.headers.get("Content-Type", ""))
        if self.replies:
            return self.replies.pop(0)(body)
        return web.json_response({"message": "ok"})


async def serve(handler) -> TestServer:
    app = web.Application()
    app.router.add_post(WEBHOOK_PATH, handler)
    server = TestServer(app)
    await server.start_server()
    return server


class FakeSubmitter:
    """Submitter that fails for the raw payloads listed in ``failing``."""

    def __init__(self, failing: Optional[set] = None) -> None:
        self.failing = failing or set()
        self.submitted: List[str] = []

    async def submit(self, record: ScanRecord) -> ScanOutcome:
        self.submitted.append(record.raw_payload)
        if record.raw_payload in self.failing:
            raise SubmissionError("Error al registrar asistencia", status=500)
        return ScanOutcome(
            success=True,
            message="Asistencia registrada",
            raw_payload=record.raw_payload,
            payload={"nombre": "Ana"},
        )


class ManualTimer:
    """Stand-in for asyncio.sleep that only returns when fired."""

    def __init__(self) -> None:
        self.delays: List[float] = []
        self._event: Optional[asyncio.Event] = None

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        self._event = asyncio.Event()
        await self._event.wait()

    def fire(self) -> None:
        assert self._event is not None, "no timer pending"
        self._event.set()


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)
