"""aiohttp-backed client reporting scans to the attendance webhook."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Protocol

import aiohttp

from .records import ScanOutcome, ScanRecord

DEFAULT_SUCCESS_MESSAGE = "Attendance recorded"
DEFAULT_FAILURE_MESSAGE = "Failed to record attendance"

JSON_HEADERS = {"Content-Type": "application/json"}

LOGGER = logging.getLogger(__name__)


class SubmissionError(Exception):
    """A scan could not be delivered to the webhook."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class ScanSubmitter(Protocol):
    """Anything that can deliver a scan; the webhook client in production."""

    async def submit(self, record: ScanRecord) -> ScanOutcome:
        """Deliver one scan or raise :class:`SubmissionError`."""


class WebhookClient:
    """POST one scan at a time to the webhook.

    No retries and no idempotency key: sending the same record twice is two
    check-ins as far as the server is concerned.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._url = webhook_url
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout or None)
        self._logger = logger or LOGGER

    @property
    def url(self) -> str:
        return self._url

    async def __aenter__(self) -> "WebhookClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def submit(self, record: ScanRecord) -> ScanOutcome:
        body = record.to_wire()
        self._logger.debug("POST %s qrData=%r", self._url, record.raw_payload)
        session = self._get_session()
        try:
            async with session.post(
                self._url,
                data=json.dumps(body),
                headers=JSON_HEADERS,
                timeout=self._timeout,
            ) as response:
                status = response.status
                raw = await response.read()
        except asyncio.TimeoutError as exc:
            raise SubmissionError("Webhook request timed out") from exc
        except aiohttp.ClientError as exc:
            raise SubmissionError(f"Network error: {exc}") from exc

        try:
            result: Any = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            self._logger.debug("Webhook answered HTTP %s with non-JSON body: %.200r", status, raw)
            raise SubmissionError(DEFAULT_FAILURE_MESSAGE, status=status) from exc

        fields = result if isinstance(result, dict) else {}
        if not 200 <= status < 300:
            message = fields.get("error") or DEFAULT_FAILURE_MESSAGE
            self._logger.debug("Webhook rejected scan (HTTP %s): %s", status, message)
            raise SubmissionError(str(message), status=status)

        return ScanOutcome(
            success=True,
            message=str(fields.get("message") or DEFAULT_SUCCESS_MESSAGE),
            raw_payload=record.raw_payload,
            payload=result,
        )
