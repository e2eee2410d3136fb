"""Domain objects for scans, their outcomes and the session counters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

# Wire keys mirror the webhook body; attribute names stay pythonic.
_WIRE_FIELDS = (
    ("event_id", "eventId"),
    ("invitado_id", "invitadoId"),
    ("lead_id", "leadId"),
    ("hash", "hash"),
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as ISO-8601 UTC with milliseconds, e.g. ``2025-03-01T10:15:00.123Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(frozen=True)
class ScanRecord:
    """Value object describing one decoded attendance scan."""

    raw_payload: str
    scanned_at: datetime
    event_id: Optional[str] = None
    invitado_id: Optional[str] = None
    lead_id: Optional[str] = None
    hash: Optional[str] = None

    def to_wire(self) -> Dict[str, str]:
        """Return the webhook body; unknown identifiers are left out."""
        body: Dict[str, str] = {}
        for attr, key in _WIRE_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                body[key] = value
        body["scannedAt"] = format_timestamp(self.scanned_at)
        body["qrData"] = self.raw_payload
        return body

    @classmethod
    def from_wire(cls, body: Mapping[str, Any]) -> "ScanRecord":
        try:
            raw = body["qrData"]
            scanned_at = parse_timestamp(str(body["scannedAt"]))
        except KeyError as exc:
            raise ValueError(f"Queued scan missing field: {exc.args[0]}") from exc
        values = {attr: body.get(key) for attr, key in _WIRE_FIELDS}
        return cls(raw_payload=str(raw), scanned_at=scanned_at, **values)


@dataclass(frozen=True)
class ScanOutcome:
    """Result of handling one decoded scan, kept only while it is displayed."""

    success: bool
    message: str
    raw_payload: str
    timestamp: datetime = field(default_factory=utcnow)
    payload: Optional[Mapping[str, Any]] = None
    queued: bool = False

    @property
    def attendee_name(self) -> Optional[str]:
        if not isinstance(self.payload, Mapping):
            return None
        name = self.payload.get("nombre")
        return str(name) if name else None


@dataclass
class Counters:
    total: int = 0
    successful: int = 0
    failed: int = 0

    def record(self, outcome: ScanOutcome) -> None:
        self.total += 1
        if outcome.success:
            self.successful += 1
        else:
            self.failed += 1

    def as_dict(self) -> Dict[str, int]:
        return {"total": self.total, "successful": self.successful, "failed": self.failed}
