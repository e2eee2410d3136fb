"""Parsing of the text carried by attendee QR codes.

Codes look like ``EVENT:12|INVITADO:345|LEAD:6|HASH:ab12``. Parsing is
deliberately permissive: anything malformed degrades to missing fields and
the scan still goes through.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from .records import ScanRecord, utcnow

SEGMENT_DELIMITER = "|"
KEY_DELIMITER = ":"

EVENT_KEY = "EVENT"
INVITADO_KEY = "INVITADO"
LEAD_KEY = "LEAD"
HASH_KEY = "HASH"


def parse_payload(raw: Optional[str]) -> Dict[str, Optional[str]]:
    """Split ``raw`` into a ``{KEY: value}`` mapping without ever raising.

    Segments lacking a ``:`` map to ``None``. Unknown keys are kept.
    """
    parts: Dict[str, Optional[str]] = {}
    if not raw:
        return parts
    for segment in raw.split(SEGMENT_DELIMITER):
        if not segment:
            continue
        fields = segment.split(KEY_DELIMITER)
        parts[fields[0]] = fields[1] if len(fields) > 1 else None
    return parts


def build_record(raw: str, now: Optional[datetime] = None) -> ScanRecord:
    parts = parse_payload(raw)
    return ScanRecord(
        raw_payload=raw,
        scanned_at=now or utcnow(),
        event_id=parts.get(EVENT_KEY),
        invitado_id=parts.get(INVITADO_KEY),
        lead_id=parts.get(LEAD_KEY),
        hash=parts.get(HASH_KEY),
    )
