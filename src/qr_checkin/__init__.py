"""QR check-in station: report attendee scans, queue them while offline."""

from .client import SubmissionError, WebhookClient
from .connectivity import ConnectivityMonitor
from .lifecycle import InvalidTransition, LifecycleController, ScanState
from .payload import build_record, parse_payload
from .queue_store import JsonFileStorage, MemoryStorage, PersistentQueueStore
from .records import Counters, ScanOutcome, ScanRecord
from .sync import SyncCoordinator, SyncReport

__all__ = [
    "ConnectivityMonitor",
    "Counters",
    "InvalidTransition",
    "JsonFileStorage",
    "LifecycleController",
    "MemoryStorage",
    "PersistentQueueStore",
    "ScanOutcome",
    "ScanRecord",
    "ScanState",
    "SubmissionError",
    "SyncCoordinator",
    "SyncReport",
    "WebhookClient",
    "build_record",
    "parse_payload",
]
