"""Station configuration read from ``.env``.

A template is written on first run; edit it to point the station at your
webhook. Values already present in the process environment win over the
file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, urlunparse

from dotenv import load_dotenv

ENV_TEMPLATE = """
# Attendance webhook receiving one JSON body per scan (required)
WEBHOOK_URL=""

# Where scans taken while offline are kept until they are delivered
QUEUE_FILE="pending_scans.json"

# Reachability probe; defaults to the webhook's origin
PROBE_URL=""
PROBE_INTERVAL=5
PROBE_TIMEOUT=3

# How long a result stays on screen before scanning resumes (ms)
RESUME_DELAY_MS=3000

# Seconds before a submission is abandoned; 0 waits indefinitely
SUBMIT_TIMEOUT=0

# Start scanning as soon as the station launches? 1=true, 0=false
AUTO_START=1
""".lstrip()


@dataclass
class Config:
    # Names mirror .env keys
    WEBHOOK_URL: str
    QUEUE_FILE: Path
    PROBE_URL: str
    PROBE_INTERVAL: float
    PROBE_TIMEOUT: float
    RESUME_DELAY_MS: int
    SUBMIT_TIMEOUT: Optional[float]
    AUTO_START: bool

    @property
    def resume_delay(self) -> float:
        return self.RESUME_DELAY_MS / 1000.0


def ensure_env_file(env_path: Path) -> None:
    """Create a template .env if missing (never overwrites)."""
    if env_path.exists():
        return
    env_path.write_text(ENV_TEMPLATE, encoding="utf-8")
    logging.getLogger("qr_checkin.config").info("Created default .env at %s, please review.", env_path)


def getenv_bool(name: str, default: bool = False) -> bool:
    """Return True for 1/true/yes/on (case-insensitive), else default."""
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}


def getenv_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError:
        raise SystemExit(f"Invalid number for {name}: {v!r}")


def origin_of(url: str) -> str:
    pu = urlparse(url)
    return urlunparse((pu.scheme, pu.netloc, "/", "", "", ""))


def load_config(env_path: Path | str = ".env") -> Config:
    env_path = Path(env_path)
    ensure_env_file(env_path)
    load_dotenv(dotenv_path=env_path, override=False)

    webhook_url = (os.getenv("WEBHOOK_URL") or "").strip() or _missing("WEBHOOK_URL")
    if not webhook_url.lower().startswith(("http://", "https://")):
        raise SystemExit(f"WEBHOOK_URL must be an http(s) URL, got {webhook_url!r}")

    submit_timeout = getenv_float("SUBMIT_TIMEOUT", 0.0)
    return Config(
        WEBHOOK_URL=webhook_url,
        QUEUE_FILE=Path(os.getenv("QUEUE_FILE") or "pending_scans.json"),
        PROBE_URL=(os.getenv("PROBE_URL") or "").strip() or origin_of(webhook_url),
        PROBE_INTERVAL=getenv_float("PROBE_INTERVAL", 5.0),
        PROBE_TIMEOUT=getenv_float("PROBE_TIMEOUT", 3.0),
        RESUME_DELAY_MS=int(getenv_float("RESUME_DELAY_MS", 3000)),
        SUBMIT_TIMEOUT=submit_timeout if submit_timeout > 0 else None,
        AUTO_START=getenv_bool("AUTO_START", True),
    )


def _missing(name: str) -> str:
    raise SystemExit(f"Missing required .env key: {name}")
