from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class SessionConfig:
    ttl_hours: float = float(os.getenv("SESSION_EXPIRY_HOURS", "24"))
    sweep_interval_seconds: float = float(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "3600"))


DEFAULT_SESSION_CONFIG = SessionConfig()
