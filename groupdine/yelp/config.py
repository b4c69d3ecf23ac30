from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class YelpConfig:
    api_key: str = os.getenv("YELP_API_KEY", "")
    api_url: str = os.getenv("YELP_AI_API_URL", "https://api.yelp.com/ai/chat/v2")
    timeout: float = 30.0


DEFAULT_YELP_CONFIG = YelpConfig()
