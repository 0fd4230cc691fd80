"""Load settings from environment (.env and env vars)."""

from __future__ import annotations

import os
from pathlib import Path

# Load .env from project root if present
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
if _env_path.exists():
    from dotenv import load_dotenv
    load_dotenv(_env_path)


def _str(key: str, default: str = "") -> str:
    return (os.environ.get(key) or "").strip() or default


def _float(key: str, default: float) -> float:
    raw = _str(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Remote flow-definition service
FLOW_API_BASE_URL = _str("FLOW_API_BASE_URL") or "http://localhost:3000/api"
FLOW_API_TOKEN = _str("FLOW_API_TOKEN") or None
FLOW_PROJECT_ID = _str("FLOW_PROJECT_ID") or None
FLOW_API_TIMEOUT = _float("FLOW_API_TIMEOUT", 20.0)

# Piece catalog
PIECES_API_URL = _str("PIECES_API_URL") or "https://cloud.activepieces.com/api/v1/pieces"
PIECE_NAME_PREFIX = _str("PIECE_NAME_PREFIX") or "@activepieces/piece-"

# Editor
HIGHLIGHT_CLEAR_SECONDS = _float("HIGHLIGHT_CLEAR_SECONDS", 0.8)
