from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from auth.google_oauth2 import DEFAULT_SCOPES

from .constants import AUTH_MODE, LOGGER


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=False)


def load_scopes() -> list[str]:
    raw = os.getenv("GOOGLE_OAUTH_SCOPES", "").split()
    return raw or list(DEFAULT_SCOPES)


def _require_http_url(key: str) -> None:
    value = os.getenv(key, "").strip()
    if not value:
        return
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise RuntimeError(f"{key} must be an absolute http(s) URL.")


def validate_env() -> None:
    required = ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET")
    missing = [key for key in required if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(
            f"Missing required environment variables for {AUTH_MODE}: {', '.join(missing)}"
        )

    _require_http_url("GOOGLE_REDIRECT_URI")
    _require_http_url("FRONTEND_URL")

    if not any("drive" in scope for scope in load_scopes()):
        LOGGER.warning("GOOGLE_OAUTH_SCOPES has no Drive scope; drive_* tools will fail.")


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("GDMCP_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
