"""Environment-driven settings for the permit agent."""

from __future__ import annotations

import os


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


USER_AGENT = os.getenv(
    "PERMIT_AGENT_USER_AGENT",
    "PermitAgent/0.1 (+https://github.com/permit-agent)",
)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

OPENAI_API_KEY = (os.getenv("OPENAI_API_KEY") or "").strip() or None
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4-turbo-preview")
OPENAI_TIMEOUT_SECONDS = _env_float("OPENAI_TIMEOUT_SECONDS", 30.0)
OPENAI_MAX_TOKENS = _env_int("OPENAI_MAX_TOKENS", 4000)

NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/search")
GEOCODING_ENABLED = _env_bool("GEOCODING_ENABLED", True)

MAX_JOBS = max(1, _env_int("MAX_JOBS", 100))
JOB_MAX_AGE_SECONDS = _env_int("JOB_MAX_AGE_SECONDS", 30 * 60)
CLEANUP_INTERVAL_SECONDS = _env_int("CLEANUP_INTERVAL_SECONDS", 10 * 60)

RATE_LIMIT_MAX_WAIT_SECONDS = _env_float("RATE_LIMIT_MAX_WAIT_SECONDS", 120.0)
