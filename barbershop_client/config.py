"""Central configuration for barbershop_client."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


def _float(name: str, default: float) -> float:
    """Read a float environment variable, falling back on missing/invalid input.

    Example:
        >>> _float("UNSET_VARIABLE", 2.5)
        2.5
    """
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; using %s", name, raw, default)
        return default


def _int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r; using %s", name, raw, default)
        return default


def _bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Configuration settings for barbershop_client.

    All settings are loaded from environment variables with sensible defaults.
    """

    DATA_DIR: Path
    CACHE_MEMORY_TTL_S: float
    CACHE_PERSISTENT_TTL_S: float
    REMOTE_BASE_URL: str | None
    REMOTE_API_KEY: str | None
    REMOTE_TIMEOUT_S: float
    BOOKINGS_COLLECTION: str
    BARBERS_COLLECTION: str
    SYNC_MAX_ATTEMPTS: int
    CONNECTIVITY_PROBE_URL: str | None
    CONNECTIVITY_INTERVAL_S: float
    CONNECTIVITY_TIMEOUT_S: float
    WHATSAPP_ACCESS_TOKEN: str | None
    WHATSAPP_PHONE_NUMBER_ID: str | None
    WHATSAPP_API_VERSION: str
    WHATSAPP_WEBHOOK_URL: str | None
    WHATSAPP_USE_DIRECT_LINK: bool

    @property
    def store_path(self) -> Path:
        return self.DATA_DIR / "store.json"


def _read_settings() -> Settings:
    """Read all configuration from environment variables.

    Note:
        Invalid numeric values fall back to defaults.
        Boolean values accept: 1/true/yes (case-insensitive) as True.
    """
    remote_base = os.environ.get("REMOTE_BASE_URL") or None
    probe_url = os.environ.get("CONNECTIVITY_PROBE_URL") or remote_base

    return Settings(
        DATA_DIR=Path(os.environ.get("DATA_DIR") or "./data"),
        CACHE_MEMORY_TTL_S=_float("CACHE_MEMORY_TTL_S", 5 * 60),
        CACHE_PERSISTENT_TTL_S=_float("CACHE_PERSISTENT_TTL_S", 24 * 60 * 60),
        REMOTE_BASE_URL=remote_base,
        REMOTE_API_KEY=os.environ.get("REMOTE_API_KEY") or None,
        REMOTE_TIMEOUT_S=_float("REMOTE_TIMEOUT_S", 10.0),
        BOOKINGS_COLLECTION=os.environ.get("BOOKINGS_COLLECTION") or "agendamentos",
        BARBERS_COLLECTION=os.environ.get("BARBERS_COLLECTION") or "barbeiros",
        SYNC_MAX_ATTEMPTS=_int("SYNC_MAX_ATTEMPTS", 5),
        CONNECTIVITY_PROBE_URL=probe_url,
        CONNECTIVITY_INTERVAL_S=_float("CONNECTIVITY_INTERVAL_S", 15.0),
        CONNECTIVITY_TIMEOUT_S=_float("CONNECTIVITY_TIMEOUT_S", 5.0),
        WHATSAPP_ACCESS_TOKEN=os.environ.get("WHATSAPP_ACCESS_TOKEN") or None,
        WHATSAPP_PHONE_NUMBER_ID=os.environ.get("WHATSAPP_PHONE_NUMBER_ID") or None,
        WHATSAPP_API_VERSION=os.environ.get("WHATSAPP_API_VERSION") or "v21.0",
        WHATSAPP_WEBHOOK_URL=os.environ.get("WHATSAPP_WEBHOOK_URL") or None,
        WHATSAPP_USE_DIRECT_LINK=_bool("WHATSAPP_USE_DIRECT_LINK", True),
    )


settings = _read_settings()


def validate_settings(current: Settings | None = None) -> None:
    """Log warnings for configuration that disables features."""
    current = current or settings
    if current.REMOTE_BASE_URL is None:
        logger.warning("REMOTE_BASE_URL is not set; remote reads and writes will fail.")
    if current.CONNECTIVITY_PROBE_URL is None:
        logger.warning("No connectivity probe URL; offline replay needs manual sync.")
    if current.WHATSAPP_ACCESS_TOKEN is None or current.WHATSAPP_PHONE_NUMBER_ID is None:
        logger.warning("WhatsApp API is not configured; direct links will be used.")
