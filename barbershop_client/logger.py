"""Logging setup for the barbershop client CLI and service loop.

Library modules only create named loggers; handlers are installed here, once,
by the entry point.
"""
import logging
import os


def setup_logging() -> None:
    """Install a stream handler at LOG_LEVEL and quiet the HTTP client loggers
    used by the remote store, connectivity probe and WhatsApp client."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    # Suppress per-request logs from the HTTP clients
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


__all__ = ["setup_logging"]
