"""Logging setup for the journal service.

Modules log through ``logging.getLogger(__name__)``; this module only
configures the root handler once at process start.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def normalize_log_level(level: str | None) -> str | None:
    """Return the canonical level name, or None if it is not recognised."""
    if not level:
        return None
    normalized = level.strip().upper()
    if normalized == "WARN":
        normalized = "WARNING"
    return normalized if normalized in _LEVELS else None


def configure_logging(level: str = "INFO", *, force: bool = False) -> str:
    """Configure root logging and return the level actually applied.

    Unknown levels fall back to INFO.
    """
    normalized = normalize_log_level(level) or "INFO"
    logging.basicConfig(level=normalized, format=LOG_FORMAT, force=force)
    return normalized
