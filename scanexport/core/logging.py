"""Logging setup for the scanexport CLI and library."""
from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# HTTP and spreadsheet clients log every request at DEBUG/INFO.
NOISY_LOGGERS = ("urllib3", "google.auth", "gspread")


def resolve_level(level: str | None = None, verbose: bool = False) -> int:
    """Map ``level`` (or ``LOG_LEVEL``) to a logging level; ``verbose`` forces DEBUG.

    Unknown names fall back to ``INFO``.
    """

    if verbose:
        return logging.DEBUG
    name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str | None = None, verbose: bool = False) -> None:
    """Route scanexport loggers through one root handler.

    Third-party HTTP and Sheets clients are held at WARNING unless running
    verbose, so export and rule logs stay readable.
    """

    resolved = resolve_level(level, verbose)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger().setLevel(resolved)
    quiet_level = logging.DEBUG if verbose else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
