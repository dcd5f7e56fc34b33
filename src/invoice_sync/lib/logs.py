"""
Logging utilities for the sync layer.

Every module obtains its logger through ``logger(__file__)`` so that all
records share one format and live under the ``invoice_sync`` namespace,
which lets the entry point raise or lower verbosity in one place.
"""

import logging
import os
from pathlib import Path

_ROOT = "invoice_sync"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Default log level from environment or INFO
_LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def _root() -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        root.setLevel(getattr(logging, _LOG_LEVEL, logging.INFO))
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
        root.addHandler(handler)
    return root


def logger(name: str) -> logging.Logger:
    """
    Return the logger for a module.

    File paths (``__file__``) are reduced to their stem, so
    ``.../sync/loader.py`` logs as ``invoice_sync.loader``.

    Args:
        name: Logger name or __file__ path.

    Returns:
        Logger that propagates to the shared package handler.
    """
    if "/" in name or "\\" in name:
        name = Path(name).stem
    _root()
    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")


def set_level(level: str) -> None:
    """Set the level for every logger in the package."""
    _root().setLevel(getattr(logging, level.upper(), logging.INFO))
