"""
Path utilities for the sync layer.

Provides the default location of the persisted snapshot store.
"""

import tempfile
from pathlib import Path


def temp_dir() -> Path:
    """
    Return the system temporary directory as a Path.

    Returns:
        Path object pointing to the system temp directory.
    """
    return Path(tempfile.gettempdir())


def default_storage_dir() -> Path:
    """Return the directory used for the persisted store when none is configured."""
    return temp_dir() / "invoice_sync_store"
