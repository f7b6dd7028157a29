"""Data directory resolution for frozen (PyInstaller) and source modes."""

import os
import sys
from pathlib import Path


APP_DIR_NAME = "DivTrack"


def is_frozen() -> bool:
    """Check if running as a PyInstaller frozen executable."""
    return getattr(sys, "frozen", False)


def get_data_dir(portable: bool = False) -> Path:
    """
    Get the data directory for storing the database and log files.

    Args:
        portable: If True, use ./data beside the executable

    Returns:
        Path to data directory (created if needed)
    """
    if portable or is_frozen():
        data_dir = Path.cwd() / "data"
    else:
        local_app_data = os.environ.get("LOCALAPPDATA", "")
        if local_app_data:
            data_dir = Path(local_app_data) / APP_DIR_NAME
        else:
            data_dir = Path.home() / ".divtrack"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir
