"""Configuration and settings management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# Environment variable names
ENV_DB_PATH = "DIVTRACK_DB_PATH"
ENV_PRICE_API_URL = "DIVTRACK_PRICE_API_URL"

DEFAULT_PRICE_API_URL = "https://prices.divtrack.app/api/v1"

DB_FILE_NAME = "divtrack.db"


def get_default_db_path() -> Path:
    """
    Get the default database path.

    Uses $DIVTRACK_DB_PATH if set, else %LOCALAPPDATA%/DivTrack/divtrack.db
    on Windows and ~/.divtrack/divtrack.db elsewhere.
    """
    override = os.environ.get(ENV_DB_PATH)
    if override:
        return Path(override)
    local_app_data = os.environ.get("LOCALAPPDATA")
    if local_app_data:
        return Path(local_app_data) / "DivTrack" / DB_FILE_NAME
    # Fallback
    return Path.home() / ".divtrack" / DB_FILE_NAME


def get_portable_db_path() -> Path:
    """
    Get the portable database path (beside executable).

    Returns:
        Path to data/divtrack.db in current directory
    """
    return Path.cwd() / "data" / DB_FILE_NAME


def get_default_price_api_url() -> str:
    """Get the pricing service base URL from environment or default."""
    return os.environ.get(ENV_PRICE_API_URL, DEFAULT_PRICE_API_URL)


@dataclass
class Settings:
    """Application settings."""

    # Path to database file
    db_path: Path = field(default_factory=get_default_db_path)

    # Use portable mode (data beside exe)
    portable: bool = False

    # Base URL of the pricing service
    price_api_url: str = field(default_factory=get_default_price_api_url)

    # HTTP timeout for price fetches (seconds)
    request_timeout: float = 10.0

    def __post_init__(self) -> None:
        """Apply portable mode if enabled."""
        if self.portable:
            self.db_path = get_portable_db_path()

    @classmethod
    def from_args(
        cls,
        db_path: Optional[str] = None,
        portable: bool = False,
        price_api_url: Optional[str] = None,
    ) -> "Settings":
        """
        Create settings from CLI arguments.

        Args:
            db_path: Override database path
            portable: Use portable mode
            price_api_url: Override pricing service URL
        """
        return cls(
            db_path=Path(db_path) if db_path else get_default_db_path(),
            portable=portable,
            price_api_url=price_api_url or get_default_price_api_url(),
        )

    def validate(self) -> list[str]:
        """
        Validate settings.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.price_api_url.startswith(("http://", "https://")):
            errors.append(f"Invalid price API URL: {self.price_api_url}")

        if self.request_timeout <= 0:
            errors.append(f"Request timeout must be positive: {self.request_timeout}")

        if self.db_path.exists() and self.db_path.is_dir():
            errors.append(f"Database path is a directory: {self.db_path}")

        return errors
