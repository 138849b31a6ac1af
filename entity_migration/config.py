"""
Configuration module for the entity migration project.

Handles configuration settings including database file paths.

Database Paths:
    - legacy DB: the flat legacy shop database (read-only source)
    - entities DB: the canonical entities + roles database (read-write target)

Environment Variables:
    SRC_DB: Legacy database path (default: ./legacy.db)
    DST_DB: Target database path (default: ~/.entity_migration/entities.db)
    VENDOR_CATEGORIES_FILE: Optional JSON file of vendor category descriptions
    SEED_FROM_STORE: "0" disables matching entities from earlier runs (default: 1)
    MIGRATION_LOG_FILE: Optional migration log file (default: console only)
"""

import os
from pathlib import Path
from typing import Optional

FALSE_WORDS = {"0", "false", "no", "off"}


class Config:
    """Configuration class for the entity migration."""

    # Default legacy database file name (looked up in the current directory)
    DEFAULT_SOURCE_DB_NAME = "legacy.db"

    # Default path for the target database
    DEFAULT_TARGET_PATH = Path.home() / ".entity_migration"
    DEFAULT_TARGET_DB_NAME = "entities.db"

    def __init__(
        self,
        source_db_path: Optional[str] = None,
        target_db_path: Optional[str] = None,
        vendor_categories_path: Optional[str] = None,
        seed_from_store: Optional[bool] = None,
        log_file_path: Optional[str] = None,
    ):
        """
        Initialize configuration.

        Explicit arguments win over environment variables, which win over
        the defaults.

        Args:
            source_db_path: Optional path to the legacy database.
            target_db_path: Optional path to the target database.
            vendor_categories_path: Optional vendor category description file.
            seed_from_store: Match entities created by earlier runs.
            log_file_path: Optional migration log file.
        """
        source = source_db_path or os.getenv("SRC_DB")
        self._source_db_path = Path(source) if source else Path.cwd() / self.DEFAULT_SOURCE_DB_NAME

        target = target_db_path or os.getenv("DST_DB")
        self._target_db_path = (
            Path(target).expanduser()
            if target
            else self.DEFAULT_TARGET_PATH / self.DEFAULT_TARGET_DB_NAME
        )

        categories = vendor_categories_path or os.getenv("VENDOR_CATEGORIES_FILE")
        self._vendor_categories_path: Optional[Path] = Path(categories) if categories else None

        if seed_from_store is None:
            seed_from_store = os.getenv("SEED_FROM_STORE", "1").strip().lower() not in FALSE_WORDS
        self._seed_from_store = seed_from_store

        log_file = log_file_path or os.getenv("MIGRATION_LOG_FILE")
        self._log_file_path: Optional[Path] = Path(log_file).expanduser() if log_file else None

    @property
    def source_db_path(self) -> Path:
        """Get the legacy database path (source)."""
        return self._source_db_path

    @property
    def source_db_path_str(self) -> str:
        return str(self._source_db_path)

    @property
    def target_db_path(self) -> Path:
        """Get the target database path."""
        return self._target_db_path

    @property
    def target_db_path_str(self) -> str:
        return str(self._target_db_path)

    @property
    def vendor_categories_path(self) -> Optional[Path]:
        """Get the vendor category description file path (optional)."""
        return self._vendor_categories_path

    @property
    def seed_from_store(self) -> bool:
        return self._seed_from_store

    @property
    def log_file_path(self) -> Optional[Path]:
        """Get the migration log file path (optional)."""
        return self._log_file_path

    @property
    def log_file_path_str(self) -> Optional[str]:
        return str(self._log_file_path) if self._log_file_path else None

    def validate(self) -> bool:
        """
        Validate that the legacy database exists and is readable.

        Returns:
            True if the source exists and is readable, False otherwise.
        """
        return self._source_db_path.exists() and os.access(self._source_db_path, os.R_OK)

    def ensure_target_dir(self) -> None:
        """
        Ensure the target database parent directory exists.

        Creates the directory if it doesn't exist.
        """
        self._target_db_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
_config: Optional[Config] = None


def get_config(source_db_path: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        source_db_path: Optional path to the legacy database.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or source_db_path is not None:
        _config = Config(source_db_path)
    return _config


def set_config(config: Config) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use.
    """
    global _config
    _config = config
