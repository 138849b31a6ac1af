"""
Entity Migration - move a legacy shop database into an entities + roles model.

This package provides functionality to:
- Create, update and drop the target entities schema
- Resolve legacy customers, vendors, employees and sublet companies to entities
- Rebuild legacy timeclock rows as time events
- Validate and inspect the migrated store
"""

__version__ = "0.1.0"

from entity_migration.config import get_config, Config
from entity_migration.database import DatabaseConnection

__all__ = [
    "get_config",
    "Config",
    "DatabaseConnection",
]
