"""
Database connection and metadata query module.

Provides connection management for the legacy (read-only) and target
(read-write) SQLite databases, plus the existence checks used by the schema
lifecycle commands.
"""

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import List, Optional, Tuple, Union
import logging

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Database connection manager for a SQLite file.

    Read-only connections open the file through a ``mode=ro`` URI and never
    create it. Read-write connections create the parent directory and enable
    foreign key enforcement.
    """

    def __init__(self, db_path: Union[str, Path], *, read_only: bool = False):
        """
        Initialize database connection.

        Args:
            db_path: Path to the SQLite file.
            read_only: Open without write access.

        Raises:
            ValueError: If a read-only database does not exist.
        """
        self.db_path = Path(db_path)
        self.read_only = read_only
        self._connection: Optional[sqlite3.Connection] = None

        if read_only and not self.db_path.exists():
            raise ValueError(f"Database file not found: {self.db_path}")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def connect(self) -> sqlite3.Connection:
        """
        Establish the connection.

        Returns:
            SQLite connection object.

        Raises:
            sqlite3.Error: If connection fails.
        """
        if self._connection is not None:
            return self._connection

        try:
            if self.read_only:
                uri = f"file:{self.db_path}?mode=ro"
                self._connection = sqlite3.connect(uri, uri=True)
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._connection = sqlite3.connect(str(self.db_path))
                self._connection.execute("PRAGMA foreign_keys = ON;")
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to database {self.db_path}: {e}")
            raise

        mode = "read-only" if self.read_only else "read-write"
        logger.info(f"Connected to database ({mode}): {self.db_path}")
        return self._connection

    def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.debug(f"Database connection closed: {self.db_path}")

    @property
    def connection(self) -> sqlite3.Connection:
        """
        Get database connection.

        Raises:
            RuntimeError: If connection not established.
        """
        if self._connection is None:
            raise RuntimeError("Database connection not established. Call connect() first.")
        return self._connection

    def _require_table_exists(self, table_name: str) -> str:
        """
        Validate a table name before interpolating into SQL.

        SQLite does not support binding identifiers, so we only allow table names
        that exist in sqlite_master.
        """
        if not self.table_exists(table_name):
            raise ValueError(f"Unknown table name: {table_name!r}")
        return table_name

    # -------------------------------------------------------------------------
    # Existence checks
    # -------------------------------------------------------------------------

    def table_exists(self, table_name: str) -> bool:
        query = "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?;"
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(query, (table_name,))
            return cursor.fetchone() is not None

    def column_exists(self, table_name: str, column_name: str) -> bool:
        if not self.table_exists(table_name):
            return False
        return any(column[1] == column_name for column in self.get_columns_for_table(table_name))

    def index_exists(self, index_name: str) -> bool:
        query = "SELECT 1 FROM sqlite_master WHERE type='index' AND name=?;"
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(query, (index_name,))
            return cursor.fetchone() is not None

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    def get_table_names(self) -> List[str]:
        """
        Get all user table names in the database.

        Returns:
            Sorted list of table names.
        """
        query = (
            "SELECT `name` FROM `sqlite_master` "
            "WHERE `type`='table' AND `name` NOT LIKE 'sqlite_%' ORDER BY `name`;"
        )
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(query)
            return [row[0] for row in cursor.fetchall()]

    def get_columns_for_table(
        self, table_name: str
    ) -> List[Tuple[int, str, str, int, Optional[str], int]]:
        """
        Get column information for a table.

        Returns:
            List of PRAGMA table_info tuples (cid, name, type, notnull, default, pk).
        """
        safe_table = self._require_table_exists(table_name)
        query = f"PRAGMA table_info('{safe_table}');"
        with closing(self.connection.cursor()) as cursor:
            cursor.execute(query)
            return cursor.fetchall()

    def execute_script(self, script: str) -> None:
        """Execute a multi-statement SQL script and commit."""
        self.connection.executescript(script)
        self.connection.commit()
