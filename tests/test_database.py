"""
Tests for database module.

Tests connection modes and metadata queries.
"""

import sqlite3
from pathlib import Path

import pytest

from entity_migration.database import DatabaseConnection


@pytest.fixture
def small_db(tmp_path: Path) -> Path:
    db_path = tmp_path / "small.db"
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(
            """
            CREATE TABLE people (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT);
            CREATE INDEX idx_people_name ON people(name);
            INSERT INTO people (name) VALUES ('Ann'), ('Bob');
            CREATE TABLE empty_table (id INTEGER);
            """
        )
        conn.commit()
    finally:
        conn.close()
    return db_path


class TestConnection:
    """Tests for connection management."""

    def test_read_only_missing_file(self, tmp_path: Path):
        with pytest.raises(ValueError, match="not found"):
            DatabaseConnection(tmp_path / "missing.db", read_only=True)

    def test_read_only_rejects_writes(self, small_db: Path):
        with DatabaseConnection(small_db, read_only=True) as db:
            with pytest.raises(sqlite3.OperationalError):
                db.connection.execute("INSERT INTO people (name) VALUES ('Cy')")

    def test_read_write_creates_file(self, tmp_path: Path):
        db_path = tmp_path / "sub" / "new.db"
        with DatabaseConnection(db_path) as db:
            db.execute_script("CREATE TABLE t (x INTEGER);")
        assert db_path.exists()

    def test_foreign_keys_enabled(self, tmp_path: Path):
        with DatabaseConnection(tmp_path / "fk.db") as db:
            assert db.connection.execute("PRAGMA foreign_keys;").fetchall() == [(1,)]

    def test_connection_before_connect(self, small_db: Path):
        db = DatabaseConnection(small_db)
        with pytest.raises(RuntimeError, match="not established"):
            db.connection

    def test_close_resets(self, small_db: Path):
        db = DatabaseConnection(small_db)
        first = db.connect()
        assert db.connect() is first
        db.close()
        with pytest.raises(RuntimeError):
            db.connection


class TestMetadata:
    """Tests for existence checks and table metadata."""

    def test_table_exists(self, small_db: Path):
        with DatabaseConnection(small_db, read_only=True) as db:
            assert db.table_exists("people")
            assert not db.table_exists("ghosts")

    def test_column_exists(self, small_db: Path):
        with DatabaseConnection(small_db, read_only=True) as db:
            assert db.column_exists("people", "name")
            assert not db.column_exists("people", "age")
            assert not db.column_exists("ghosts", "name")

    def test_index_exists(self, small_db: Path):
        with DatabaseConnection(small_db, read_only=True) as db:
            assert db.index_exists("idx_people_name")
            assert not db.index_exists("idx_missing")

    def test_table_names_exclude_internal(self, small_db: Path):
        with DatabaseConnection(small_db, read_only=True) as db:
            assert db.get_table_names() == ["empty_table", "people"]

    def test_columns_for_table(self, small_db: Path):
        with DatabaseConnection(small_db, read_only=True) as db:
            assert [column[1] for column in db.get_columns_for_table("people")] == ["id", "name"]

    def test_unknown_table_rejected(self, small_db: Path):
        with DatabaseConnection(small_db, read_only=True) as db:
            with pytest.raises(ValueError, match="Unknown table"):
                db.get_columns_for_table("people; DROP TABLE people")
