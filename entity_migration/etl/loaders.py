"""
Loaders for the target entities database.

This module writes reconstructed time events and migration bookkeeping into
the target store. All operations are idempotent (safe to run multiple times).

Design Decisions:
    1. Use INSERT OR IGNORE against the time_events natural key
       (EntityID, ActionID, EventAt, EntryTypeID)
    2. Action and entry-type codes are seeded; a missing one is fatal
    3. migration_state is a key/value table written with INSERT OR REPLACE
    4. Commits are left to the caller (one commit per migration phase)
"""

import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional
import logging

from entity_migration.etl.identity import is_placeholder
from entity_migration.etl.lookups import LookupResolver
from entity_migration.etl.timeclock import TimeEvent

logger = logging.getLogger(__name__)

EVENT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

STATE_LAST_MIGRATION = "last_migration"
STATE_SCHEMA_VERSION = "schema_version"


def _now_iso() -> str:
    """Get current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _format_event_time(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(EVENT_TIMESTAMP_FORMAT) if value is not None else None


def load_time_events(
    conn: sqlite3.Connection,
    events: Iterable[TimeEvent],
    lookups: LookupResolver,
    *,
    dry_run: bool = False,
) -> int:
    """
    Load reconstructed time events into time_events.

    Events for placeholder entity ids are resolved but never written, and
    a dry run writes nothing.

    Args:
        conn: SQLite connection to the target database.
        events: Events produced by the timeclock reconstructor.
        lookups: Lookup resolver bound to the same connection.
        dry_run: If True, resolve codes but skip the insert.

    Returns:
        Number of new events written.

    Raises:
        SeedDataError: If an action or entry-type code was never seeded.
    """
    query = """
        INSERT OR IGNORE INTO time_events
            (EntityID, ActionID, EventAt, EntryTypeID, Minutes, Note,
             WorkSessionID, VoidedAt, VoidedBy, VoidReason, CreatedAt)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
    """

    action_ids: Dict[str, int] = {}
    entry_type_ids: Dict[str, int] = {}
    now = _now_iso()

    loaded = 0
    with closing(conn.cursor()) as cursor:
        for event in events:
            code = event.action.value
            if code not in action_ids:
                action_ids[code] = lookups.require("timeclock_actions", code)
            if event.entry_type not in entry_type_ids:
                entry_type_ids[event.entry_type] = lookups.require(
                    "timeclock_entry_types", event.entry_type
                )

            if dry_run or is_placeholder(event.entity_id):
                continue

            cursor.execute(
                query,
                (
                    event.entity_id,
                    action_ids[code],
                    _format_event_time(event.event_at),
                    entry_type_ids[event.entry_type],
                    event.minutes,
                    event.note,
                    event.work_session_id,
                    _format_event_time(event.voided_at),
                    event.voided_by,
                    event.void_reason,
                    now,
                ),
            )
            if cursor.rowcount > 0:
                loaded += 1

    logger.debug(f"Loaded {loaded} new time events")
    return loaded


def update_migration_state(conn: sqlite3.Connection, key: str, value: str) -> None:
    """
    Update or insert a migration state value.

    Args:
        conn: SQLite connection to the target database.
        key: State key (e.g., 'last_migration', 'schema_version').
        value: State value.
    """
    query = """
        INSERT OR REPLACE INTO migration_state (key, value, updated_at)
        VALUES (?, ?, ?);
    """

    with closing(conn.cursor()) as cursor:
        cursor.execute(query, (key, value, _now_iso()))
        conn.commit()

    logger.debug(f"Updated migration state: {key} = {value}")


def get_migration_state(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """
    Get a migration state value.

    Returns:
        State value, or None if not found.
    """
    query = "SELECT value FROM migration_state WHERE key = ?;"

    with closing(conn.cursor()) as cursor:
        cursor.execute(query, (key,))
        result = cursor.fetchone()
        return result[0] if result else None


def get_time_event_count(conn: sqlite3.Connection) -> int:
    """Get total time event count in the target database."""
    with closing(conn.cursor()) as cursor:
        cursor.execute("SELECT COUNT(*) FROM time_events;")
        result = cursor.fetchone()
        return result[0] if result else 0


def get_role_counts(conn: sqlite3.Connection) -> Dict[str, int]:
    """
    Count role grants per role code.

    Returns:
        Mapping of role code to number of entities holding it.
    """
    query = """
        SELECT r.Code, COUNT(m.EntityID)
        FROM entity_roles r
        LEFT JOIN entity_role_map m ON m.RoleID = r.RoleID
        GROUP BY r.Code
        ORDER BY r.Code;
    """
    with closing(conn.cursor()) as cursor:
        cursor.execute(query)
        return {code: count for code, count in cursor.fetchall()}
