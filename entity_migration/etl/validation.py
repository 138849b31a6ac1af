"""
Post-migration validation.

This module provides automated checks to verify a migration left the target
store consistent. Run them after `migrate` (the `validate` command).

Validation Checks:
    1. Every entity has exactly one extension row of its own kind
    2. Every role profile belongs to an entity holding that role
    3. No two entities of a kind share a dedup key
    4. No time event carries a negative duration
    5. Time event timestamps are well formed
    6. Legacy source counts are covered (informational)
    7. Migration state is recorded
"""

import sqlite3
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union
import logging

from entity_migration.database import DatabaseConnection
from entity_migration.etl.extractors import get_source_counts
from entity_migration.etl.loaders import STATE_LAST_MIGRATION, STATE_SCHEMA_VERSION

logger = logging.getLogger(__name__)

# (profile table, role code)
ROLE_PROFILES = [
    ("customer_accounts", "CUSTOMER"),
    ("vendor_accounts", "VENDOR"),
    ("employee_accounts", "EMPLOYEE"),
    ("sublet_accounts", "SUBLET_PROVIDER"),
]


@dataclass
class ValidationCheck:
    """Result of a single validation check."""

    name: str
    passed: bool
    message: str
    details: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of all validation checks."""

    passed: bool
    checks: List[ValidationCheck] = field(default_factory=list)
    summary: str = ""

    def __str__(self) -> str:
        lines = []
        for check in self.checks:
            icon = "✓" if check.passed else "✗"
            lines.append(f"{icon} {check.name}: {check.message}")
            if check.details and not check.passed:
                lines.append(f"  → {check.details}")

        status = "All checks passed" if self.passed else "Some checks failed"
        lines.append(f"\n{status}.")
        return "\n".join(lines)


def _scalar(conn: sqlite3.Connection, query: str, params: tuple = ()) -> int:
    with closing(conn.cursor()) as cursor:
        cursor.execute(query, params)
        result = cursor.fetchone()
        return result[0] if result and result[0] is not None else 0


def check_extension_integrity(conn: sqlite3.Connection) -> ValidationCheck:
    """
    Verify every entity has exactly one extension row matching its kind.

    Args:
        conn: Connection to the target database.

    Returns:
        ValidationCheck result.
    """
    query = """
        SELECT COUNT(*)
        FROM entities e
        JOIN entity_kinds k ON k.EntityKindID = e.EntityKindID
        LEFT JOIN entity_persons p ON p.EntityID = e.EntityID
        LEFT JOIN entity_organizations o ON o.EntityID = e.EntityID
        WHERE NOT (
            (k.Code = 'PERSON' AND p.EntityID IS NOT NULL AND o.EntityID IS NULL)
            OR (k.Code = 'ORG' AND o.EntityID IS NOT NULL AND p.EntityID IS NULL)
        );
    """
    broken = _scalar(conn, query)
    total = _scalar(conn, "SELECT COUNT(*) FROM entities;")

    passed = broken == 0
    return ValidationCheck(
        name="Extension integrity",
        passed=passed,
        message=f"{total} entities, all with one extension" if passed else f"{broken}/{total} broken",
        details="Entities with no extension, both extensions, or the wrong kind" if not passed else None,
    )


def check_profiles_have_roles(conn: sqlite3.Connection) -> ValidationCheck:
    """
    Report role profile rows whose entity no longer holds the role.

    A profile outliving its role grant is accepted, so this check always
    passes and only counts the orphans.
    """
    orphans: List[str] = []
    for table, role in ROLE_PROFILES:
        query = f"""
            SELECT COUNT(*)
            FROM {table} a
            WHERE NOT EXISTS (
                SELECT 1
                FROM entity_role_map m
                JOIN entity_roles r ON r.RoleID = m.RoleID
                WHERE m.EntityID = a.EntityID AND r.Code = ?
            );
        """
        count = _scalar(conn, query, (role,))
        if count:
            orphans.append(f"{table}: {count}")

    return ValidationCheck(
        name="Profiles have roles",
        passed=True,
        message="; ".join(orphans) + " without role grant" if orphans else "All profiles granted",
        details="Orphaned profiles are kept for legacy compatibility" if orphans else None,
    )


def check_unique_dedup_keys(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify no two entities of the same kind share a non-empty dedup key."""
    query = """
        SELECT COUNT(*) FROM (
            SELECT EntityKindID, DedupKey
            FROM entities
            WHERE DedupKey IS NOT NULL AND DedupKey <> ''
            GROUP BY EntityKindID, DedupKey
            HAVING COUNT(*) > 1
        );
    """
    duplicates = _scalar(conn, query)

    passed = duplicates == 0
    return ValidationCheck(
        name="Unique dedup keys",
        passed=passed,
        message="No duplicate keys" if passed else f"{duplicates} duplicated keys",
        details="Entities were created twice for the same key" if not passed else None,
    )


def check_no_negative_minutes(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify no time event carries a negative duration."""
    negative = _scalar(conn, "SELECT COUNT(*) FROM time_events WHERE Minutes < 0;")

    passed = negative == 0
    return ValidationCheck(
        name="No negative minutes",
        passed=passed,
        message="All durations non-negative" if passed else f"{negative} negative durations",
    )


def check_event_timestamps(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify all EventAt values are 'YYYY-MM-DD HH:MM:SS'."""
    query = """
        SELECT COUNT(*) FROM time_events
        WHERE EventAt NOT GLOB
            '[0-9][0-9][0-9][0-9]-[0-9][0-9]-[0-9][0-9] [0-9][0-9]:[0-9][0-9]:[0-9][0-9]';
    """
    invalid = _scalar(conn, query)

    passed = invalid == 0
    return ValidationCheck(
        name="Event timestamps",
        passed=passed,
        message="All timestamps valid" if passed else f"{invalid} invalid timestamps",
    )


def check_source_coverage(
    source_conn: sqlite3.Connection,
    conn: sqlite3.Connection,
) -> ValidationCheck:
    """
    Compare legacy row counts with migrated profiles.

    Informational: merges legitimately make profiles fewer than source rows.
    """
    source = get_source_counts(source_conn)
    customers = _scalar(conn, "SELECT COUNT(*) FROM customer_accounts;")
    vendors = _scalar(conn, "SELECT COUNT(*) FROM vendor_accounts;")
    employees = _scalar(conn, "SELECT COUNT(*) FROM employee_accounts;")

    return ValidationCheck(
        name="Source coverage",
        passed=True,
        message=(
            f"customers {customers}/{source.get('tblCustomers', 0)}, "
            f"vendors {vendors}/{source.get('tblVendors', 0)}, "
            f"employees {employees}/{source.get('tblEmployees', 0)}"
        ),
    )


def check_migration_state(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify migration state contains the schema version and a completed run."""
    with closing(conn.cursor()) as cursor:
        cursor.execute("SELECT key, value FROM migration_state;")
        state = dict(cursor.fetchall())

    required_keys = [STATE_SCHEMA_VERSION, STATE_LAST_MIGRATION]
    missing = [k for k in required_keys if k not in state]

    if missing:
        return ValidationCheck(
            name="Migration state",
            passed=False,
            message=f"Missing required keys: {missing}",
        )

    return ValidationCheck(
        name="Migration state",
        passed=True,
        message=f"Valid (last migration: {state[STATE_LAST_MIGRATION]})",
    )


def validate_migration(
    target_db_path: Union[str, Path],
    source_db_path: Optional[Union[str, Path]] = None,
) -> ValidationResult:
    """
    Run all validation checks after a migration.

    Args:
        target_db_path: Path to the target database.
        source_db_path: Optional legacy database for the coverage check.

    Returns:
        ValidationResult with all check results.
    """
    checks: List[ValidationCheck] = []

    try:
        with DatabaseConnection(target_db_path, read_only=True) as target:
            conn = target.connection
            checks.append(check_extension_integrity(conn))
            checks.append(check_profiles_have_roles(conn))
            checks.append(check_unique_dedup_keys(conn))
            checks.append(check_no_negative_minutes(conn))
            checks.append(check_event_timestamps(conn))
            checks.append(check_migration_state(conn))

            if source_db_path is not None:
                with DatabaseConnection(source_db_path, read_only=True) as source:
                    checks.append(check_source_coverage(source.connection, conn))

    except Exception as e:
        checks.append(
            ValidationCheck(
                name="Connection",
                passed=False,
                message=f"Failed to validate: {e}",
            )
        )

    all_passed = all(check.passed for check in checks)
    passed_count = sum(1 for c in checks if c.passed)

    result = ValidationResult(
        passed=all_passed,
        checks=checks,
        summary=f"{passed_count}/{len(checks)} checks passed",
    )

    logger.info(f"Validation complete: {result.summary}")
    return result
