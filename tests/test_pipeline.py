"""
End-to-end tests for the migration pipeline.

Tests statistics, identity merging, idempotence, dry-run equivalence and
status reporting against the sample legacy database.
"""

import sqlite3
from pathlib import Path

import pytest

from entity_migration.etl.pipeline import (
    MigrationResult,
    SectionStats,
    find_profile_entity,
    get_migration_status,
    run_migration,
)
from entity_migration.etl.schema import create_schema

pytestmark = pytest.mark.integration

EXPECTED_STATISTICS = {
    "customers": {"processed": 4, "entities_created": 4, "entities_matched": 0},
    "vendors": {"processed": 4, "entities_created": 3, "entities_matched": 1},
    "employees": {"processed": 2, "entities_created": 1, "entities_matched": 1},
    "timeclock": {"rows": 5, "events": 5, "missing_employee": 1, "missing_timestamp": 1},
    "sublets": {"processed": 3, "entities_created": 1, "entities_matched": 2},
}


def _query(db_path: Path, sql: str, params: tuple = ()):
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def _entity_by_key(db_path: Path, key: str) -> int:
    rows = _query(db_path, "SELECT EntityID FROM entities WHERE DedupKey = ?", (key,))
    assert len(rows) == 1
    return rows[0][0]


def _roles(db_path: Path, entity_id: int):
    rows = _query(
        db_path,
        """
        SELECT r.Code FROM entity_role_map m
        JOIN entity_roles r ON r.RoleID = m.RoleID
        WHERE m.EntityID = ? ORDER BY r.Code
        """,
        (entity_id,),
    )
    return [row[0] for row in rows]


def _employee_entity(db_path: Path, legacy_id: int) -> int:
    return _query(
        db_path, "SELECT EntityID FROM employee_accounts WHERE LegacyEmployeeID = ?", (legacy_id,)
    )[0][0]


def _org_type(db_path: Path, name: str) -> str:
    return _query(
        db_path,
        """
        SELECT t.Code FROM entity_organizations o
        JOIN org_types t ON t.OrgTypeID = o.OrgTypeID
        WHERE o.LegalName = ?
        """,
        (name,),
    )[0][0]


class TestRunMigration:
    """Tests for a single full migration."""

    def test_statistics(self, sample_legacy_db: Path, tmp_path: Path):
        result = run_migration(sample_legacy_db, tmp_path / "entities.db")

        assert result.success, result.error
        assert result.dry_run is False
        assert result.statistics() == EXPECTED_STATISTICS

    def test_entity_totals(self, migrated_target_db: Path):
        status = get_migration_status(migrated_target_db)

        assert status["entity_count"] == 9
        assert status["person_count"] == 4
        assert status["org_count"] == 5
        assert status["role_counts"] == {
            "CUSTOMER": 4,
            "EMPLOYEE": 2,
            "SUBLET_PROVIDER": 2,
            "VENDOR": 4,
        }
        assert status["time_event_count"] == 5

    def test_company_spellings_merge(self, migrated_target_db: Path):
        acme = _entity_by_key(migrated_target_db, "acme towing")

        assert _roles(migrated_target_db, acme) == ["CUSTOMER", "SUBLET_PROVIDER", "VENDOR"]
        assert _query(
            migrated_target_db, "SELECT DisplayName FROM entities WHERE EntityID = ?", (acme,)
        ) == [("Acme Towing",)]

    def test_shared_phone_stored_once(self, migrated_target_db: Path):
        acme = _entity_by_key(migrated_target_db, "acme towing")
        phones = _query(
            migrated_target_db,
            "SELECT PhoneNumber FROM entity_phones WHERE EntityID = ? ORDER BY PhoneNumber",
            (acme,),
        )
        assert phones == [("555-0100",), ("555-0199",)]

    def test_people_merge_only_on_name_and_address(self, migrated_target_db: Path):
        john_employee = _employee_entity(migrated_target_db, 10)

        assert _roles(migrated_target_db, john_employee) == ["CUSTOMER", "EMPLOYEE"]
        smiths = _query(
            migrated_target_db,
            "SELECT COUNT(*) FROM entity_persons WHERE FirstName = 'John' AND LastName = 'Smith'",
        )
        assert smiths == [(2,)]

    def test_org_types(self, migrated_target_db: Path):
        assert _org_type(migrated_target_db, "City of Springfield") == "GOVERNMENT"
        assert _org_type(migrated_target_db, "First National Bank") == "FINANCIAL"
        assert _org_type(migrated_target_db, "Hyd Supply Co") == "BUSINESS"

    def test_person_vendor_is_classified(self, migrated_target_db: Path):
        rows = _query(
            migrated_target_db,
            """
            SELECT c.Code FROM vendor_accounts a
            JOIN vendor_lookup_codes c ON c.VendorLookupCodeID = a.VendorLookupCodeID
            WHERE a.LegacyVendorID = 3
            """,
        )
        assert rows == [("PARTS",)]

    def test_time_events(self, migrated_target_db: Path):
        john = _employee_entity(migrated_target_db, 10)
        maria = _employee_entity(migrated_target_db, 11)
        sql = """
            SELECT a.Code, t.EventAt, t.Minutes
            FROM time_events t
            JOIN timeclock_actions a ON a.ActionID = t.ActionID
            WHERE t.EntityID = ?
            ORDER BY t.EventAt, t.TimeEventID
        """

        assert _query(migrated_target_db, sql, (john,)) == [
            ("CLOCK_IN", "2024-01-02 08:00:00", None),
            ("CLOCK_OUT", "2024-01-02 16:30:00", 510),
            ("MEAL_START", "2024-01-03 12:00:00", None),
            ("MEAL_END", "2024-01-03 12:45:00", 45),
        ]
        assert _query(migrated_target_db, sql, (maria,)) == [
            ("PTO", "2024-01-04 08:00:00", 480),
        ]

    def test_empty_source(self, empty_legacy_db: Path, tmp_path: Path):
        result = run_migration(empty_legacy_db, tmp_path / "entities.db")

        assert result.success
        assert result.customers == SectionStats()
        assert result.timeclock.rows == 0

    def test_missing_source_fails(self, tmp_path: Path):
        result = run_migration(tmp_path / "missing.db", tmp_path / "entities.db")

        assert result.success is False
        assert "not found" in result.error


class TestIdempotence:
    """Tests for re-running the migration against the same target."""

    def test_second_run_creates_nothing(self, sample_legacy_db: Path, migrated_target_db: Path):
        before = get_migration_status(migrated_target_db)

        second = run_migration(sample_legacy_db, migrated_target_db)

        assert second.success, second.error
        for section in ("customers", "vendors", "employees", "sublets"):
            assert getattr(second, section).entities_created == 0
        after = get_migration_status(migrated_target_db)
        for key in ("entity_count", "person_count", "org_count", "role_counts", "time_event_count"):
            assert after[key] == before[key]

    def test_second_run_adds_no_rows(self, sample_legacy_db: Path, migrated_target_db: Path):
        tables = [
            "entity_phones",
            "entity_emails",
            "entity_addresses",
            "customer_billing",
            "vendor_accounts",
            "employee_accounts",
            "sublet_accounts",
        ]
        counts = {t: _query(migrated_target_db, f"SELECT COUNT(*) FROM {t}") for t in tables}

        run_migration(sample_legacy_db, migrated_target_db)

        assert {t: _query(migrated_target_db, f"SELECT COUNT(*) FROM {t}") for t in tables} == counts

    def test_nameless_records_rebind_on_rerun(self, blank_names_legacy_db: Path, tmp_path: Path):
        target = tmp_path / "entities.db"
        tables = [
            "entities",
            "entity_role_map",
            "entity_addresses",
            "entity_phones",
            "customer_accounts",
            "vendor_accounts",
            "employee_accounts",
            "time_events",
        ]

        first = run_migration(blank_names_legacy_db, target)
        assert first.success, first.error
        counts = {t: _query(target, f"SELECT COUNT(*) FROM {t}") for t in tables}
        nameless = _employee_entity(target, 12)

        second = run_migration(blank_names_legacy_db, target)

        assert second.success, second.error
        for section in ("customers", "vendors", "employees", "sublets"):
            assert getattr(second, section).entities_created == 0
        assert {t: _query(target, f"SELECT COUNT(*) FROM {t}") for t in tables} == counts
        assert _employee_entity(target, 12) == nameless
        assert _query(target, "SELECT COUNT(*) FROM entities WHERE DedupKey IS NULL") == [(3,)]

    def test_unseeded_rerun_duplicates_entities(self, sample_legacy_db: Path, migrated_target_db: Path):
        result = run_migration(sample_legacy_db, migrated_target_db, seed_from_store=False)

        assert result.success, result.error
        assert result.customers.entities_created == 4
        assert get_migration_status(migrated_target_db)["entity_count"] == 18


class TestDryRun:
    """Tests for dry runs."""

    def test_matches_live_run_and_writes_nothing(self, sample_legacy_db: Path, tmp_path: Path):
        target = tmp_path / "entities.db"
        create_schema(target)

        dry = run_migration(sample_legacy_db, target, dry_run=True)

        assert dry.success, dry.error
        assert dry.dry_run is True
        assert dry.statistics() == EXPECTED_STATISTICS
        status = get_migration_status(target)
        assert status["entity_count"] == 0
        assert status["time_event_count"] == 0
        assert status["last_migration"] is None

        live = run_migration(sample_legacy_db, target)
        assert live.statistics() == dry.statistics()

    def test_dry_run_after_live_run_matches_everything(
        self, sample_legacy_db: Path, migrated_target_db: Path
    ):
        dry = run_migration(sample_legacy_db, migrated_target_db, dry_run=True)

        assert dry.success, dry.error
        assert dry.customers.entities_created == 0
        assert dry.vendors.entities_matched == 4

    def test_missing_target_fails(self, sample_legacy_db: Path, tmp_path: Path):
        target = tmp_path / "missing.db"

        result = run_migration(sample_legacy_db, target, dry_run=True)

        assert result.success is False
        assert not target.exists()

    def test_target_without_schema_fails(self, sample_legacy_db: Path, tmp_path: Path):
        target = tmp_path / "blank.db"
        sqlite3.connect(str(target)).close()

        result = run_migration(sample_legacy_db, target, dry_run=True)

        assert result.success is False
        assert "schema" in result.error.lower()


class TestMigrationStatus:
    """Tests for get_migration_status and MigrationResult."""

    def test_missing_database(self, tmp_path: Path):
        assert get_migration_status(tmp_path / "missing.db") == {"exists": False}

    def test_invalid_schema(self, tmp_path: Path):
        db_path = tmp_path / "blank.db"
        sqlite3.connect(str(db_path)).close()
        assert get_migration_status(db_path) == {"exists": True, "schema_valid": False}

    def test_recorded_state(self, migrated_target_db: Path):
        status = get_migration_status(migrated_target_db)

        assert status["exists"] is True
        assert status["schema_valid"] is True
        assert status["schema_version"] == "2.0.0"
        assert status["last_migration"].endswith("Z")

    def test_result_str(self):
        result = MigrationResult(success=False, error="boom")
        text = str(result)

        assert "FAILED: boom" in text
        assert "live" in text
        assert "Customers: 0 processed (0 new entities, 0 matched)" in text


class TestFindProfileEntity:
    """Tests for looking up entities through their role profiles."""

    def test_lookup_by_legacy_id(self, migrated_target_db: Path):
        conn = sqlite3.connect(str(migrated_target_db))
        try:
            assert find_profile_entity(conn, "employee_accounts", 10) == _employee_entity(
                migrated_target_db, 10
            )
            assert find_profile_entity(conn, "vendor_accounts", 1) is not None
            assert find_profile_entity(conn, "customer_accounts", 404) is None
        finally:
            conn.close()

    def test_rejects_other_tables(self, target_conn: sqlite3.Connection):
        with pytest.raises(ValueError, match="Not a role profile table"):
            find_profile_entity(target_conn, "entities; DROP TABLE entities", 1)
