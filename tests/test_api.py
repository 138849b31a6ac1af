"""
Tests for FastAPI endpoints.

Tests the API routes using FastAPI's TestClient against a migrated
entities database.
"""

import os
import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from entity_migration.api import app


@pytest.fixture
def client():
    """Create a TestClient for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def migrated_env(migrated_target_db: Path):
    """Point the API at the migrated database."""
    with patch.dict(os.environ, {"ENTITY_MIGRATION_DB_PATH": str(migrated_target_db)}):
        yield migrated_target_db


@pytest.fixture
def missing_env(tmp_path: Path):
    with patch.dict(os.environ, {"ENTITY_MIGRATION_DB_PATH": str(tmp_path / "missing.db")}):
        yield tmp_path / "missing.db"


def _entity_id(db_path: Path, sql: str) -> int:
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(sql).fetchone()[0]
    finally:
        conn.close()


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_ok(self, client, migrated_env):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "target_db_exists": True,
            "target_db_path": str(migrated_env),
        }

    def test_health_degraded_without_database(self, client, missing_env):
        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["target_db_exists"] is False

    def test_health_is_get_only(self, client):
        """Health endpoint should only accept GET requests."""
        response = client.post("/health")
        assert response.status_code == 405


class TestSummaryEndpoint:
    """Tests for /summary endpoint."""

    def test_summary_counts(self, client, migrated_env):
        response = client.get("/summary")

        assert response.status_code == 200
        data = response.json()
        assert data["total_entities"] == 9
        assert data["persons"] == 4
        assert data["organizations"] == 5
        assert data["roles"] == {
            "CUSTOMER": 4,
            "EMPLOYEE": 2,
            "SUBLET_PROVIDER": 2,
            "VENDOR": 4,
        }
        assert data["total_time_events"] == 5
        assert data["schema_version"] == "2.0.0"
        assert data["last_migration"] is not None
        assert data["db_path"] == str(migrated_env)

    def test_missing_database_is_503(self, client, missing_env):
        response = client.get("/summary")

        assert response.status_code == 503
        detail = response.json()["detail"]
        assert detail["error"] == "entities database not found"
        assert detail["path"] == str(missing_env)


class TestEntitiesEndpoint:
    """Tests for /entities and /entities/{id}."""

    def test_list_all(self, client, migrated_env):
        data = client.get("/entities").json()

        assert len(data) == 9
        assert data[0] == {"entity_id": data[0]["entity_id"], "display_name": "Acme Towing", "kind": "ORG"}

    def test_filter_by_role(self, client, migrated_env):
        vendors = client.get("/entities", params={"role": "vendor"}).json()
        assert len(vendors) == 4

        sublets = client.get("/entities", params={"role": "SUBLET_PROVIDER"}).json()
        assert sorted(e["display_name"] for e in sublets) == ["Acme Towing", "Glass Pros"]

    def test_limit(self, client, migrated_env):
        assert len(client.get("/entities", params={"limit": 2}).json()) == 2
        assert client.get("/entities", params={"limit": 0}).status_code == 422

    def test_org_detail(self, client, migrated_env):
        acme = _entity_id(migrated_env, "SELECT EntityID FROM entities WHERE DedupKey = 'acme towing'")

        data = client.get(f"/entities/{acme}").json()

        assert data["kind"] == "ORG"
        assert data["is_active"] is True
        assert data["organization"] == {"legal_name": "Acme Towing", "org_type": "BUSINESS"}
        assert data["roles"] == ["CUSTOMER", "SUBLET_PROVIDER", "VENDOR"]
        assert {"type": "fax", "number": "555-0199", "is_primary": False} in data["phones"]
        assert data["emails"] == [{"type": "main", "email": "ap@acme.test", "is_primary": True}]
        assert data["addresses"][0]["line1"] == "1 Main St"

    def test_person_detail(self, client, migrated_env):
        john = _entity_id(
            migrated_env, "SELECT EntityID FROM employee_accounts WHERE LegacyEmployeeID = 10"
        )

        data = client.get(f"/entities/{john}").json()

        assert data["kind"] == "PERSON"
        assert data["person"]["first_name"] == "John"
        assert data["person"]["last_name"] == "Smith"
        assert data["roles"] == ["CUSTOMER", "EMPLOYEE"]

    def test_unknown_entity_is_404(self, client, migrated_env):
        assert client.get("/entities/9999").status_code == 404


class TestTimeEventsEndpoint:
    """Tests for /entities/{id}/time-events."""

    def test_events_in_order(self, client, migrated_env):
        john = _entity_id(
            migrated_env, "SELECT EntityID FROM employee_accounts WHERE LegacyEmployeeID = 10"
        )

        data = client.get(f"/entities/{john}/time-events").json()

        assert [e["action"] for e in data] == ["CLOCK_IN", "CLOCK_OUT", "MEAL_START", "MEAL_END"]
        assert data[1] == {
            "event_at": "2024-01-02 16:30:00",
            "action": "CLOCK_OUT",
            "entry_type": "IMPORTED",
            "minutes": 510,
            "note": "Clock In",
            "voided": False,
        }

    def test_unknown_entity_is_404(self, client, migrated_env):
        assert client.get("/entities/9999/time-events").status_code == 404

    def test_missing_database_is_503(self, client, missing_env):
        assert client.get("/entities/1/time-events").status_code == 503
