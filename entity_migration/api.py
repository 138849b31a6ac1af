"""
FastAPI status API for the migrated entities database.

IMPORTANT: This API ONLY reads from the target entities database.
It never touches the legacy database and never writes.

Run `entity-migration migrate` first to populate the target database.
"""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from entity_migration.config import Config


def _get_target_db_path() -> Path:
    """Get the path to the entities database."""
    return Path(os.getenv(
        "ENTITY_MIGRATION_DB_PATH",
        str(Config.DEFAULT_TARGET_PATH / Config.DEFAULT_TARGET_DB_NAME),
    ))


def _open_target_db() -> sqlite3.Connection:
    """
    Open the entities database read-only.

    Raises HTTPException if the database doesn't exist.
    """
    path = _get_target_db_path()
    if not path.exists():
        raise HTTPException(
            status_code=503,
            detail={
                "error": "entities database not found",
                "message": "Run `entity-migration create` and `entity-migration migrate` first",
                "path": str(path),
            },
        )
    return sqlite3.connect(f"file:{path}?mode=ro", uri=True)


app = FastAPI(
    title="Entity Migration API",
    version="0.1.0",
    description="Read-only API over the migrated entities + roles database.",
)

# Local dev CORS defaults
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        os.getenv("ENTITY_MIGRATION_ALLOWED_ORIGIN", "http://127.0.0.1:5173"),
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, Any]:
    """Health check - also verifies the entities database is accessible."""
    path = _get_target_db_path()
    return {
        "status": "ok" if path.exists() else "degraded",
        "target_db_exists": path.exists(),
        "target_db_path": str(path),
    }


@app.get("/summary")
def summary() -> Dict[str, Any]:
    """Get entity, role and time event counts."""
    conn = _open_target_db()
    try:
        cursor = conn.cursor()

        cursor.execute("""
            SELECT k.Code, COUNT(e.EntityID)
            FROM entity_kinds k
            LEFT JOIN entities e ON e.EntityKindID = k.EntityKindID
            GROUP BY k.Code
        """)
        kinds = dict(cursor.fetchall())

        cursor.execute("""
            SELECT r.Code, COUNT(m.EntityID)
            FROM entity_roles r
            LEFT JOIN entity_role_map m ON m.RoleID = r.RoleID
            GROUP BY r.Code
        """)
        roles = dict(cursor.fetchall())

        cursor.execute("SELECT COUNT(*) FROM time_events")
        total_time_events = cursor.fetchone()[0]

        cursor.execute("SELECT key, value FROM migration_state")
        state = dict(cursor.fetchall())

        return {
            "total_entities": sum(kinds.values()),
            "persons": kinds.get("PERSON", 0),
            "organizations": kinds.get("ORG", 0),
            "roles": roles,
            "total_time_events": total_time_events,
            "schema_version": state.get("schema_version"),
            "last_migration": state.get("last_migration"),
            "db_path": str(_get_target_db_path()),
        }
    finally:
        conn.close()


@app.get("/entities")
def entities(
    role: Optional[str] = Query(default=None, description="Role code, e.g. VENDOR"),
    limit: int = Query(default=50, ge=1, le=500),
) -> List[Dict[str, Any]]:
    """List entities, optionally only those holding a role."""
    conn = _open_target_db()
    try:
        cursor = conn.cursor()

        if role:
            cursor.execute("""
                SELECT e.EntityID, e.DisplayName, k.Code
                FROM entities e
                JOIN entity_kinds k ON k.EntityKindID = e.EntityKindID
                JOIN entity_role_map m ON m.EntityID = e.EntityID
                JOIN entity_roles r ON r.RoleID = m.RoleID
                WHERE r.Code = ?
                ORDER BY e.EntityID
                LIMIT ?
            """, (role.upper(), limit))
        else:
            cursor.execute("""
                SELECT e.EntityID, e.DisplayName, k.Code
                FROM entities e
                JOIN entity_kinds k ON k.EntityKindID = e.EntityKindID
                ORDER BY e.EntityID
                LIMIT ?
            """, (limit,))

        return [
            {"entity_id": row[0], "display_name": row[1], "kind": row[2]}
            for row in cursor.fetchall()
        ]
    finally:
        conn.close()


@app.get("/entities/{entity_id}")
def entity_detail(entity_id: int) -> Dict[str, Any]:
    """Get one entity with its extension, roles and contacts."""
    conn = _open_target_db()
    try:
        cursor = conn.cursor()

        cursor.execute("""
            SELECT e.EntityID, e.DisplayName, k.Code, e.IsActive, e.CreatedAt
            FROM entities e
            JOIN entity_kinds k ON k.EntityKindID = e.EntityKindID
            WHERE e.EntityID = ?
        """, (entity_id,))
        row = cursor.fetchone()
        if row is None:
            raise HTTPException(status_code=404, detail=f"Entity {entity_id} not found")

        result: Dict[str, Any] = {
            "entity_id": row[0],
            "display_name": row[1],
            "kind": row[2],
            "is_active": bool(row[3]),
            "created_at": row[4],
        }

        if row[2] == "PERSON":
            cursor.execute("""
                SELECT FirstName, MiddleName, LastName
                FROM entity_persons WHERE EntityID = ?
            """, (entity_id,))
            person = cursor.fetchone()
            if person:
                result["person"] = {
                    "first_name": person[0],
                    "middle_name": person[1],
                    "last_name": person[2],
                }
        else:
            cursor.execute("""
                SELECT o.LegalName, t.Code
                FROM entity_organizations o
                JOIN org_types t ON t.OrgTypeID = o.OrgTypeID
                WHERE o.EntityID = ?
            """, (entity_id,))
            org = cursor.fetchone()
            if org:
                result["organization"] = {"legal_name": org[0], "org_type": org[1]}

        cursor.execute("""
            SELECT r.Code
            FROM entity_role_map m
            JOIN entity_roles r ON r.RoleID = m.RoleID
            WHERE m.EntityID = ?
            ORDER BY r.Code
        """, (entity_id,))
        result["roles"] = [r[0] for r in cursor.fetchall()]

        cursor.execute("""
            SELECT t.PhoneTypeName, p.PhoneNumber, p.IsPrimary
            FROM entity_phones p
            JOIN phone_types t ON t.PhoneTypeID = p.PhoneTypeID
            WHERE p.EntityID = ?
            ORDER BY p.PhoneID
        """, (entity_id,))
        result["phones"] = [
            {"type": r[0], "number": r[1], "is_primary": bool(r[2])} for r in cursor.fetchall()
        ]

        cursor.execute("""
            SELECT t.EmailTypeName, m.Email, m.IsPrimary
            FROM entity_emails m
            JOIN email_types t ON t.EmailTypeID = m.EmailTypeID
            WHERE m.EntityID = ?
            ORDER BY m.EmailID
        """, (entity_id,))
        result["emails"] = [
            {"type": r[0], "email": r[1], "is_primary": bool(r[2])} for r in cursor.fetchall()
        ]

        cursor.execute("""
            SELECT t.AddressTypeName, a.Address1, a.Address2, a.City, a.State, a.Postal,
                   a.Country, a.IsPrimary
            FROM entity_addresses a
            JOIN address_types t ON t.AddressTypeID = a.AddressTypeID
            WHERE a.EntityID = ?
            ORDER BY a.AddressID
        """, (entity_id,))
        result["addresses"] = [
            {
                "type": r[0],
                "line1": r[1],
                "line2": r[2],
                "city": r[3],
                "state": r[4],
                "postal": r[5],
                "country": r[6],
                "is_primary": bool(r[7]),
            }
            for r in cursor.fetchall()
        ]

        return result
    finally:
        conn.close()


@app.get("/entities/{entity_id}/time-events")
def entity_time_events(
    entity_id: int,
    limit: int = Query(default=100, ge=1, le=1000),
) -> List[Dict[str, Any]]:
    """Get an entity's time events, oldest first."""
    conn = _open_target_db()
    try:
        cursor = conn.cursor()

        cursor.execute("SELECT 1 FROM entities WHERE EntityID = ?", (entity_id,))
        if cursor.fetchone() is None:
            raise HTTPException(status_code=404, detail=f"Entity {entity_id} not found")

        cursor.execute("""
            SELECT t.EventAt, a.Code, et.Code, t.Minutes, t.Note, t.VoidedAt
            FROM time_events t
            JOIN timeclock_actions a ON a.ActionID = t.ActionID
            JOIN timeclock_entry_types et ON et.EntryTypeID = t.EntryTypeID
            WHERE t.EntityID = ?
            ORDER BY t.EventAt, t.TimeEventID
            LIMIT ?
        """, (entity_id, limit))

        return [
            {
                "event_at": row[0],
                "action": row[1],
                "entry_type": row[2],
                "minutes": row[3],
                "note": row[4],
                "voided": row[5] is not None,
            }
            for row in cursor.fetchall()
        ]
    finally:
        conn.close()
