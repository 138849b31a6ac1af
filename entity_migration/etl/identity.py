"""
Entity resolution for the migration.

This module decides, for each legacy record, whether it refers to a new or an
already-known canonical entity. Identity resolution is a *process*, not a
simple join: the same company can appear as a vendor and as a sublet
provider, and two "John Smith" customers may be different people.

Design Decisions:
    1. Persons key on normalized first + last name + an address fragment
    2. Organizations key on normalized legal name alone (cross-source merge)
    3. The key -> EntityID map lives for one run; a miss is looked up in
       entities.DedupKey before creating (lazy write-through cache)
    4. An empty key is never cached: blank records always get a new entity
    5. Dry runs write nothing and hand out negative placeholder ids

Resolution Strategy:
    1. Exact key hit in the in-process map
    2. Exact key hit in entities.DedupKey for the same kind (seed_from_store)
    3. Otherwise create entities + entity_persons / entity_organizations
"""

import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Dict, NamedTuple, Optional
import logging

from entity_migration.etl.lookups import LookupResolver
from entity_migration.etl.normalizers import org_key, person_key

logger = logging.getLogger(__name__)

KIND_PERSON = "PERSON"
KIND_ORG = "ORG"

ORG_BUSINESS = "BUSINESS"
ORG_GOVERNMENT = "GOVERNMENT"
ORG_FINANCIAL = "FINANCIAL"
ORG_OTHER = "OTHER"

# Stored when a legacy person has no first or last name
UNKNOWN_FIRST_NAME = "Unknown"
UNKNOWN_LAST_NAME = "Unknown"


class Resolution(NamedTuple):
    """Outcome of resolving one legacy record to an entity."""

    entity_id: int
    created: bool
    key: str


def _now() -> str:
    """Get current UTC timestamp as stored in DATETIME columns."""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def is_placeholder(entity_id: int) -> bool:
    """True for dry-run / unresolved identifiers that must never be written."""
    return entity_id <= 0


class EntityResolver:
    """
    Resolve-or-create canonical entities for one migration run.

    Args:
        conn: SQLite connection to the target database.
        lookups: Lookup resolver bound to the same connection.
        dry_run: If True, never write; return negative placeholder ids.
        seed_from_store: If True, consult entities.DedupKey on a map miss.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        lookups: LookupResolver,
        *,
        dry_run: bool = False,
        seed_from_store: bool = True,
    ):
        self.conn = conn
        self.lookups = lookups
        self.dry_run = dry_run
        self.seed_from_store = seed_from_store
        self._person_map: Dict[str, int] = {}
        self._org_map: Dict[str, int] = {}
        self._next_placeholder = -1

    # -------------------------------------------------------------------------
    # Public contract
    # -------------------------------------------------------------------------

    def resolve_or_create_person(
        self,
        first_name: Optional[str],
        middle_name: Optional[str],
        last_name: Optional[str],
        display_name: str,
        dedup_extra: Optional[str] = None,
        *,
        default_last_name: str = UNKNOWN_LAST_NAME,
    ) -> int:
        """Return the EntityID for a person, creating it if needed."""
        return self.resolve_person(
            first_name,
            middle_name,
            last_name,
            display_name,
            dedup_extra,
            default_last_name=default_last_name,
        ).entity_id

    def resolve_or_create_org(
        self,
        legal_name: str,
        org_type_code: str,
        display_name: str,
    ) -> int:
        """Return the EntityID for an organization, creating it if needed."""
        return self.resolve_org(legal_name, org_type_code, display_name).entity_id

    # -------------------------------------------------------------------------
    # Detailed resolution (used by the pipeline for statistics)
    # -------------------------------------------------------------------------

    def resolve_person(
        self,
        first_name: Optional[str],
        middle_name: Optional[str],
        last_name: Optional[str],
        display_name: str,
        dedup_extra: Optional[str] = None,
        *,
        default_last_name: str = UNKNOWN_LAST_NAME,
    ) -> Resolution:
        """
        Resolve a person, creating entities + entity_persons on a miss.

        The key is built from the names as given, so two records with blank
        names never merge. Blank names are stored as "Unknown" and
        default_last_name.
        """
        key = person_key(first_name, last_name, dedup_extra)
        known = self._lookup(self._person_map, KIND_PERSON, key)
        if known is not None:
            logger.debug(f"Person key {key!r} -> existing entity {known}")
            return Resolution(known, False, key)

        entity_id = self._create_entity(KIND_PERSON, display_name, key)
        if not is_placeholder(entity_id):
            query = """
                INSERT INTO entity_persons (EntityID, FirstName, MiddleName, LastName)
                VALUES (?, ?, ?, ?);
            """
            with closing(self.conn.cursor()) as cursor:
                cursor.execute(
                    query,
                    (
                        entity_id,
                        first_name or UNKNOWN_FIRST_NAME,
                        middle_name or None,
                        last_name or default_last_name,
                    ),
                )

        self._remember(self._person_map, key, entity_id)
        logger.debug(f"Created person entity {entity_id} for {display_name!r}")
        return Resolution(entity_id, True, key)

    def resolve_org(
        self,
        legal_name: str,
        org_type_code: str,
        display_name: str,
    ) -> Resolution:
        key = org_key(legal_name)
        known = self._lookup(self._org_map, KIND_ORG, key)
        if known is not None:
            logger.debug(f"Org key {key!r} -> existing entity {known}")
            return Resolution(known, False, key)

        # Resolve before creating so an unseeded org type aborts cleanly
        org_type_id = self.lookups.org_type_id(org_type_code)

        entity_id = self._create_entity(KIND_ORG, display_name, key)
        if not is_placeholder(entity_id):
            query = """
                INSERT INTO entity_organizations (EntityID, OrgTypeID, LegalName, DBAName, TaxID)
                VALUES (?, ?, ?, NULL, NULL);
            """
            with closing(self.conn.cursor()) as cursor:
                cursor.execute(query, (entity_id, org_type_id, legal_name))

        self._remember(self._org_map, key, entity_id)
        logger.debug(f"Created {org_type_code} org entity {entity_id} for {display_name!r}")
        return Resolution(entity_id, True, key)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _lookup(self, cache: Dict[str, int], kind: str, key: str) -> Optional[int]:
        if not key:
            return None
        if key in cache:
            return cache[key]
        if not self.seed_from_store:
            return None

        stored = find_entity_by_key(self.conn, self.lookups.entity_kind_id(kind), key)
        if stored is not None:
            cache[key] = stored
        return stored

    def _remember(self, cache: Dict[str, int], key: str, entity_id: int) -> None:
        if key:
            cache[key] = entity_id

    def _create_entity(self, kind: str, display_name: str, key: str) -> int:
        kind_id = self.lookups.entity_kind_id(kind)

        if self.dry_run:
            placeholder = self._next_placeholder
            self._next_placeholder -= 1
            return placeholder

        now = _now()
        query = """
            INSERT INTO entities (EntityKindID, DisplayName, DedupKey, IsActive, CreatedAt, UpdatedAt)
            VALUES (?, ?, ?, 1, ?, ?);
        """
        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, (kind_id, display_name, key or None, now, now))
            return int(cursor.lastrowid)


def find_entity_by_key(
    conn: sqlite3.Connection,
    kind_id: int,
    key: str,
) -> Optional[int]:
    """
    Find an entity created by an earlier run via its stored dedup key.

    Args:
        conn: SQLite connection to the target database.
        kind_id: EntityKindID to match.
        key: Non-empty dedup key.

    Returns:
        The lowest matching EntityID, or None.
    """
    query = """
        SELECT EntityID
        FROM entities
        WHERE EntityKindID = ? AND DedupKey = ?
        ORDER BY EntityID
        LIMIT 1;
    """
    with closing(conn.cursor()) as cursor:
        cursor.execute(query, (kind_id, key))
        result = cursor.fetchone()
        return int(result[0]) if result else None


def get_entity_count(conn: sqlite3.Connection, kind: Optional[str] = None) -> int:
    """
    Get count of entities, optionally of one kind.

    Args:
        conn: SQLite connection to the target database.
        kind: 'PERSON', 'ORG', or None for all.

    Returns:
        Number of entities.
    """
    if kind is None:
        query, params = "SELECT COUNT(*) FROM entities;", ()
    else:
        query = """
            SELECT COUNT(*)
            FROM entities e
            JOIN entity_kinds k ON k.EntityKindID = e.EntityKindID
            WHERE k.Code = ?;
        """
        params = (kind,)

    with closing(conn.cursor()) as cursor:
        cursor.execute(query, params)
        result = cursor.fetchone()
        return result[0] if result else 0
