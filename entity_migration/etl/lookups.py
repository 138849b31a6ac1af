"""
Lookup resolution for small reference tables.

Resolves phone/email/address types, customer types, pricing plans, employee
statuses, vendor category codes and timeclock codes by name, inserting on
first use.

Design Decisions:
    1. No caching: every call round-trips to the store
    2. Idempotence comes from the UNIQUE name/code columns (INSERT OR IGNORE)
    3. Seeded-only tables (roles, org types, kinds, timeclock codes) are read
       with require(), which fails loudly instead of inserting
    4. In dry-run mode a miss returns DRY_RUN_ID and nothing is written
"""

import sqlite3
from contextlib import closing
from typing import Any, Dict, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Placeholder identifier returned when a dry run would have inserted a row
DRY_RUN_ID = -1

# table -> (id column, name column)
LOOKUP_TABLES: Dict[str, Tuple[str, str]] = {
    "entity_kinds": ("EntityKindID", "Code"),
    "org_types": ("OrgTypeID", "Code"),
    "entity_roles": ("RoleID", "Code"),
    "phone_types": ("PhoneTypeID", "PhoneTypeName"),
    "email_types": ("EmailTypeID", "EmailTypeName"),
    "address_types": ("AddressTypeID", "AddressTypeName"),
    "customer_types": ("CustomerTypeID", "CustomerTypeName"),
    "pricing_plans": ("PricingPlanID", "Code"),
    "employee_statuses": ("EmployeeStatusID", "StatusName"),
    "vendor_lookup_codes": ("VendorLookupCodeID", "Code"),
    "timeclock_actions": ("ActionID", "Code"),
    "timeclock_entry_types": ("EntryTypeID", "Code"),
}

DEFAULT_CONTACT_TYPE = "main"
DEFAULT_PRICING_PLAN = "D"


class SeedDataError(RuntimeError):
    """A required reference code was never seeded (setup or ordering bug)."""


def _table_columns(table: str) -> Tuple[str, str]:
    """
    Validate a lookup table name before interpolating it into SQL.

    SQLite does not support binding identifiers, so only registered
    lookup tables are allowed.
    """
    if table not in LOOKUP_TABLES:
        raise ValueError(f"Unknown lookup table: {table!r}")
    return LOOKUP_TABLES[table]


class LookupResolver:
    """Resolve-or-create access to the reference tables of the target store."""

    def __init__(self, conn: sqlite3.Connection, *, dry_run: bool = False):
        self.conn = conn
        self.dry_run = dry_run

    def find(self, table: str, value: str) -> Optional[int]:
        """
        Find a lookup row by exact name/code.

        Args:
            table: Registered lookup table name.
            value: Name or code, matched case-sensitively as stored.

        Returns:
            The row id, or None if absent.
        """
        id_col, name_col = _table_columns(table)
        query = f"SELECT {id_col} FROM {table} WHERE {name_col} = ? LIMIT 1;"

        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, (value,))
            result = cursor.fetchone()
            return int(result[0]) if result else None

    def require(self, table: str, code: str) -> int:
        """
        Read a seeded code that must exist.

        Raises:
            SeedDataError: If the code was never seeded.
        """
        found = self.find(table, code)
        if found is None:
            raise SeedDataError(f"{table} not seeded: {code}")
        return found

    def resolve_or_create(
        self,
        table: str,
        value: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Resolve a lookup value to its id, inserting it on first use.

        Args:
            table: Registered lookup table name.
            value: Name or code to resolve (trimmed before matching).
            extra: Additional column values for the insert (e.g. Description).

        Returns:
            The row id, or DRY_RUN_ID when a dry run would have inserted.
        """
        value = value.strip()
        found = self.find(table, value)
        if found is not None:
            return found

        if self.dry_run:
            logger.debug(f"Dry run: would add {table} value {value!r}")
            return DRY_RUN_ID

        _, name_col = _table_columns(table)
        columns = [name_col]
        params = [value]
        for column, column_value in (extra or {}).items():
            columns.append(column)
            params.append(column_value)

        placeholders = ", ".join("?" for _ in columns)
        query = (
            f"INSERT OR IGNORE INTO {table} ({', '.join(columns)}) "
            f"VALUES ({placeholders});"
        )

        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, params)
            if cursor.rowcount > 0 and cursor.lastrowid is not None:
                logger.debug(f"Added {table} value {value!r}")
                return int(cursor.lastrowid)

        # Lost an idempotent race: the row exists now
        return self.require(table, value)

    # -------------------------------------------------------------------------
    # Typed helpers
    # -------------------------------------------------------------------------

    def phone_type_id(self, name: Optional[str]) -> int:
        return self._contact_type("phone_types", name)

    def email_type_id(self, name: Optional[str]) -> int:
        return self._contact_type("email_types", name)

    def address_type_id(self, name: Optional[str]) -> int:
        return self._contact_type("address_types", name)

    def _contact_type(self, table: str, name: Optional[str]) -> int:
        normalized = (name or "").strip().lower() or DEFAULT_CONTACT_TYPE
        return self.resolve_or_create(table, normalized)

    def customer_type_id(self, name: str) -> int:
        return self.resolve_or_create("customer_types", name)

    def pricing_plan_id(self, code: Optional[str]) -> int:
        """Resolve a pricing plan code; new plans get multiplier 1.0."""
        code = (code or "").strip() or DEFAULT_PRICING_PLAN
        return self.resolve_or_create(
            "pricing_plans",
            code,
            extra={"Multiplier": 1.0, "Description": code},
        )

    def employee_status_id(self, status: Optional[str]) -> Optional[int]:
        status = (status or "").strip()
        if not status:
            return None
        return self.resolve_or_create("employee_statuses", status)

    def vendor_lookup_code_id(self, code: str, description: str) -> int:
        return self.resolve_or_create(
            "vendor_lookup_codes",
            code,
            extra={"Description": description},
        )

    def role_id(self, code: str) -> int:
        return self.require("entity_roles", code)

    def org_type_id(self, code: str) -> int:
        return self.require("org_types", code)

    def entity_kind_id(self, code: str) -> int:
        return self.require("entity_kinds", code)
