"""
Schema definitions for the target entities database.

This module defines the DDL for the canonical "entities + roles" store and
the create / drop / update lifecycle commands that manage it.

Design Decisions:
    1. Every entity has exactly one extension row (entity_persons or
       entity_organizations); extensions and role profiles cascade on delete
    2. Role grants are rows in entity_role_map; existence is the only signal
    3. Natural-key uniqueness lives in named unique indexes so that update
       can detect and add them to an older database
    4. Blank address parts are stored as '' so the address key matches on
       re-runs (SQLite treats NULLs as distinct in unique indexes)
    5. Timestamps are TEXT ('YYYY-MM-DD HH:MM:SS'), SQLite-friendly
    6. migration_state tracks schema version and run bookkeeping

Update Strategy (detect-then-add, never drops data):
    1. Create missing tables
    2. Add missing columns (entities.DedupKey)
    3. Create missing indexes
    4. Insert missing reference rows
    5. Record schema_version
"""

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Tuple, Union
import logging

from entity_migration.database import DatabaseConnection
from entity_migration.etl.loaders import STATE_SCHEMA_VERSION, update_migration_state
from entity_migration.etl.timeclock import ACTION_DESCRIPTIONS

logger = logging.getLogger(__name__)

# Schema version for migration tracking
SCHEMA_VERSION = "2.0.0"


class SchemaError(RuntimeError):
    """The target schema is missing or incomplete."""


# Table DDL in creation order (parents before children)
TABLE_DDL: Dict[str, str] = {
    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------
    "entity_kinds": """
        CREATE TABLE IF NOT EXISTS entity_kinds (
            EntityKindID INTEGER PRIMARY KEY,
            Code TEXT NOT NULL UNIQUE,
            Description TEXT NOT NULL
        );
    """,
    "org_types": """
        CREATE TABLE IF NOT EXISTS org_types (
            OrgTypeID INTEGER PRIMARY KEY AUTOINCREMENT,
            Code TEXT NOT NULL UNIQUE,
            Description TEXT NOT NULL
        );
    """,
    # DisplayName is a denormalized snapshot for other modules.
    # DedupKey is the normalized key the resolver matched on.
    "entities": """
        CREATE TABLE IF NOT EXISTS entities (
            EntityID INTEGER PRIMARY KEY AUTOINCREMENT,
            EntityKindID INTEGER NOT NULL REFERENCES entity_kinds(EntityKindID),
            DisplayName TEXT NOT NULL,
            DedupKey TEXT NULL,
            IsActive INTEGER NOT NULL DEFAULT 1 CHECK (IsActive IN (0, 1)),
            CreatedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UpdatedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
    """,
    "entity_persons": """
        CREATE TABLE IF NOT EXISTS entity_persons (
            EntityID INTEGER PRIMARY KEY REFERENCES entities(EntityID) ON DELETE CASCADE,
            FirstName TEXT NOT NULL,
            MiddleName TEXT NULL,
            LastName TEXT NOT NULL,
            DOB TEXT NULL
        );
    """,
    "entity_organizations": """
        CREATE TABLE IF NOT EXISTS entity_organizations (
            EntityID INTEGER PRIMARY KEY REFERENCES entities(EntityID) ON DELETE CASCADE,
            OrgTypeID INTEGER NOT NULL REFERENCES org_types(OrgTypeID),
            LegalName TEXT NOT NULL,
            DBAName TEXT NULL,
            TaxID TEXT NULL
        );
    """,
    # -------------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------------
    "entity_roles": """
        CREATE TABLE IF NOT EXISTS entity_roles (
            RoleID INTEGER PRIMARY KEY AUTOINCREMENT,
            Code TEXT NOT NULL UNIQUE,
            Description TEXT NOT NULL
        );
    """,
    "entity_role_map": """
        CREATE TABLE IF NOT EXISTS entity_role_map (
            EntityID INTEGER NOT NULL REFERENCES entities(EntityID) ON DELETE CASCADE,
            RoleID INTEGER NOT NULL REFERENCES entity_roles(RoleID),
            AssignedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (EntityID, RoleID)
        );
    """,
    # -------------------------------------------------------------------------
    # Contacts
    # -------------------------------------------------------------------------
    "phone_types": """
        CREATE TABLE IF NOT EXISTS phone_types (
            PhoneTypeID INTEGER PRIMARY KEY AUTOINCREMENT,
            PhoneTypeName TEXT NOT NULL UNIQUE
        );
    """,
    "email_types": """
        CREATE TABLE IF NOT EXISTS email_types (
            EmailTypeID INTEGER PRIMARY KEY AUTOINCREMENT,
            EmailTypeName TEXT NOT NULL UNIQUE
        );
    """,
    "address_types": """
        CREATE TABLE IF NOT EXISTS address_types (
            AddressTypeID INTEGER PRIMARY KEY AUTOINCREMENT,
            AddressTypeName TEXT NOT NULL UNIQUE
        );
    """,
    "entity_phones": """
        CREATE TABLE IF NOT EXISTS entity_phones (
            PhoneID INTEGER PRIMARY KEY AUTOINCREMENT,
            EntityID INTEGER NOT NULL REFERENCES entities(EntityID) ON DELETE CASCADE,
            PhoneTypeID INTEGER NOT NULL REFERENCES phone_types(PhoneTypeID),
            PhoneNumber TEXT NOT NULL,
            IsPrimary INTEGER NOT NULL DEFAULT 0 CHECK (IsPrimary IN (0, 1))
        );
    """,
    "entity_emails": """
        CREATE TABLE IF NOT EXISTS entity_emails (
            EmailID INTEGER PRIMARY KEY AUTOINCREMENT,
            EntityID INTEGER NOT NULL REFERENCES entities(EntityID) ON DELETE CASCADE,
            EmailTypeID INTEGER NOT NULL REFERENCES email_types(EmailTypeID),
            Email TEXT NOT NULL,
            IsPrimary INTEGER NOT NULL DEFAULT 0 CHECK (IsPrimary IN (0, 1))
        );
    """,
    "entity_addresses": """
        CREATE TABLE IF NOT EXISTS entity_addresses (
            AddressID INTEGER PRIMARY KEY AUTOINCREMENT,
            EntityID INTEGER NOT NULL REFERENCES entities(EntityID) ON DELETE CASCADE,
            AddressTypeID INTEGER NOT NULL REFERENCES address_types(AddressTypeID),
            Address1 TEXT NOT NULL DEFAULT '',
            Address2 TEXT NULL,
            City TEXT NOT NULL DEFAULT '',
            State TEXT NOT NULL DEFAULT '',
            Postal TEXT NOT NULL DEFAULT '',
            Country TEXT NULL DEFAULT 'US',
            IsPrimary INTEGER NOT NULL DEFAULT 0 CHECK (IsPrimary IN (0, 1))
        );
    """,
    # -------------------------------------------------------------------------
    # Customer profile
    # -------------------------------------------------------------------------
    "customer_accounts": """
        CREATE TABLE IF NOT EXISTS customer_accounts (
            EntityID INTEGER PRIMARY KEY REFERENCES entities(EntityID) ON DELETE CASCADE,
            LegacyCustomerID INTEGER NULL UNIQUE,
            InternalComments TEXT NULL
        );
    """,
    "customer_types": """
        CREATE TABLE IF NOT EXISTS customer_types (
            CustomerTypeID INTEGER PRIMARY KEY AUTOINCREMENT,
            CustomerTypeName TEXT NOT NULL UNIQUE
        );
    """,
    "pricing_plans": """
        CREATE TABLE IF NOT EXISTS pricing_plans (
            PricingPlanID INTEGER PRIMARY KEY AUTOINCREMENT,
            Code TEXT NOT NULL UNIQUE,
            Multiplier REAL NOT NULL DEFAULT 1.0,
            Description TEXT NULL,
            IsActive INTEGER NOT NULL DEFAULT 1
        );
    """,
    "customer_billing": """
        CREATE TABLE IF NOT EXISTS customer_billing (
            EntityID INTEGER PRIMARY KEY REFERENCES customer_accounts(EntityID) ON DELETE CASCADE,
            CustomerTypeID INTEGER NULL REFERENCES customer_types(CustomerTypeID),
            CreditLimit REAL NULL,
            AcceptChecks INTEGER NOT NULL DEFAULT 1,
            AcceptCharge INTEGER NOT NULL DEFAULT 1,
            DefaultPricingPlanID INTEGER NULL REFERENCES pricing_plans(PricingPlanID),
            Notes TEXT NULL
        );
    """,
    "customer_tax_info": """
        CREATE TABLE IF NOT EXISTS customer_tax_info (
            EntityID INTEGER PRIMARY KEY REFERENCES customer_accounts(EntityID) ON DELETE CASCADE,
            TaxExempt INTEGER NOT NULL DEFAULT 0,
            ResaleNo TEXT NULL
        );
    """,
    # -------------------------------------------------------------------------
    # Vendor, employee and sublet profiles
    # -------------------------------------------------------------------------
    "vendor_lookup_codes": """
        CREATE TABLE IF NOT EXISTS vendor_lookup_codes (
            VendorLookupCodeID INTEGER PRIMARY KEY AUTOINCREMENT,
            Code TEXT NOT NULL UNIQUE,
            Description TEXT NOT NULL,
            IsActive INTEGER NOT NULL DEFAULT 1
        );
    """,
    "vendor_accounts": """
        CREATE TABLE IF NOT EXISTS vendor_accounts (
            EntityID INTEGER PRIMARY KEY REFERENCES entities(EntityID) ON DELETE CASCADE,
            LegacyVendorID INTEGER NULL UNIQUE,
            PaytermsID INTEGER NULL,
            AcctID INTEGER NULL,
            VendorLookupCodeID INTEGER NULL
                REFERENCES vendor_lookup_codes(VendorLookupCodeID) ON DELETE SET NULL,
            LegacyLookupCode TEXT NULL,
            FedTaxNo TEXT NULL,
            StateTaxNo TEXT NULL,
            CreditLimit REAL NULL,
            Comments TEXT NULL
        );
    """,
    "employee_statuses": """
        CREATE TABLE IF NOT EXISTS employee_statuses (
            EmployeeStatusID INTEGER PRIMARY KEY AUTOINCREMENT,
            StatusName TEXT NOT NULL UNIQUE
        );
    """,
    "employee_accounts": """
        CREATE TABLE IF NOT EXISTS employee_accounts (
            EntityID INTEGER PRIMARY KEY REFERENCES entities(EntityID) ON DELETE CASCADE,
            LegacyEmployeeID INTEGER NULL UNIQUE,
            PayTypeID INTEGER NULL,
            Supervisor TEXT NULL,
            SearchKey TEXT NULL,
            SSNNo TEXT NULL,
            HireDate TEXT NULL,
            TerminationDate TEXT NULL,
            Pay REAL NULL,
            EmployeeStatusID INTEGER NULL REFERENCES employee_statuses(EmployeeStatusID),
            Comments TEXT NULL,
            Active INTEGER NOT NULL DEFAULT 1
        );
    """,
    "sublet_accounts": """
        CREATE TABLE IF NOT EXISTS sublet_accounts (
            EntityID INTEGER PRIMARY KEY REFERENCES entities(EntityID) ON DELETE CASCADE,
            Notes TEXT NULL
        );
    """,
    # -------------------------------------------------------------------------
    # Timeclock
    # -------------------------------------------------------------------------
    "timeclock_actions": """
        CREATE TABLE IF NOT EXISTS timeclock_actions (
            ActionID INTEGER PRIMARY KEY AUTOINCREMENT,
            Code TEXT NOT NULL UNIQUE,
            Description TEXT NOT NULL
        );
    """,
    # Provenance of a time event: TERMINAL, ADMIN, IMPORTED, MOBILE
    "timeclock_entry_types": """
        CREATE TABLE IF NOT EXISTS timeclock_entry_types (
            EntryTypeID INTEGER PRIMARY KEY AUTOINCREMENT,
            Code TEXT NOT NULL UNIQUE,
            Description TEXT NOT NULL
        );
    """,
    "work_sessions": """
        CREATE TABLE IF NOT EXISTS work_sessions (
            WorkSessionID INTEGER PRIMARY KEY AUTOINCREMENT,
            EntityID INTEGER NOT NULL REFERENCES entities(EntityID) ON DELETE CASCADE,
            StartedAt TEXT NOT NULL,
            EndedAt TEXT NULL,
            Notes TEXT NULL,
            CreatedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
    """,
    # Voided events are kept; VoidedAt/VoidedBy/VoidReason mark soft cancellation
    "time_events": """
        CREATE TABLE IF NOT EXISTS time_events (
            TimeEventID INTEGER PRIMARY KEY AUTOINCREMENT,
            EntityID INTEGER NOT NULL REFERENCES entities(EntityID) ON DELETE CASCADE,
            ActionID INTEGER NOT NULL REFERENCES timeclock_actions(ActionID),
            EventAt TEXT NOT NULL,
            EntryTypeID INTEGER NOT NULL REFERENCES timeclock_entry_types(EntryTypeID),
            Minutes INTEGER NULL CHECK (Minutes IS NULL OR Minutes >= 0),
            Note TEXT NULL,
            WorkSessionID INTEGER NULL REFERENCES work_sessions(WorkSessionID) ON DELETE SET NULL,
            VoidedAt TEXT NULL,
            VoidedBy INTEGER NULL REFERENCES entities(EntityID) ON DELETE SET NULL,
            VoidReason TEXT NULL,
            CreatedAt TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
    """,
    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------
    # Common keys: schema_version, last_migration
    "migration_state": """
        CREATE TABLE IF NOT EXISTS migration_state (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
    """,
}

# Columns added after the first release: (table, column, definition)
ADDED_COLUMNS: List[Tuple[str, str, str]] = [
    ("entities", "DedupKey", "TEXT NULL"),
]

INDEX_DDL: Dict[str, str] = {
    "idx_entities_dedup": "CREATE INDEX IF NOT EXISTS idx_entities_dedup ON entities(EntityKindID, DedupKey);",
    "idx_role_map_role": "CREATE INDEX IF NOT EXISTS idx_role_map_role ON entity_role_map(RoleID);",
    "uq_phone": (
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_phone "
        "ON entity_phones(EntityID, PhoneTypeID, PhoneNumber);"
    ),
    "uq_email": (
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_email "
        "ON entity_emails(EntityID, EmailTypeID, Email);"
    ),
    "uq_addr_primary": (
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_addr_primary "
        "ON entity_addresses(EntityID, AddressTypeID, Address1, City, State, Postal);"
    ),
    "uq_time_event": (
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_time_event "
        "ON time_events(EntityID, ActionID, EventAt, EntryTypeID);"
    ),
    "idx_time_events_entity_time": (
        "CREATE INDEX IF NOT EXISTS idx_time_events_entity_time ON time_events(EntityID, EventAt);"
    ),
    "idx_work_sessions_entity": (
        "CREATE INDEX IF NOT EXISTS idx_work_sessions_entity ON work_sessions(EntityID, StartedAt);"
    ),
}

REQUIRED_TABLES = set(TABLE_DDL)

# Reference data: (table, columns, rows). Inserted with INSERT OR IGNORE.
SEED_DATA: List[Tuple[str, Tuple[str, ...], List[tuple]]] = [
    ("entity_kinds", ("EntityKindID", "Code", "Description"), [
        (1, "PERSON", "Person"),
        (2, "ORG", "Organization"),
    ]),
    ("org_types", ("Code", "Description"), [
        ("BUSINESS", "Business"),
        ("GOVERNMENT", "Government"),
        ("FINANCIAL", "Financial / Card / Bank"),
        ("OTHER", "Other"),
    ]),
    ("entity_roles", ("Code", "Description"), [
        ("CUSTOMER", "Customer"),
        ("VENDOR", "Vendor"),
        ("EMPLOYEE", "Employee"),
        ("SUBLET_PROVIDER", "Sublet Provider"),
    ]),
    ("phone_types", ("PhoneTypeName",), [
        ("main",), ("mobile",), ("work",), ("home",), ("fax",),
    ]),
    ("email_types", ("EmailTypeName",), [
        ("main",), ("work",), ("billing",), ("personal",),
    ]),
    ("address_types", ("AddressTypeName",), [
        ("billing",), ("shipping",), ("service",), ("mailing",), ("main",), ("home",), ("work",),
    ]),
    ("customer_types", ("CustomerTypeName",), [
        ("Charge Account",), ("Retail",), ("Commercial",), ("Wholesale",),
    ]),
    ("pricing_plans", ("Code", "Multiplier", "Description"), [
        ("D", 1.0, "Default D"),
        ("C", 1.0, "Default C"),
        ("B", 1.0, "Default B"),
        ("A", 1.0, "Default A"),
    ]),
    ("timeclock_actions", ("Code", "Description"), [
        (action.value, description) for action, description in ACTION_DESCRIPTIONS.items()
    ]),
    ("timeclock_entry_types", ("Code", "Description"), [
        ("TERMINAL", "Time clock terminal"),
        ("ADMIN", "Entered by an administrator"),
        ("IMPORTED", "Imported from the legacy system"),
        ("MOBILE", "Mobile app"),
    ]),
]


def seed_reference_data(conn: sqlite3.Connection) -> int:
    """
    Insert missing reference rows.

    Returns:
        Number of rows inserted.
    """
    inserted = 0
    with closing(conn.cursor()) as cursor:
        for table, columns, rows in SEED_DATA:
            placeholders = ", ".join("?" for _ in columns)
            query = f"INSERT OR IGNORE INTO {table} ({', '.join(columns)}) VALUES ({placeholders});"
            for row in rows:
                cursor.execute(query, row)
                inserted += max(cursor.rowcount, 0)
    conn.commit()

    if inserted:
        logger.info(f"Seeded {inserted} reference rows")
    return inserted


def create_schema(db_path: Union[str, Path]) -> None:
    """
    Create the target schema and seed reference data.

    This function is idempotent - safe to call multiple times.
    Uses IF NOT EXISTS for all table and index creation.

    Args:
        db_path: Path to the target database file. Parent directory will be
                 created if it doesn't exist.

    Raises:
        sqlite3.Error: If schema creation fails.
    """
    logger.info(f"Creating/verifying schema at: {db_path}")

    with DatabaseConnection(db_path) as db:
        try:
            db.execute_script("\n".join(TABLE_DDL.values()))
            # An entities table from an older release needs its column before the index
            for table, column, definition in ADDED_COLUMNS:
                if not db.column_exists(table, column):
                    db.execute_script(f"ALTER TABLE {table} ADD COLUMN {column} {definition};")
            db.execute_script("\n".join(INDEX_DDL.values()))
            seed_reference_data(db.connection)
            update_migration_state(db.connection, STATE_SCHEMA_VERSION, SCHEMA_VERSION)
        except sqlite3.Error as e:
            logger.error(f"Schema creation failed: {e}")
            raise

    logger.info(f"Schema created/verified successfully (version {SCHEMA_VERSION})")


def drop_schema(db_path: Union[str, Path]) -> List[str]:
    """
    Drop every table owned by this schema.

    Args:
        db_path: Path to the target database file.

    Returns:
        Names of the tables that existed and were dropped.
    """
    logger.info(f"Dropping schema objects at: {db_path}")

    with DatabaseConnection(db_path) as db:
        existing = [name for name in TABLE_DDL if db.table_exists(name)]
        statements = ["PRAGMA foreign_keys = OFF;"]
        statements += [f"DROP TABLE IF EXISTS {name};" for name in reversed(list(TABLE_DDL))]
        statements.append("PRAGMA foreign_keys = ON;")
        db.execute_script("\n".join(statements))

    logger.info(f"Dropped {len(existing)} tables")
    return existing


def update_schema(db_path: Union[str, Path]) -> List[str]:
    """
    Additively bring an existing database up to the current schema.

    Never drops or rewrites existing data. Safe to run repeatedly; a database
    that is already current yields no changes.

    Args:
        db_path: Path to the target database file.

    Returns:
        Human-readable list of the changes applied.
    """
    logger.info(f"Updating schema at: {db_path}")
    changes: List[str] = []

    with DatabaseConnection(db_path) as db:
        for table, ddl in TABLE_DDL.items():
            if not db.table_exists(table):
                db.execute_script(ddl)
                changes.append(f"created table {table}")

        for table, column, definition in ADDED_COLUMNS:
            if not db.column_exists(table, column):
                db.execute_script(f"ALTER TABLE {table} ADD COLUMN {column} {definition};")
                changes.append(f"added column {table}.{column}")

        for index, ddl in INDEX_DDL.items():
            if not db.index_exists(index):
                db.execute_script(ddl)
                changes.append(f"created index {index}")

        seeded = seed_reference_data(db.connection)
        if seeded:
            changes.append(f"inserted {seeded} reference rows")

        update_migration_state(db.connection, STATE_SCHEMA_VERSION, SCHEMA_VERSION)

    for change in changes:
        logger.info(f"Schema update: {change}")
    if not changes:
        logger.info("Schema already up to date")
    return changes


def get_table_names(db_path: Union[str, Path]) -> List[str]:
    """
    Get all table names in the target database.

    Args:
        db_path: Path to the target database file.

    Returns:
        List of table names.
    """
    with DatabaseConnection(db_path, read_only=True) as db:
        return db.get_table_names()


def missing_schema_objects(db: DatabaseConnection) -> List[str]:
    """List required tables, columns and indexes absent from a connected database."""
    missing = [f"table {name}" for name in TABLE_DDL if not db.table_exists(name)]
    missing += [
        f"column {table}.{column}"
        for table, column, _ in ADDED_COLUMNS
        if db.table_exists(table) and not db.column_exists(table, column)
    ]
    missing += [f"index {name}" for name in INDEX_DDL if not db.index_exists(name)]
    return missing


def require_schema(db: DatabaseConnection) -> None:
    """
    Fail unless the connected database carries the full current schema.

    Raises:
        SchemaError: Listing what is missing.
    """
    missing = missing_schema_objects(db)
    if missing:
        raise SchemaError(
            f"Target schema incomplete ({', '.join(missing)}); run 'create' or 'update' first"
        )


def verify_schema(db_path: Union[str, Path]) -> bool:
    """
    Verify that the schema exists and has all required objects.

    Args:
        db_path: Path to the target database file.

    Returns:
        True if schema is valid, False otherwise.
    """
    if not Path(db_path).exists():
        return False

    with DatabaseConnection(db_path, read_only=True) as db:
        return not missing_schema_objects(db)
