"""
Migration (Extract, Resolve, Load) module for the legacy shop database.

This module moves the legacy party tables into a canonical entities + roles
store that the rest of the system can reference by EntityID.

Architecture Overview:
    Legacy DB (read-only)      Target DB (read-write)
    ├── tblCustomers     →     entities (+ entity_persons / entity_organizations)
    ├── tblVendors       →     entity_role_map (+ customer/vendor/employee/sublet profiles)
    ├── tblEmployees     →     entity_phones / entity_emails / entity_addresses
    ├── tblWOSublet      →     time_events
    └── tblTimeclock     →     migration_state

Key Design Decisions:
    1. The legacy DB is opened read-only and treated as known-imperfect data
    2. Identity resolution is a process: organizations merge on legal name,
       people on name + address
    3. Every write is insert-if-absent, so the migration can be re-run
    4. Dry runs make every decision and write nothing
"""

from entity_migration.etl.schema import (
    SCHEMA_VERSION,
    SchemaError,
    create_schema,
    drop_schema,
    update_schema,
    verify_schema,
)
from entity_migration.etl.normalizers import normalize_key, person_key, org_key
from entity_migration.etl.lookups import LookupResolver, SeedDataError
from entity_migration.etl.vendor_categories import VendorCategory, VendorCategoryClassifier
from entity_migration.etl.identity import EntityResolver, Resolution
from entity_migration.etl.roles import ContactKind, RoleAttacher
from entity_migration.etl.timeclock import (
    ActionKind,
    Reconstruction,
    TimeclockReconstructor,
    TimeEvent,
)
from entity_migration.etl.pipeline import (
    MigrationResult,
    Migrator,
    get_migration_status,
    run_migration,
)
from entity_migration.etl.validation import ValidationResult, validate_migration

__all__ = [
    # Schema
    "SCHEMA_VERSION",
    "SchemaError",
    "create_schema",
    "drop_schema",
    "update_schema",
    "verify_schema",
    # Normalizers
    "normalize_key",
    "person_key",
    "org_key",
    # Lookups
    "LookupResolver",
    "SeedDataError",
    # Vendor categories
    "VendorCategory",
    "VendorCategoryClassifier",
    # Identity and roles
    "EntityResolver",
    "Resolution",
    "ContactKind",
    "RoleAttacher",
    # Timeclock
    "ActionKind",
    "Reconstruction",
    "TimeclockReconstructor",
    "TimeEvent",
    # Pipeline
    "MigrationResult",
    "Migrator",
    "get_migration_status",
    "run_migration",
    # Validation
    "ValidationResult",
    "validate_migration",
]
