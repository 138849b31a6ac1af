"""
Migration pipeline orchestration.

This module drives the full migration from the legacy shop database into the
entities + roles store. It coordinates extraction, entity resolution, role
attachment and timeclock reconstruction.

IMPORTANT: Dry runs never write
    A dry run opens the target read-only and performs every lookup and
    decision of a real run. Entity ids are negative placeholders that are
    never persisted, so the run statistics match a real run exactly.

Pipeline Steps:
    1. Ensure the target schema exists (dry run: require it)
    2. Customers  -> entities + CUSTOMER role + customer profile/contacts
    3. Vendors    -> entities + VENDOR role + vendor profile/contacts
    4. Employees  -> entities + EMPLOYEE role + employee profile/contacts
    5. Timeclock  -> time_events for migrated employees
    6. Sublets    -> entities + SUBLET_PROVIDER role + sublet profile
    7. Update migration state

Each step commits when it finishes. A failure aborts the run; every write is
insert-if-absent, so re-running after a failure is safe.
"""

import re
import sqlite3
from contextlib import closing
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union
import logging

from entity_migration.database import DatabaseConnection
from entity_migration.etl.extractors import (
    LegacyCustomer,
    LegacyEmployee,
    LegacyPunch,
    LegacyVendor,
    extract_customers,
    extract_employees,
    extract_punches,
    extract_sublet_companies,
    extract_trans_types,
    extract_vendors,
)
from entity_migration.etl.identity import (
    ORG_BUSINESS,
    ORG_FINANCIAL,
    ORG_GOVERNMENT,
    EntityResolver,
    Resolution,
    get_entity_count,
)
from entity_migration.etl.loaders import (
    STATE_LAST_MIGRATION,
    STATE_SCHEMA_VERSION,
    get_migration_state,
    get_role_counts,
    get_time_event_count,
    load_time_events,
    update_migration_state,
)
from entity_migration.etl.lookups import LookupResolver
from entity_migration.etl.normalizers import concat_name, person_key
from entity_migration.etl.roles import (
    ROLE_CUSTOMER,
    ROLE_EMPLOYEE,
    ROLE_SUBLET_PROVIDER,
    ROLE_VENDOR,
    ContactKind,
    RoleAttacher,
)
from entity_migration.etl.schema import create_schema, require_schema, verify_schema
from entity_migration.etl.timeclock import (
    SKIP_MISSING_EMPLOYEE,
    TimeclockReconstructor,
    TimeEvent,
)
from entity_migration.etl.vendor_categories import VendorCategoryClassifier

logger = logging.getLogger(__name__)

# Customer TypeID values that mark a government organization
GOVERNMENT_PATTERN = re.compile(r"gov|city|county|state|federal|school", re.IGNORECASE)

PathLike = Union[str, Path]


@dataclass
class SectionStats:
    """Counts for one party section (customers, vendors, ...)."""

    processed: int = 0
    entities_created: int = 0
    entities_matched: int = 0

    def record(self, resolution: Resolution) -> None:
        self.processed += 1
        if resolution.created:
            self.entities_created += 1
        else:
            self.entities_matched += 1

    def __str__(self) -> str:
        return (
            f"{self.processed} processed "
            f"({self.entities_created} new entities, {self.entities_matched} matched)"
        )


@dataclass
class TimeclockStats:
    """Counts for the timeclock section."""

    rows: int = 0
    events: int = 0
    missing_employee: int = 0
    missing_timestamp: int = 0

    @property
    def skipped(self) -> int:
        return self.missing_employee + self.missing_timestamp

    def __str__(self) -> str:
        return (
            f"{self.rows} rows, {self.events} events "
            f"(skipped: {self.missing_employee} missing employee, "
            f"{self.missing_timestamp} missing timestamp)"
        )


@dataclass
class MigrationResult:
    """Result of a migration run."""

    success: bool
    dry_run: bool = False
    customers: SectionStats = field(default_factory=SectionStats)
    vendors: SectionStats = field(default_factory=SectionStats)
    employees: SectionStats = field(default_factory=SectionStats)
    timeclock: TimeclockStats = field(default_factory=TimeclockStats)
    sublets: SectionStats = field(default_factory=SectionStats)
    # Error and timing
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def statistics(self) -> Dict[str, Dict[str, int]]:
        """Per-section counters, comparable between dry and real runs."""
        return {
            "customers": asdict(self.customers),
            "vendors": asdict(self.vendors),
            "employees": asdict(self.employees),
            "timeclock": asdict(self.timeclock),
            "sublets": asdict(self.sublets),
        }

    def __str__(self) -> str:
        status = "SUCCESS" if self.success else f"FAILED: {self.error}"
        mode = "dry run" if self.dry_run else "live"
        return (
            f"Migration {status} ({mode})\n"
            f"  Customers: {self.customers}\n"
            f"  Vendors: {self.vendors}\n"
            f"  Employees: {self.employees}\n"
            f"  Timeclock: {self.timeclock}\n"
            f"  Sublet providers: {self.sublets}\n"
            f"  Duration: {self.duration_seconds:.2f}s"
        )


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# Role profile table -> legacy id column
PROFILE_LEGACY_IDS = {
    "customer_accounts": "LegacyCustomerID",
    "vendor_accounts": "LegacyVendorID",
    "employee_accounts": "LegacyEmployeeID",
}


def find_profile_entity(conn: sqlite3.Connection, table: str, legacy_id: int) -> Optional[int]:
    """
    Find the entity an earlier run bound to a legacy id through its role profile.

    Args:
        conn: Connection to the target database.
        table: One of the PROFILE_LEGACY_IDS tables.
        legacy_id: Primary key of the legacy row.

    Returns:
        The EntityID, or None if no profile carries that legacy id.
    """
    if table not in PROFILE_LEGACY_IDS:
        raise ValueError(f"Not a role profile table: {table!r}")
    query = f"SELECT EntityID FROM {table} WHERE {PROFILE_LEGACY_IDS[table]} = ?;"
    with closing(conn.cursor()) as cursor:
        cursor.execute(query, (legacy_id,))
        result = cursor.fetchone()
        return int(result[0]) if result else None


def find_employee_entity(conn: sqlite3.Connection, legacy_employee_id: int) -> Optional[int]:
    """Find the entity migrated for a legacy employee id by an earlier run."""
    return find_profile_entity(conn, "employee_accounts", legacy_employee_id)


class Migrator:
    """
    Runs the migration phases against one target connection.

    Args:
        conn: SQLite connection to the target database.
        dry_run: If True, decide everything but write nothing.
        classifier: Vendor category classifier.
        seed_from_store: Let entity resolution match entities from earlier runs.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        dry_run: bool = False,
        classifier: Optional[VendorCategoryClassifier] = None,
        seed_from_store: bool = True,
    ):
        self.conn = conn
        self.dry_run = dry_run
        self.classifier = classifier or VendorCategoryClassifier()
        self.lookups = LookupResolver(conn, dry_run=dry_run)
        self.resolver = EntityResolver(
            conn, self.lookups, dry_run=dry_run, seed_from_store=seed_from_store
        )
        self.roles = RoleAttacher(conn, self.lookups, dry_run=dry_run)
        # Legacy EmployeeId -> EntityID for the timeclock phase
        self.employee_entities: Dict[int, int] = {}

    def _commit(self) -> None:
        if not self.dry_run:
            self.conn.commit()

    def _rebind_nameless(
        self,
        first_name: Optional[str],
        last_name: Optional[str],
        profile_table: str,
        legacy_id: Optional[int],
    ) -> Optional[Resolution]:
        """
        Reuse the entity an earlier run created for a nameless legacy record.

        A person with no first or last name has no dedup key, so the only link
        to a previous run is the legacy id stored on its role profile.
        """
        if person_key(first_name, last_name) or legacy_id is None:
            return None
        if not self.resolver.seed_from_store:
            return None

        entity_id = find_profile_entity(self.conn, profile_table, legacy_id)
        if entity_id is None:
            return None
        logger.debug(f"Nameless {profile_table} {legacy_id} -> existing entity {entity_id}")
        return Resolution(entity_id, False, "")

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    def migrate_customers(self, customers: List[LegacyCustomer]) -> SectionStats:
        logger.info("tblCustomers -> entities/customer_* ...")
        stats = SectionStats()

        for customer in customers:
            resolution = self._resolve_customer(customer)
            entity_id = resolution.entity_id

            self.roles.grant_role(entity_id, ROLE_CUSTOMER)
            self.roles.upsert_customer_profile(entity_id, customer)
            self.roles.add_contact(
                entity_id, ContactKind.ADDRESS, "billing", customer.billing_address, True
            )
            self.roles.add_contact(
                entity_id, ContactKind.ADDRESS, "shipping", customer.shipping_address, False
            )
            self.roles.add_contact(entity_id, ContactKind.PHONE, "main", customer.phone, True)
            self.roles.add_contact(entity_id, ContactKind.EMAIL, "main", customer.email, True)

            stats.record(resolution)

        self._commit()
        logger.info(f"Customers migrated: {stats}")
        return stats

    def _resolve_customer(self, customer: LegacyCustomer) -> Resolution:
        display = (
            customer.company_name
            or concat_name(customer.first_name, customer.last_name)
            or f"Customer {customer.legacy_id}"
        )

        if customer.company_name:
            is_government = bool(
                customer.type_name and GOVERNMENT_PATTERN.search(customer.type_name)
            )
            org_type = ORG_GOVERNMENT if is_government else ORG_BUSINESS
            return self.resolver.resolve_org(customer.company_name, org_type, display)

        rebound = self._rebind_nameless(
            customer.first_name, customer.last_name, "customer_accounts", customer.legacy_id
        )
        if rebound is not None:
            return rebound

        return self.resolver.resolve_person(
            customer.first_name,
            None,
            customer.last_name,
            display,
            customer.billing_address.dedup_fragment(),
            default_last_name="Customer",
        )

    # -------------------------------------------------------------------------
    # Vendors
    # -------------------------------------------------------------------------

    def migrate_vendors(self, vendors: List[LegacyVendor]) -> SectionStats:
        logger.info("tblVendors -> entities/vendor_accounts ...")
        stats = SectionStats()

        for vendor in vendors:
            category = self.classifier.classify(vendor.lookup_code)
            logger.debug(
                f"Vendor {vendor.legacy_id}: lookup code {vendor.lookup_code!r} -> {category.code}"
            )
            resolution = self._resolve_vendor(vendor, category.is_financial)
            entity_id = resolution.entity_id

            self.roles.grant_role(entity_id, ROLE_VENDOR)
            self.roles.upsert_vendor_profile(entity_id, vendor, category)
            self.roles.add_contact(entity_id, ContactKind.ADDRESS, "main", vendor.address, True)
            self.roles.add_contact(entity_id, ContactKind.PHONE, "main", vendor.phone, True)
            self.roles.add_contact(entity_id, ContactKind.PHONE, "fax", vendor.fax, False)
            self.roles.add_contact(entity_id, ContactKind.EMAIL, "main", vendor.email, True)

            stats.record(resolution)

        self._commit()
        logger.info(f"Vendors migrated: {stats}")
        return stats

    def _resolve_vendor(self, vendor: LegacyVendor, financial: bool) -> Resolution:
        display = (
            vendor.company_name
            or vendor.contact_name
            or concat_name(vendor.first_name, vendor.last_name)
            or f"Vendor {vendor.legacy_id}"
        )

        if vendor.company_name:
            org_type = ORG_FINANCIAL if financial else ORG_BUSINESS
            return self.resolver.resolve_org(vendor.company_name, org_type, display)

        rebound = self._rebind_nameless(
            vendor.first_name, vendor.last_name, "vendor_accounts", vendor.legacy_id
        )
        if rebound is not None:
            return rebound

        return self.resolver.resolve_person(
            vendor.first_name,
            None,
            vendor.last_name,
            display,
            vendor.address.dedup_fragment(),
            default_last_name="Vendor",
        )

    # -------------------------------------------------------------------------
    # Employees
    # -------------------------------------------------------------------------

    def migrate_employees(self, employees: List[LegacyEmployee]) -> SectionStats:
        logger.info("tblEmployees -> entities/employee_accounts ...")
        stats = SectionStats()

        for employee in employees:
            display = concat_name(employee.first_name, employee.last_name) or (
                f"Employee {employee.legacy_id}"
            )
            resolution = self._rebind_nameless(
                employee.first_name, employee.last_name, "employee_accounts", employee.legacy_id
            ) or self.resolver.resolve_person(
                employee.first_name,
                employee.middle_name,
                employee.last_name,
                display,
                employee.address.dedup_fragment(),
                default_last_name="Employee",
            )
            entity_id = resolution.entity_id
            if employee.legacy_id is not None:
                self.employee_entities[employee.legacy_id] = entity_id

            self.roles.grant_role(entity_id, ROLE_EMPLOYEE)
            self.roles.upsert_employee_profile(entity_id, employee)
            self.roles.add_contact(entity_id, ContactKind.ADDRESS, "home", employee.address, True)
            self.roles.add_contact(entity_id, ContactKind.PHONE, "work", employee.office_phone, True)
            self.roles.add_contact(entity_id, ContactKind.PHONE, "home", employee.home_phone, False)

            stats.record(resolution)

        self._commit()
        logger.info(f"Employees migrated: {stats}")
        return stats

    def employee_entity(self, legacy_employee_id: Optional[int]) -> Optional[int]:
        """Resolve a legacy employee reference to its migrated entity."""
        if legacy_employee_id is None:
            return None
        if legacy_employee_id in self.employee_entities:
            return self.employee_entities[legacy_employee_id]
        return find_employee_entity(self.conn, legacy_employee_id)

    # -------------------------------------------------------------------------
    # Timeclock
    # -------------------------------------------------------------------------

    def migrate_timeclock(
        self,
        punches: List[LegacyPunch],
        trans_type_labels: Optional[Dict[str, str]] = None,
    ) -> TimeclockStats:
        logger.info("tblTimeclock -> time_events ...")
        stats = TimeclockStats()
        reconstructor = TimeclockReconstructor(self.employee_entity, trans_type_labels)

        events: List[TimeEvent] = []
        for punch in punches:
            stats.rows += 1
            reconstruction = reconstructor.reconstruct(punch)
            if reconstruction.skipped:
                if reconstruction.skip_reason == SKIP_MISSING_EMPLOYEE:
                    stats.missing_employee += 1
                else:
                    stats.missing_timestamp += 1
                continue
            events.extend(reconstruction.events)

        stats.events = len(events)
        loaded = load_time_events(self.conn, events, self.lookups, dry_run=self.dry_run)

        self._commit()
        logger.info(f"Timeclock migrated: {stats}")
        logger.debug(f"Time events written this run: {loaded}")
        return stats

    # -------------------------------------------------------------------------
    # Sublet providers
    # -------------------------------------------------------------------------

    def migrate_sublets(self, company_names: List[str]) -> SectionStats:
        logger.info("tblWOSublet distinct SubletCompany -> entities/sublet_accounts ...")
        stats = SectionStats()

        for name in company_names:
            resolution = self.resolver.resolve_org(name, ORG_BUSINESS, name)
            self.roles.grant_role(resolution.entity_id, ROLE_SUBLET_PROVIDER)
            self.roles.upsert_sublet_profile(resolution.entity_id)
            stats.record(resolution)

        self._commit()
        logger.info(f"Sublet providers migrated: {stats}")
        return stats


def run_migration(
    source_db_path: PathLike,
    target_db_path: PathLike,
    dry_run: bool = False,
    vendor_categories_path: Optional[PathLike] = None,
    seed_from_store: bool = True,
) -> MigrationResult:
    """
    Run the full migration pipeline.

    Args:
        source_db_path: Path to the legacy database (opened read-only).
        target_db_path: Path to the target entities database.
        dry_run: If True, perform every decision but write nothing.
        vendor_categories_path: Optional JSON file of category descriptions.
        seed_from_store: Match entities created by earlier runs.

    Returns:
        MigrationResult with statistics and success status.
    """
    start_time = datetime.now()
    result = MigrationResult(success=False, dry_run=dry_run)
    mode = "dry run" if dry_run else "live"

    try:
        logger.info(f"Migrating {source_db_path} -> {target_db_path} ({mode}) ...")

        # Step 1: Ensure schema exists
        if not dry_run:
            create_schema(target_db_path)

        source = DatabaseConnection(source_db_path, read_only=True)
        target = DatabaseConnection(target_db_path, read_only=dry_run)

        with source, target:
            require_schema(target)

            classifier = VendorCategoryClassifier.from_file(
                Path(vendor_categories_path) if vendor_categories_path else None
            )
            migrator = Migrator(
                target.connection,
                dry_run=dry_run,
                classifier=classifier,
                seed_from_store=seed_from_store,
            )
            src = source.connection

            # Steps 2-6: fixed phase order
            result.customers = migrator.migrate_customers(extract_customers(src))
            result.vendors = migrator.migrate_vendors(extract_vendors(src))
            result.employees = migrator.migrate_employees(extract_employees(src))
            result.timeclock = migrator.migrate_timeclock(
                extract_punches(src), extract_trans_types(src)
            )
            result.sublets = migrator.migrate_sublets(extract_sublet_companies(src))

            # Step 7: Update migration state
            if not dry_run:
                update_migration_state(target.connection, STATE_LAST_MIGRATION, _now_iso())

        result.success = True
        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        logger.info(f"Migration complete ({mode}) in {result.duration_seconds:.2f}s")
        return result

    except Exception as e:
        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        result.error = str(e)
        logger.error(f"Migration failed: {e}")
        return result


def get_migration_status(target_db_path: PathLike) -> dict:
    """
    Get current migration status from the target database.

    Args:
        target_db_path: Path to the target database.

    Returns:
        Dictionary with migration status information.
    """
    if not Path(target_db_path).exists():
        return {"exists": False}

    if not verify_schema(target_db_path):
        return {"exists": True, "schema_valid": False}

    with DatabaseConnection(target_db_path, read_only=True) as db:
        conn = db.connection
        return {
            "exists": True,
            "schema_valid": True,
            "entity_count": get_entity_count(conn),
            "person_count": get_entity_count(conn, "PERSON"),
            "org_count": get_entity_count(conn, "ORG"),
            "role_counts": get_role_counts(conn),
            "time_event_count": get_time_event_count(conn),
            "last_migration": get_migration_state(conn, STATE_LAST_MIGRATION),
            "schema_version": get_migration_state(conn, STATE_SCHEMA_VERSION),
        }
