"""
Role attachment for resolved entities.

Grants roles (CUSTOMER, VENDOR, EMPLOYEE, SUBLET_PROVIDER) and writes the
role-specific profile rows and contact records for an entity.

Design Decisions:
    1. Every write is insert-if-absent (INSERT OR IGNORE), so re-running the
       migration never duplicates rows and never errors on existing ones
    2. Profiles are first-write-wins: a re-run does not update fields of a
       profile created earlier, it only fills in missing rows
    3. Contacts whose identifying text is blank are not written at all
    4. Nothing is written for a placeholder (non-positive) id or in a dry run
"""

import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
import logging

from entity_migration.etl.extractors import (
    AddressParts,
    LegacyCustomer,
    LegacyEmployee,
    LegacyVendor,
)
from entity_migration.etl.identity import is_placeholder
from entity_migration.etl.lookups import LookupResolver
from entity_migration.etl.normalizers import clean_text, text_or_empty, to_iso_date
from entity_migration.etl.vendor_categories import VendorCategory

logger = logging.getLogger(__name__)

ROLE_CUSTOMER = "CUSTOMER"
ROLE_VENDOR = "VENDOR"
ROLE_EMPLOYEE = "EMPLOYEE"
ROLE_SUBLET_PROVIDER = "SUBLET_PROVIDER"


class ContactKind(str, Enum):
    """Kinds of contact record an entity can carry."""

    PHONE = "phone"
    EMAIL = "email"
    ADDRESS = "address"


def _now() -> str:
    """Get current UTC timestamp as stored in DATETIME columns."""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class RoleAttacher:
    """
    Grant roles and attach profiles/contacts to entities.

    Args:
        conn: SQLite connection to the target database.
        lookups: Lookup resolver bound to the same connection.
        dry_run: If True, resolve codes but never write.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        lookups: LookupResolver,
        *,
        dry_run: bool = False,
    ):
        self.conn = conn
        self.lookups = lookups
        self.dry_run = dry_run

    def _skip_writes(self, entity_id: int) -> bool:
        return self.dry_run or is_placeholder(entity_id)

    def _insert(self, query: str, params: tuple) -> bool:
        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, params)
            return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------------

    def grant_role(self, entity_id: int, role_code: str) -> bool:
        """
        Grant a role to an entity (no-op if already held).

        Raises:
            SeedDataError: If the role code was never seeded.

        Returns:
            True if a new grant row was written.
        """
        role_id = self.lookups.role_id(role_code)
        if self._skip_writes(entity_id):
            return False

        granted = self._insert(
            "INSERT OR IGNORE INTO entity_role_map (EntityID, RoleID, AssignedAt) VALUES (?, ?, ?);",
            (entity_id, role_id, _now()),
        )
        if granted:
            logger.debug(f"Granted {role_code} to entity {entity_id}")
        return granted

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def upsert_customer_profile(self, entity_id: int, customer: LegacyCustomer) -> bool:
        """
        Create customer_accounts, customer_billing and customer_tax_info rows.

        Returns:
            True if the customer_accounts row was newly created.
        """
        if self._skip_writes(entity_id):
            return False

        created = self._insert(
            """
            INSERT OR IGNORE INTO customer_accounts (EntityID, LegacyCustomerID, InternalComments)
            VALUES (?, ?, ?);
            """,
            (entity_id, customer.legacy_id, customer.internal_comments),
        )

        customer_type_id = None
        if customer.type_name:
            customer_type_id = self.lookups.customer_type_id(customer.type_name)

        pricing_plan_id = None
        if customer.default_pricing:
            pricing_plan_id = self.lookups.pricing_plan_id(customer.default_pricing)

        self._insert(
            """
            INSERT OR IGNORE INTO customer_billing
                (EntityID, CustomerTypeID, CreditLimit, AcceptChecks, AcceptCharge,
                 DefaultPricingPlanID, Notes)
            VALUES (?, ?, ?, ?, ?, ?, NULL);
            """,
            (
                entity_id,
                customer_type_id,
                customer.credit_limit,
                1 if customer.accept_checks else 0,
                1 if customer.accept_charge else 0,
                pricing_plan_id,
            ),
        )

        self._insert(
            "INSERT OR IGNORE INTO customer_tax_info (EntityID, TaxExempt, ResaleNo) VALUES (?, ?, ?);",
            (entity_id, 1 if customer.tax_exempt else 0, customer.resale_no),
        )
        return created

    def upsert_vendor_profile(
        self,
        entity_id: int,
        vendor: LegacyVendor,
        category: VendorCategory,
    ) -> bool:
        """Create the vendor_accounts row, linked to its canonical category."""
        if self._skip_writes(entity_id):
            return False

        lookup_code_id = self.lookups.vendor_lookup_code_id(category.code, category.description)

        return self._insert(
            """
            INSERT OR IGNORE INTO vendor_accounts
                (EntityID, LegacyVendorID, PaytermsID, AcctID, VendorLookupCodeID,
                 LegacyLookupCode, FedTaxNo, StateTaxNo, CreditLimit, Comments)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                entity_id,
                vendor.legacy_id,
                vendor.payterms_id,
                vendor.acct_id,
                lookup_code_id,
                vendor.lookup_code,
                vendor.fed_tax_no,
                vendor.state_tax_no,
                vendor.credit_limit,
                vendor.comments,
            ),
        )

    def upsert_employee_profile(self, entity_id: int, employee: LegacyEmployee) -> bool:
        """Create the employee_accounts row."""
        if self._skip_writes(entity_id):
            return False

        status_id = self.lookups.employee_status_id(employee.current_status)

        return self._insert(
            """
            INSERT OR IGNORE INTO employee_accounts
                (EntityID, LegacyEmployeeID, PayTypeID, Supervisor, SearchKey, SSNNo,
                 HireDate, TerminationDate, Pay, EmployeeStatusID, Comments, Active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                entity_id,
                employee.legacy_id,
                employee.pay_type_id,
                employee.supervisor,
                employee.search_key,
                employee.ssn,
                to_iso_date(employee.hire_date),
                to_iso_date(employee.termination_date),
                employee.pay,
                status_id,
                employee.comments,
                1 if employee.active else 0,
            ),
        )

    def upsert_sublet_profile(self, entity_id: int, notes: Optional[str] = None) -> bool:
        """Create the sublet_accounts row."""
        if self._skip_writes(entity_id):
            return False

        return self._insert(
            "INSERT OR IGNORE INTO sublet_accounts (EntityID, Notes) VALUES (?, ?);",
            (entity_id, notes),
        )

    # -------------------------------------------------------------------------
    # Contacts
    # -------------------------------------------------------------------------

    def add_contact(
        self,
        entity_id: int,
        kind: ContactKind,
        type_name: str,
        value: Union[str, AddressParts, None],
        is_primary: bool = False,
    ) -> bool:
        """
        Attach a phone, email or address to an entity.

        Args:
            entity_id: Target entity.
            kind: ContactKind.PHONE, EMAIL or ADDRESS.
            type_name: Contact type label (e.g. 'main', 'billing', 'fax').
            value: Phone/email text, or AddressParts for addresses.
            is_primary: Primary flag for the new row.

        Returns:
            True if a new row was written.
        """
        kind = ContactKind(kind)
        if kind is ContactKind.ADDRESS:
            address = value if isinstance(value, AddressParts) else AddressParts(line1=value)
            return self.add_address(entity_id, type_name, address, is_primary)
        if isinstance(value, AddressParts):
            raise TypeError(f"{kind.value} contacts take a text value")
        if kind is ContactKind.PHONE:
            return self.add_phone(entity_id, type_name, value, is_primary)
        return self.add_email(entity_id, type_name, value, is_primary)

    def add_phone(
        self,
        entity_id: int,
        type_name: str,
        number: Optional[str],
        is_primary: bool = False,
    ) -> bool:
        number = clean_text(number)
        if number is None or self._skip_writes(entity_id):
            return False

        type_id = self.lookups.phone_type_id(type_name)
        return self._insert(
            """
            INSERT OR IGNORE INTO entity_phones (EntityID, PhoneTypeID, PhoneNumber, IsPrimary)
            VALUES (?, ?, ?, ?);
            """,
            (entity_id, type_id, number, 1 if is_primary else 0),
        )

    def add_email(
        self,
        entity_id: int,
        type_name: str,
        email: Optional[str],
        is_primary: bool = False,
    ) -> bool:
        email = clean_text(email)
        if email is None or self._skip_writes(entity_id):
            return False

        type_id = self.lookups.email_type_id(type_name)
        return self._insert(
            """
            INSERT OR IGNORE INTO entity_emails (EntityID, EmailTypeID, Email, IsPrimary)
            VALUES (?, ?, ?, ?);
            """,
            (entity_id, type_id, email, 1 if is_primary else 0),
        )

    def add_address(
        self,
        entity_id: int,
        type_name: str,
        address: AddressParts,
        is_primary: bool = False,
    ) -> bool:
        # Identifying parts are stored as '' (not NULL) so the unique key matches on re-runs
        if address.is_blank() or self._skip_writes(entity_id):
            return False

        type_id = self.lookups.address_type_id(type_name)
        return self._insert(
            """
            INSERT OR IGNORE INTO entity_addresses
                (EntityID, AddressTypeID, Address1, Address2, City, State, Postal, Country, IsPrimary)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                entity_id,
                type_id,
                text_or_empty(address.line1),
                clean_text(address.line2),
                text_or_empty(address.city),
                text_or_empty(address.state),
                text_or_empty(address.postal),
                clean_text(address.country) or "US",
                1 if is_primary else 0,
            ),
        )
