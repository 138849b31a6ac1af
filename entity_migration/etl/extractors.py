"""
ETL Extractors for the legacy shop database.

This module reads the flat legacy tables in a read-only, schema-tolerant
manner and turns each row into a typed dataclass.

Design Decisions:
    1. Rows are read with SELECT * and accessed by name with .get(), so a
       missing legacy column reads as absent instead of failing
    2. All coercion happens here: blank strings become None, numeric-or-blank
       values become Optional[float]/Optional[int], flags become bool
    3. Timestamps stay raw strings; the timeclock engine owns their parsing
    4. Every extractor returns a list, so a phase can be re-iterated

Legacy tables:
    tblCustomers, tblVendors, tblEmployees, tblWOSublet (SubletCompany),
    tblTimeclock, tblTransTypes
"""

import sqlite3
from contextlib import closing
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
import logging

from entity_migration.etl.normalizers import (
    clean_text,
    to_flag,
    to_optional_float,
    to_optional_int,
)

logger = logging.getLogger(__name__)


@dataclass
class AddressParts:
    """A postal address as found on a legacy row."""

    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal: Optional[str] = None
    country: Optional[str] = "US"

    def is_blank(self) -> bool:
        """True if every field that identifies the address is blank."""
        return not any(
            clean_text(part) for part in (self.line1, self.city, self.state, self.postal)
        )

    def dedup_fragment(self) -> str:
        """Address fragment that tells same-named people apart."""
        return f"{self.line1 or ''}|{self.postal or ''}"


@dataclass
class LegacyCustomer:
    """Extracted customer from tblCustomers."""

    legacy_id: Optional[int]
    company_name: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    type_name: Optional[str]
    billing_address: AddressParts
    shipping_address: AddressParts
    phone: Optional[str] = None
    email: Optional[str] = None
    credit_limit: Optional[float] = None
    accept_checks: bool = True
    accept_charge: bool = True
    default_pricing: Optional[str] = None
    tax_exempt: bool = False
    resale_no: Optional[str] = None
    internal_comments: Optional[str] = None


@dataclass
class LegacyVendor:
    """Extracted vendor from tblVendors."""

    legacy_id: Optional[int]
    company_name: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    contact_name: Optional[str]
    lookup_code: Optional[str]
    address: AddressParts
    phone: Optional[str] = None
    fax: Optional[str] = None
    email: Optional[str] = None
    payterms_id: Optional[int] = None
    acct_id: Optional[int] = None
    fed_tax_no: Optional[str] = None
    state_tax_no: Optional[str] = None
    credit_limit: Optional[float] = None
    comments: Optional[str] = None


@dataclass
class LegacyEmployee:
    """Extracted employee from tblEmployees."""

    legacy_id: Optional[int]
    first_name: Optional[str]
    middle_name: Optional[str]
    last_name: Optional[str]
    address: AddressParts
    office_phone: Optional[str] = None
    home_phone: Optional[str] = None
    pay_type_id: Optional[int] = None
    supervisor: Optional[str] = None
    search_key: Optional[str] = None
    ssn: Optional[str] = None
    hire_date: Optional[str] = None
    termination_date: Optional[str] = None
    pay: Optional[float] = None
    current_status: Optional[str] = None
    comments: Optional[str] = None
    active: bool = True


@dataclass
class LegacyPunch:
    """
    Extracted time-clock row from tblTimeclock.

    Timestamp fields are kept as raw legacy strings; they may be blank,
    all-zero sentinels, time-only values, or garbage.
    """

    legacy_id: Optional[int]
    employee_ref: Optional[int]
    clock_in: Optional[str]
    clock_out: Optional[str]
    trans_date: Optional[str]
    trans_type: Optional[str]


def _fetch_rows(conn: sqlite3.Connection, query: str) -> List[Dict[str, Any]]:
    """Run a SELECT and return rows as name -> value dicts."""
    with closing(conn.cursor()) as cursor:
        cursor.execute(query)
        names = [column[0] for column in cursor.description]
        return [dict(zip(names, row)) for row in cursor.fetchall()]


def _first_present(row: Mapping[str, Any], *names: str) -> Any:
    """Return the first non-None value among alternative column spellings."""
    for name in names:
        if row.get(name) is not None:
            return row[name]
    return None


def _raw_text(value: Any) -> Optional[str]:
    """Keep a legacy value as text without trimming, None stays None."""
    if value is None:
        return None
    return str(value)


def customer_from_row(row: Mapping[str, Any]) -> LegacyCustomer:
    """Build a LegacyCustomer from a tblCustomers row."""
    return LegacyCustomer(
        legacy_id=to_optional_int(row.get("CustomerID")),
        company_name=clean_text(row.get("CompanyName")),
        first_name=clean_text(row.get("ContactFirstName")),
        last_name=clean_text(row.get("ContactLastName")),
        type_name=clean_text(row.get("TypeID")),
        billing_address=AddressParts(
            line1=clean_text(row.get("Address")),
            city=clean_text(row.get("City")),
            state=clean_text(row.get("State")),
            postal=clean_text(row.get("PostalCode")),
        ),
        shipping_address=AddressParts(
            line1=clean_text(row.get("SAddress")),
            city=clean_text(row.get("SCity")),
            state=clean_text(row.get("SState")),
            postal=clean_text(row.get("SPostalCode")),
        ),
        phone=clean_text(row.get("PhoneNumber")),
        email=clean_text(_first_present(row, "Email", "email")),
        credit_limit=to_optional_float(row.get("CreditLim")),
        accept_checks=to_flag(row.get("CheckApp"), default=True),
        accept_charge=to_flag(row.get("ChargeApp"), default=True),
        default_pricing=clean_text(row.get("DefaultPricing")),
        tax_exempt=to_flag(row.get("TaxExempt"), default=False),
        resale_no=clean_text(row.get("ResaleNo")),
        internal_comments=clean_text(row.get("InternalComments")),
    )


def vendor_from_row(row: Mapping[str, Any]) -> LegacyVendor:
    """Build a LegacyVendor from a tblVendors row."""
    return LegacyVendor(
        legacy_id=to_optional_int(row.get("VendorID")),
        company_name=clean_text(row.get("CompanyName")),
        first_name=clean_text(row.get("FirstName")),
        last_name=clean_text(row.get("LastName")),
        contact_name=clean_text(row.get("ContactName")),
        lookup_code=clean_text(row.get("LookupCode")),
        address=AddressParts(
            line1=clean_text(row.get("Address")),
            city=clean_text(row.get("City")),
            state=clean_text(row.get("State")),
            postal=clean_text(row.get("Zip")),
        ),
        phone=clean_text(row.get("Phone")),
        fax=clean_text(row.get("Fax")),
        email=clean_text(_first_present(row, "email", "Email")),
        payterms_id=to_optional_int(row.get("PaytermsID")),
        acct_id=to_optional_int(row.get("AcctID")),
        fed_tax_no=clean_text(row.get("FedTaxNo")),
        state_tax_no=clean_text(row.get("StateTaxNo")),
        credit_limit=to_optional_float(row.get("CreditLimit")),
        comments=clean_text(row.get("Comments")),
    )


def employee_from_row(row: Mapping[str, Any]) -> LegacyEmployee:
    """Build a LegacyEmployee from a tblEmployees row."""
    return LegacyEmployee(
        legacy_id=to_optional_int(row.get("EmployeeId")),
        first_name=clean_text(row.get("Firstname")),
        middle_name=clean_text(row.get("Middlename")),
        last_name=clean_text(row.get("Lastname")),
        address=AddressParts(
            line1=clean_text(row.get("Addr1")),
            line2=clean_text(row.get("Addr2")),
            city=clean_text(row.get("City")),
            state=clean_text(row.get("State")),
            postal=clean_text(row.get("Zip")),
            country=clean_text(row.get("country")) or "US",
        ),
        office_phone=clean_text(row.get("OfficePhone")),
        home_phone=clean_text(row.get("HomePhone")),
        pay_type_id=to_optional_int(row.get("PayTypeID")),
        supervisor=clean_text(row.get("Supervisor")),
        search_key=clean_text(row.get("SearchKey")),
        ssn=clean_text(row.get("SSNNo")),
        hire_date=_raw_text(row.get("HireDate")),
        termination_date=_raw_text(row.get("TerminationDate")),
        pay=to_optional_float(row.get("Pay")),
        current_status=clean_text(row.get("CurrentStatus")),
        comments=clean_text(row.get("Comments")),
        active=to_flag(row.get("Active"), default=True),
    )


def punch_from_row(row: Mapping[str, Any]) -> LegacyPunch:
    """Build a LegacyPunch from a tblTimeclock row."""
    return LegacyPunch(
        legacy_id=to_optional_int(_first_present(row, "TimeclockID", "ID")),
        employee_ref=to_optional_int(_first_present(row, "EmployeeID", "EmployeeId")),
        clock_in=_raw_text(row.get("ClockIn")),
        clock_out=_raw_text(row.get("ClockOut")),
        trans_date=_raw_text(row.get("TransDate")),
        trans_type=_raw_text(row.get("TransType")),
    )


def extract_customers(conn: sqlite3.Connection) -> List[LegacyCustomer]:
    """
    Extract all customers from tblCustomers.

    Args:
        conn: SQLite connection to the legacy database.

    Returns:
        List of LegacyCustomer objects.
    """
    rows = _fetch_rows(conn, "SELECT * FROM tblCustomers;")
    customers = [customer_from_row(row) for row in rows]
    logger.info(f"Extracted {len(customers)} customers")
    return customers


def extract_vendors(conn: sqlite3.Connection) -> List[LegacyVendor]:
    """Extract all vendors from tblVendors."""
    rows = _fetch_rows(conn, "SELECT * FROM tblVendors;")
    vendors = [vendor_from_row(row) for row in rows]
    logger.info(f"Extracted {len(vendors)} vendors")
    return vendors


def extract_employees(conn: sqlite3.Connection) -> List[LegacyEmployee]:
    """Extract all employees from tblEmployees."""
    rows = _fetch_rows(conn, "SELECT * FROM tblEmployees;")
    employees = [employee_from_row(row) for row in rows]
    logger.info(f"Extracted {len(employees)} employees")
    return employees


def extract_sublet_companies(conn: sqlite3.Connection) -> List[str]:
    """
    Extract distinct sublet company names from tblWOSublet.

    Returns:
        List of trimmed, non-blank company names.
    """
    query = """
        SELECT DISTINCT TRIM(SubletCompany)
        FROM tblWOSublet
        WHERE SubletCompany IS NOT NULL AND TRIM(SubletCompany) <> ''
        ORDER BY 1;
    """
    with closing(conn.cursor()) as cursor:
        cursor.execute(query)
        names = [row[0] for row in cursor.fetchall()]

    logger.info(f"Extracted {len(names)} distinct sublet companies")
    return names


def extract_punches(conn: sqlite3.Connection) -> List[LegacyPunch]:
    """Extract all time-clock rows from tblTimeclock."""
    rows = _fetch_rows(conn, "SELECT * FROM tblTimeclock;")
    punches = [punch_from_row(row) for row in rows]
    logger.info(f"Extracted {len(punches)} timeclock rows")
    return punches


def extract_trans_types(conn: sqlite3.Connection) -> Dict[str, str]:
    """
    Extract the legacy transaction type code -> label lookup.

    The table is optional; a database without it yields an empty mapping.

    Returns:
        Mapping of code (as text) to label.
    """
    try:
        rows = _fetch_rows(conn, "SELECT * FROM tblTransTypes;")
    except sqlite3.OperationalError as e:
        logger.warning(f"No transaction type lookup available: {e}")
        return {}

    labels: Dict[str, str] = {}
    for row in rows:
        code = clean_text(_first_present(row, "TransTypeID", "Code"))
        label = clean_text(_first_present(row, "TransType", "Description"))
        if code and label:
            labels[code] = label
    return labels


def get_source_counts(conn: sqlite3.Connection) -> Dict[str, int]:
    """
    Count rows in each legacy table that exists.

    Returns:
        Mapping of table name to row count.
    """
    tables = ["tblCustomers", "tblVendors", "tblEmployees", "tblWOSublet", "tblTimeclock"]
    counts: Dict[str, int] = {}
    with closing(conn.cursor()) as cursor:
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
        existing = {row[0] for row in cursor.fetchall()}
        for table in tables:
            if table in existing:
                cursor.execute(f"SELECT COUNT(*) FROM {table};")
                counts[table] = cursor.fetchone()[0]
    return counts
