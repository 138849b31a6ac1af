"""
Pytest fixtures for Entity Migration tests.

This module provides shared fixtures for testing the migration pipeline,
including a sample legacy database with known-imperfect data.

Fixture Categories:
    1. Legacy database fixtures (sample legacy.db, empty legacy.db)
    2. Target database fixtures (created schema, open connection, migrated)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - The sample legacy.db carries the data-quality problems the migration
      must tolerate: blank strings, all-zero dates, time-only clock values,
      one company under three spellings, and a punch for an unknown employee

Sample data at a glance:
    - "Acme Towing" is a customer, a vendor ("ACME TOWING ") and a sublet
      company (" acme towing"), so it resolves to one organization
    - Customer 2 and employee 10 are the same John Smith (same address);
      customer 3 is a different John Smith
    - Punch 4 references employee 99, who does not exist
    - blank_names_legacy_db adds a nameless customer, vendor and employee
"""

import sqlite3
from pathlib import Path

import pytest

LEGACY_SCHEMA = """
    CREATE TABLE tblCustomers (
        CustomerID INTEGER PRIMARY KEY,
        CompanyName TEXT,
        ContactFirstName TEXT,
        ContactLastName TEXT,
        TypeID TEXT,
        Address TEXT,
        City TEXT,
        State TEXT,
        PostalCode TEXT,
        SAddress TEXT,
        SCity TEXT,
        SState TEXT,
        SPostalCode TEXT,
        PhoneNumber TEXT,
        Email TEXT,
        CreditLim TEXT,
        CheckApp TEXT,
        ChargeApp TEXT,
        DefaultPricing TEXT,
        TaxExempt TEXT,
        ResaleNo TEXT,
        InternalComments TEXT
    );

    CREATE TABLE tblVendors (
        VendorID INTEGER PRIMARY KEY,
        CompanyName TEXT,
        FirstName TEXT,
        LastName TEXT,
        ContactName TEXT,
        LookupCode TEXT,
        Address TEXT,
        City TEXT,
        State TEXT,
        Zip TEXT,
        Phone TEXT,
        Fax TEXT,
        email TEXT,
        PaytermsID TEXT,
        AcctID TEXT,
        FedTaxNo TEXT,
        StateTaxNo TEXT,
        CreditLimit TEXT,
        Comments TEXT
    );

    CREATE TABLE tblEmployees (
        EmployeeId INTEGER PRIMARY KEY,
        Firstname TEXT,
        Middlename TEXT,
        Lastname TEXT,
        Addr1 TEXT,
        Addr2 TEXT,
        City TEXT,
        State TEXT,
        Zip TEXT,
        country TEXT,
        OfficePhone TEXT,
        HomePhone TEXT,
        PayTypeID TEXT,
        Supervisor TEXT,
        SearchKey TEXT,
        SSNNo TEXT,
        HireDate TEXT,
        TerminationDate TEXT,
        Pay TEXT,
        CurrentStatus TEXT,
        Comments TEXT,
        Active TEXT
    );

    CREATE TABLE tblWOSublet (
        SubletID INTEGER PRIMARY KEY,
        WorkOrderID INTEGER,
        SubletCompany TEXT
    );

    CREATE TABLE tblTimeclock (
        TimeclockID INTEGER PRIMARY KEY,
        EmployeeID INTEGER,
        ClockIn TEXT,
        ClockOut TEXT,
        TransDate TEXT,
        TransType INTEGER
    );

    CREATE TABLE tblTransTypes (
        TransTypeID INTEGER PRIMARY KEY,
        TransType TEXT
    );
"""

CUSTOMERS = [
    # CustomerID, CompanyName, First, Last, TypeID,
    # Address, City, State, PostalCode, SAddress, SCity, SState, SPostalCode,
    # Phone, Email, CreditLim, CheckApp, ChargeApp, DefaultPricing, TaxExempt, ResaleNo, Comments
    (
        1, "Acme Towing", None, None, "Commercial",
        "1 Main St", "Springfield", "IL", "62701", "", "", "", "",
        "555-0100", "ap@acme.test", "1500.50", "1", "0", "A", "0", "R-100", "Pays late",
    ),
    (
        2, "", "John", "Smith", "Retail",
        "10 Oak Ave", "Springfield", "IL", "62702", "10 Oak Ave", "Springfield", "IL", "62702",
        "555-0101", "", "", "", "", "", "", None, None,
    ),
    (
        3, None, "John", "Smith", "Retail",
        "99 Elm St", "Shelbyville", "IL", "62703", None, None, None, None,
        "555-0102", None, "n/a", "Y", "Y", "B", "1", None, None,
    ),
    (
        4, "City of Springfield", None, None, "Gov",
        "100 City Hall Plz", "Springfield", "IL", "62701", None, None, None, None,
        "555-0103", "fleet@springfield.test", "25000", None, None, None, "yes", None, None,
    ),
]

VENDORS = [
    # VendorID, CompanyName, First, Last, ContactName, LookupCode,
    # Address, City, State, Zip, Phone, Fax, email,
    # PaytermsID, AcctID, FedTaxNo, StateTaxNo, CreditLimit, Comments
    (
        1, "ACME TOWING ", None, None, "Bob", "Tow",
        "1 Main St", "Springfield", "IL", "62701", "555-0100", "555-0199", "",
        "2", "4010", "12-3456789", None, "5000", None,
    ),
    (
        2, "First National Bank", None, None, None, "Bank",
        "200 Money Way", "Springfield", "IL", "62701", "555-0200", None, None,
        None, None, None, None, "", None,
    ),
    (
        3, None, "Jane", "Doe", None, "part's",
        "5 Pine Rd", "Capital City", "IL", "62704", "555-0300", None, "jane@parts.test",
        None, None, None, None, None, "Sells used parts",
    ),
    (
        4, "Hyd Supply Co", None, None, None, "Hyd.Parts",
        "", "", "", "", "", "", "",
        None, None, None, None, None, None,
    ),
]

EMPLOYEES = [
    # EmployeeId, First, Middle, Last, Addr1, Addr2, City, State, Zip, country,
    # OfficePhone, HomePhone, PayTypeID, Supervisor, SearchKey, SSNNo,
    # HireDate, TerminationDate, Pay, CurrentStatus, Comments, Active
    (
        10, "John", "Q", "Smith", "10 Oak Ave", None, "Springfield", "IL", "62702", None,
        "555-0400", "555-0101", "1", "Maria Garcia", "SMITHJ", "123-45-6789",
        "2020-03-15 00:00:00", "", "22.50", "Full Time", None, "1",
    ),
    (
        11, "Maria", None, "Garcia", "7 Birch Ln", "Apt 2", "Springfield", "IL", "62705", "US",
        "555-0401", None, "2", None, "GARCIAM", None,
        "0000-00-00", None, "", "", None, "",
    ),
]

SUBLETS = [
    (1, 1001, "Acme Towing"),
    (2, 1002, " acme towing"),
    (3, 1003, "Glass Pros"),
    (4, 1004, None),
    (5, 1005, "   "),
    (6, 1006, "Glass Pros"),
]

TRANS_TYPES = [
    (1, "Clock In"),
    (2, "Lunch Out"),
    (3, "Vacation"),
]

PUNCHES = [
    # TimeclockID, EmployeeID, ClockIn, ClockOut, TransDate, TransType
    (1, 10, "2024-01-02 08:00:00", "2024-01-02 16:30:00", "2024-01-02", 1),
    (2, 10, "1899-12-30 12:00:00", "1899-12-30 12:45:00", "2024-01-03", 2),
    (3, 11, None, None, "2024-01-04", 3),
    (4, 99, "2024-01-02 08:00:00", "2024-01-02 16:00:00", "2024-01-02", 1),
    (5, 11, "", "0000-00-00 00:00:00", "", 1),
]


def _placeholders(row: tuple) -> str:
    return ", ".join("?" for _ in row)


def populate_legacy_db(db_path: Path) -> Path:
    """Create the sample legacy schema and rows at db_path."""
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(LEGACY_SCHEMA)
        for table, rows in (
            ("tblCustomers", CUSTOMERS),
            ("tblVendors", VENDORS),
            ("tblEmployees", EMPLOYEES),
            ("tblWOSublet", SUBLETS),
            ("tblTransTypes", TRANS_TYPES),
            ("tblTimeclock", PUNCHES),
        ):
            conn.executemany(f"INSERT INTO {table} VALUES ({_placeholders(rows[0])})", rows)
        conn.commit()
    finally:
        conn.close()
    return db_path


def pytest_configure(config):
    config.addinivalue_line("markers", "property: Hypothesis property-based tests")
    config.addinivalue_line("markers", "integration: end-to-end migration tests")


# =============================================================================
# Legacy database fixtures
# =============================================================================


@pytest.fixture
def sample_legacy_db(tmp_path: Path) -> Path:
    """
    Create a legacy.db with the sample customers, vendors, employees,
    sublets and timeclock rows described in the module docstring.

    Returns:
        Path to the sample legacy.db file.
    """
    return populate_legacy_db(tmp_path / "legacy.db")


@pytest.fixture
def blank_names_legacy_db(tmp_path: Path) -> Path:
    """
    Create the sample legacy.db plus one customer, vendor and employee with
    no first or last name, and a punch for that employee.

    Returns:
        Path to the legacy.db file.
    """
    db_path = populate_legacy_db(tmp_path / "blank_names.db")
    customer = (
        5, None, "", "  ", "Retail",
        "8 Cedar Dr", "Springfield", "IL", "62706", None, None, None, None,
        "555-0105", None, None, None, None, None, None, None, None,
    )
    vendor = (
        5, "", None, None, None, "Misc",
        "4 Oak Ct", "Springfield", "IL", "62707", "555-0305", None, None,
        None, None, None, None, None, None,
    )
    employee = (
        12, "", None, None, "3 Ash Ct", None, "Springfield", "IL", "62709", None,
        None, None, None, None, None, None,
        None, None, None, None, None, None,
    )
    punch = (6, 12, "2024-01-05 09:00:00", "2024-01-05 17:00:00", "2024-01-05", 1)

    conn = sqlite3.connect(str(db_path))
    try:
        for table, row in (
            ("tblCustomers", customer),
            ("tblVendors", vendor),
            ("tblEmployees", employee),
            ("tblTimeclock", punch),
        ):
            conn.execute(f"INSERT INTO {table} VALUES ({_placeholders(row)})", row)
        conn.commit()
    finally:
        conn.close()
    return db_path


@pytest.fixture
def empty_legacy_db(tmp_path: Path) -> Path:
    """
    Create a legacy.db with the schema but no rows.

    Returns:
        Path to the empty legacy.db file.
    """
    db_path = tmp_path / "empty_legacy.db"
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(LEGACY_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return db_path


# =============================================================================
# Target database fixtures
# =============================================================================


@pytest.fixture
def empty_target_db(tmp_path: Path) -> Path:
    """
    Create a target entities.db with the schema and seed rows only.

    Returns:
        Path to the created entities.db file.
    """
    from entity_migration.etl.schema import create_schema

    db_path = tmp_path / "entities.db"
    create_schema(db_path)
    return db_path


@pytest.fixture
def target_conn(empty_target_db: Path):
    """
    Open a read-write connection to a created target database.

    Yields:
        sqlite3.Connection with foreign keys enabled.
    """
    from entity_migration.database import DatabaseConnection

    with DatabaseConnection(empty_target_db) as db:
        yield db.connection


@pytest.fixture
def migrated_target_db(sample_legacy_db: Path, tmp_path: Path) -> Path:
    """
    Run a full migration of the sample legacy.db.

    Returns:
        Path to the migrated entities.db file.
    """
    from entity_migration.etl.pipeline import run_migration

    db_path = tmp_path / "migrated.db"
    result = run_migration(sample_legacy_db, db_path)
    assert result.success, result.error
    return db_path
