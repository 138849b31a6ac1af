"""
Tests for ETL normalizers module.

Tests dedup key normalization and legacy value coercion.
"""

from datetime import datetime

import pytest

from entity_migration.etl.normalizers import (
    clean_text,
    concat_name,
    normalize_key,
    org_key,
    parse_legacy_timestamp,
    person_key,
    text_or_empty,
    to_flag,
    to_iso_date,
    to_optional_float,
    to_optional_int,
)


class TestNormalizeKey:
    """Tests for normalize_key function."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("  ACME, Inc.  ", "acme inc."),
            ("Smith   &  Sons", "smith & sons"),
            ("O'Reilly Auto-Parts", "oreilly auto-parts"),
            ("a , b", "a b"),
            ("Tab\tand\nnewline", "tab and newline"),
            ("", ""),
            (None, ""),
            ("!!!", ""),
        ],
    )
    def test_normalization(self, raw, expected):
        assert normalize_key(raw) == expected

    def test_idempotent(self):
        once = normalize_key("  The  Acme, Co. ")
        assert normalize_key(once) == once


class TestPersonKey:
    """Tests for person_key function."""

    def test_parts_are_joined(self):
        assert person_key("Ann", "Lee", "1 Main St|62701") == "ann|lee|1 main st62701"

    def test_case_and_spacing_do_not_matter(self):
        assert person_key(" JOHN ", "smith", "10 Oak Ave|62702") == person_key(
            "John", "Smith", "10  oak ave|62702"
        )

    def test_address_separates_namesakes(self):
        assert person_key("John", "Smith", "10 Oak Ave|62702") != person_key(
            "John", "Smith", "99 Elm St|62703"
        )

    def test_blank_names_give_empty_key(self):
        """An address alone never identifies a person."""
        assert person_key("", None, "10 Oak Ave|62702") == ""
        assert person_key(None, "  ", None) == ""

    def test_one_name_is_enough(self):
        assert person_key("Cher", None) == "cher||"


class TestOrgKey:
    """Tests for org_key function."""

    def test_spellings_merge(self):
        assert org_key("Acme Towing") == org_key("ACME TOWING ") == org_key(" acme towing")

    def test_blank(self):
        assert org_key(None) == ""


class TestTextHelpers:
    """Tests for clean_text, text_or_empty and concat_name."""

    def test_clean_text(self):
        assert clean_text("  Acme  ") == "Acme"
        assert clean_text("   ") is None
        assert clean_text(None) is None
        assert clean_text(42) == "42"

    def test_text_or_empty(self):
        assert text_or_empty(None) == ""
        assert text_or_empty(" x ") == "x"

    def test_concat_name(self):
        assert concat_name("John", "Smith") == "John Smith"
        assert concat_name("John", None) == "John"
        assert concat_name(None, " Smith ") == "Smith"
        assert concat_name(None, None) == ""


class TestNumericCoercion:
    """Tests for to_optional_float and to_optional_int."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1500.50", 1500.5),
            (" 25000 ", 25000.0),
            (7, 7.0),
            (2.5, 2.5),
            ("", None),
            ("   ", None),
            ("n/a", None),
            ("1,500", None),
            (None, None),
            ("NaN", None),
            ("inf", None),
            (float("nan"), None),
            (True, None),
        ],
    )
    def test_to_optional_float(self, value, expected):
        assert to_optional_float(value) == expected

    def test_blank_is_not_zero(self):
        assert to_optional_float("") is None
        assert to_optional_float("0") == 0.0

    def test_to_optional_int(self):
        assert to_optional_int("42") == 42
        assert to_optional_int("4010.0") == 4010
        assert to_optional_int("") is None


class TestToFlag:
    """Tests for to_flag function."""

    @pytest.mark.parametrize(
        "value,default,expected",
        [
            (None, True, True),
            (None, False, False),
            ("", True, True),
            ("  ", False, False),
            ("0", True, False),
            ("1", False, True),
            ("-1", False, True),
            (0, True, False),
            (-1, False, True),
            ("Y", False, True),
            ("yes", False, True),
            ("No", True, False),
            ("false", True, False),
            (True, False, True),
        ],
    )
    def test_coercion(self, value, default, expected):
        assert to_flag(value, default=default) is expected


class TestParseLegacyTimestamp:
    """Tests for parse_legacy_timestamp function."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2024-01-01 09:00:00", datetime(2024, 1, 1, 9, 0)),
            ("2024-01-01", datetime(2024, 1, 1)),
            ("2024-01-01T09:00:00", datetime(2024, 1, 1, 9, 0)),
            ("01/02/2024 08:15 AM", datetime(2024, 1, 2, 8, 15)),
            ("01/02/2024", datetime(2024, 1, 2)),
            ("07:30:00", datetime(1900, 1, 1, 7, 30)),
            ("1899-12-30 12:00:00", datetime(1899, 12, 30, 12, 0)),
        ],
    )
    def test_parses_legacy_formats(self, raw, expected):
        assert parse_legacy_timestamp(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [None, "", "   ", "0000-00-00", "0000-00-00 00:00:00", "00/00/0000", "garbage", "2024-13-45"],
    )
    def test_absent_values(self, raw):
        assert parse_legacy_timestamp(raw) is None

    def test_datetime_passthrough(self):
        value = datetime(2024, 5, 6, 7, 8, 9)
        assert parse_legacy_timestamp(value) == value


class TestToIsoDate:
    """Tests for to_iso_date function."""

    def test_datetime_string(self):
        assert to_iso_date("2020-03-15 00:00:00") == "2020-03-15"

    def test_sentinels_are_absent(self):
        assert to_iso_date("0000-00-00") is None
        assert to_iso_date("") is None
        assert to_iso_date(None) is None

    def test_time_only_is_absent(self):
        assert to_iso_date("07:30") is None
