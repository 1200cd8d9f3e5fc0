from datetime import date

import pytest

from import_engine.csv_parser import parse_csv
from import_engine.field_map import build_header_map, fold_header
from import_engine.normalizer import (
    MIGRATION, PROJECT, clean_numeric, convert_excel_date, normalize_file,
    parse_boolean, parse_int,
)


@pytest.mark.parametrize("header", ["PI_Name", "PI Name", "pi_name", " pi-name "])
def test_header_variants_fold_to_one_alias(header):
    """Test that case and separator variants of a header are one alias."""
    assert fold_header(header) == "pi_name"
    header_map, unmatched = build_header_map("organizations", [header])
    assert header_map == {"pi_name": [header]}
    assert unmatched == []


def test_unrecognised_headers_are_ignored():
    """Test that unknown columns are reported but not mapped."""
    header_map, unmatched = build_header_map("projects", ["ID", "Favourite Colour"])
    assert "external_number" in header_map
    assert unmatched == ["Favourite Colour"]


@pytest.mark.parametrize("value", ["yes", "TRUE", "1", "y", "t", "on", "enabled", "Active"])
def test_boolean_true_vocabulary(value):
    assert parse_boolean(value) is True


@pytest.mark.parametrize("value", ["no", "false", "0", "off", "inactive", "maybe", "", None, "NULL"])
def test_boolean_everything_else_is_false(value):
    assert parse_boolean(value) is False


def test_numeric_cleanup():
    """Test that units and separators are stripped from quantities."""
    assert clean_numeric("250 ul") == 250.0
    assert clean_numeric("1,200mg") == 1200.0
    assert clean_numeric("n/a") is None
    assert clean_numeric("null") is None


def test_parse_int():
    assert parse_int("46") == 46
    assert parse_int("46.0") == 46
    assert parse_int("46.5") is None
    assert parse_int("P-46") is None


def test_excel_serial_and_strings():
    """Test that Excel serials and date strings become dates."""
    assert convert_excel_date("44927") == date(2023, 1, 1)
    assert convert_excel_date("2021-06-15") == date(2021, 6, 15)
    assert convert_excel_date("3/15/1998") == date(1998, 3, 15)


@pytest.mark.parametrize("value", ["0000-00-00", "00/00/00", "12/31/69", "0", "100",
                                   "not a date", "1850-01-01", "", None])
def test_placeholder_and_garbage_dates_are_unknown(value):
    """Test that placeholder dates and implausible years give None."""
    assert convert_excel_date(value) is None


def test_late_year_is_read_as_previous_century():
    assert convert_excel_date("2045-03-15") == date(1945, 3, 15)


def test_normalize_file_tags_rows_and_mode():
    """Test that records keep their source row and the import mode."""
    parsed = parse_csv("ID,PI Name,Institute\n46,Jane Doe,Mayo\n47,,Stanford\n", "orgs.csv")
    normalized = normalize_file(parsed, "organizations", PROJECT)

    first, second = normalized.records
    assert (first.row, second.row) == (2, 3)
    assert first.mode == PROJECT and not first.is_migration
    assert first.external_number == 46
    assert first.fields["pi_name"] == "Jane Doe"
    assert first.fields["pi_institute"] == "Mayo"
    # missing PI name gets a placeholder from the institute
    assert second.fields["pi_name"] == "PI at Stanford"


def test_organization_with_nothing_gets_placeholders():
    parsed = parse_csv("ID,Comments\n9,legacy row\n", "orgs.csv")
    record = normalize_file(parsed, "organizations", MIGRATION).records[0]
    assert record.fields["pi_name"] == "Unknown PI"
    assert record.fields["pi_institute"] == "Unknown Institution"


def test_specimen_fields_are_converted():
    """Test that specimen booleans, quantities and dates are typed."""
    raw = ("ID,Tube ID,Extracted,Initial Quantity,Date Collected,Project\n"
           "39552,T-1,yes,250 ul,2020-02-03,17\n")
    record = normalize_file(parse_csv(raw, "s.csv"), "specimens", MIGRATION).records[0]

    assert record.external_number == 39552
    assert record.fields["tube_id"] == "T-1"
    assert record.fields["extracted"] is True
    assert record.fields["used_up"] is False
    assert record.fields["initial_quantity"] == 250.0
    assert record.fields["date_collected"] == date(2020, 2, 3)
    assert record.fields["project_reference"] == "17"
    assert record.fields["activity_status"] == "Active"


def test_unknown_mode_rejected():
    parsed = parse_csv("ID\n1\n", "x.csv")
    with pytest.raises(ValueError):
        normalize_file(parsed, "organizations", "bulk")
