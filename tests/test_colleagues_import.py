"""
Tests for colleague CSV import validation and export.
"""
import pytest
from io import BytesIO
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.data.colleagues import (
    CSV_HEADERS,
    parse_bool,
    is_valid_ymd,
    read_import_csv,
    validate_import_rows,
    build_insert_payload,
    import_template_csv,
    export_colleagues_csv,
)


SITES = {"leeds dc": {"id": "s1", "name": "Leeds DC"}}


def csv_text(*rows):
    lines = [",".join(CSV_HEADERS)]
    lines.extend(rows)
    return "\n".join(lines)


FULL_TIME = "Acme,Leeds DC,Ann,Lee,FULL_TIME,2024-05-01,,,,Bob Lee,0123,true"
AGENCY = "acme,leeds dc,Cy,Dee,agency,,Temps Ltd,2025-01-06,12,,,no"


class TestParsing:
    """Tests for value helpers."""

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("YES", True), ("1", True), ("y", True),
        ("false", False), ("No", False), ("0", False), ("n", False),
    ])
    def test_parse_bool(self, value, expected):
        assert parse_bool(value) is expected

    def test_parse_bool_default(self):
        assert parse_bool("") is True
        assert parse_bool(None, default=False) is False

    def test_is_valid_ymd(self):
        assert is_valid_ymd("2025-01-31") is True
        assert is_valid_ymd("2025-02-30") is False
        assert is_valid_ymd("31/01/2025") is False
        assert is_valid_ymd("") is False


class TestValidateImportRows:
    """Tests for row validation."""

    def test_valid_rows(self):
        df = read_import_csv(csv_text(FULL_TIME, AGENCY))

        result = validate_import_rows(df, "Acme", SITES)

        assert result.errors == []
        assert result.ready_count == 2
        assert result.total == 2
        assert result.can_import is True

    def test_empty_file(self):
        result = validate_import_rows(read_import_csv(csv_text()), "Acme", SITES)

        assert result.errors == ["No data rows found in CSV."]
        assert result.can_import is False

    def test_missing_header_blocks_import(self):
        df = read_import_csv(csv_text(FULL_TIME)).drop(columns=["active"])

        result = validate_import_rows(df, "Acme", SITES)

        assert any("missing required header(s): active" in e for e in result.errors)
        assert result.ready_count == 0

    def test_extra_column_is_warning(self):
        df = read_import_csv(csv_text(FULL_TIME))
        df["shoe_size"] = "9"

        result = validate_import_rows(df, "Acme", SITES)

        assert result.errors == []
        assert any("shoe_size" in w for w in result.warnings)

    def test_row_numbers_match_spreadsheet(self):
        """Header is row 1, so the first data row is row 2."""
        bad = "Acme,Leeds DC,,Lee,FULL_TIME,2024-05-01,,,,,,true"
        df = read_import_csv(csv_text(FULL_TIME, bad))

        result = validate_import_rows(df, "Acme", SITES)

        assert result.errors == ["Row 3: first_name is required."]
        assert result.ready_count == 1

    def test_wrong_company(self):
        row = "Other Co,Leeds DC,Ann,Lee,FULL_TIME,2024-05-01,,,,,,true"

        result = validate_import_rows(read_import_csv(csv_text(row)), "Acme", SITES)

        assert any('company_name must be "Acme"' in e for e in result.errors)

    def test_unknown_site(self):
        row = "Acme,Hull,Ann,Lee,FULL_TIME,2024-05-01,,,,,,true"

        result = validate_import_rows(read_import_csv(csv_text(row)), "Acme", SITES)

        assert any("site_name not found" in e for e in result.errors)

    def test_employment_type_rules(self):
        rows = [
            "Acme,Leeds DC,A,B,CONTRACTOR,,,,,,,true",
            "Acme,Leeds DC,A,B,FULL_TIME,01/05/2024,,,,,,true",
            "Acme,Leeds DC,A,B,AGENCY,,,,,,,true",
            "Acme,Leeds DC,A,B,AGENCY,,Temps,2025-01-06,-2,,,true",
        ]

        result = validate_import_rows(read_import_csv(csv_text(*rows)), "Acme", SITES)
        messages = " ".join(result.errors)

        assert "employment_type must be FULL_TIME or AGENCY." in messages
        assert "employment_start_date must be YYYY-MM-DD." in messages
        assert "agency_name is required for AGENCY." in messages
        assert "agency_start_date is required for AGENCY." in messages
        assert "weeks_until_full_time cannot be negative." in messages
        assert result.ready_count == 0

    @pytest.mark.parametrize("weeks", ["nan", "inf", "-Infinity", "twelve"])
    def test_weeks_must_be_a_finite_number(self, weeks):
        row = f"Acme,Leeds DC,A,B,AGENCY,,Temps,2025-01-06,{weeks},,,true"

        result = validate_import_rows(read_import_csv(csv_text(row)), "Acme", SITES)

        assert result.errors == ["Row 2: weeks_until_full_time must be a number if provided."]
        assert result.ready_count == 0
        assert build_insert_payload(result.preview, "c1") == []

    def test_ignored_fields_warn(self):
        row = "Acme,Leeds DC,Ann,Lee,FULL_TIME,2024-05-01,Temps,,4,,,true"

        result = validate_import_rows(read_import_csv(csv_text(row)), "Acme", SITES)

        assert result.errors == []
        assert any("agency_name provided but employment_type is FULL_TIME" in w for w in result.warnings)
        assert result.ready_count == 1

    def test_no_company_assigned(self):
        result = validate_import_rows(read_import_csv(csv_text(FULL_TIME)), "", SITES)

        assert any("No company assigned" in e for e in result.errors)


class TestBuildInsertPayload:
    """Tests for the insert payload."""

    def test_payload_fields(self):
        result = validate_import_rows(read_import_csv(csv_text(FULL_TIME, AGENCY)), "Acme", SITES)

        payload = build_insert_payload(result.preview, "c1")

        full_time, agency = payload
        assert full_time["company_id"] == "c1"
        assert full_time["site_id"] == "s1"
        assert full_time["employment_start_date"] == "2024-05-01"
        assert full_time["agency_name"] is None
        assert full_time["emergency_contact_phone"] == "0123"
        assert full_time["active"] is True

        assert agency["employment_type"] == "AGENCY"
        assert agency["employment_start_date"] is None
        assert agency["agency_name"] == "Temps Ltd"
        assert agency["weeks_until_full_time"] == 12.0
        assert agency["emergency_contact_name"] is None
        assert agency["active"] is False

    def test_only_valid_rows(self):
        bad = "Acme,Leeds DC,,Lee,FULL_TIME,2024-05-01,,,,,,true"
        result = validate_import_rows(read_import_csv(csv_text(FULL_TIME, bad)), "Acme", SITES)

        assert len(build_insert_payload(result.preview, "c1")) == 1

    def test_empty_preview(self):
        assert build_insert_payload(pd.DataFrame(), "c1") == []


class TestTemplateAndExport:
    """Tests for the template and export files."""

    def test_template_round_trips_through_validation(self):
        template = import_template_csv("Acme")
        df = read_import_csv(template)

        assert list(df.columns) == CSV_HEADERS
        assert df.iloc[0]["company_name"] == "Acme"

        result = validate_import_rows(df, "Acme", {"example site": {"id": "s9", "name": "Example Site"}})
        assert result.errors == []

    def test_export_columns_and_filename(self):
        colleagues = pd.DataFrame([{
            "first_name": "Ann", "last_name": "Lee", "employment_type": "FULL_TIME",
            "employment_start_date": "2024-05-01", "active": True, "internal_note": "x",
        }])

        data, filename = export_colleagues_csv(colleagues, "Acme Logistics", "Leeds DC")
        df = pd.read_csv(BytesIO(data))

        assert filename == "colleagues_export_Acme_Logistics_Leeds_DC.csv"
        assert list(df.columns[:2]) == ["company_name", "site_name"]
        assert "internal_note" not in df.columns
        assert df.iloc[0]["site_name"] == "Leeds DC"
