"""
Unit Tests for the Spreadsheet Reconciliation Importer.

Tests:
- Scenario F: fuzzy ledger match overrides computed values
- Row filtering (header, blank, alternate prefix, missing dimensions)
- Control totals and form data
- Ledger parsing: flat rows, blocks with and without TOTAL rows
- Fixed schema vs header-text fallback vs strict mode
- Fatal errors: missing primary sheet, unreadable buffer
"""

import json
from decimal import Decimal

import pytest

from config.errors import ErrorCode, MissingSheetError, WorkbookReadError
from models.verification import ColumnResolution, ExceptionType
from services.excel_import_service import import_workbook
from services.import_schema import (
    FIXED_COLUMNS_V1,
    HeaderColumnResolver,
    find_header_row,
    fixed_schema_matches,
    resolve_columns,
)
from services.ledger_parser import match_ledger_entry, margin_ratio, normalize_name, parse_ledger
from tests.fixtures.mock_workbook_data import (
    LEDGER_HEADER,
    STANDARD_LED_ROWS,
    STANDARD_LEDGER_ROWS,
    STANDARD_MIRROR_FINALS,
    build_workbook,
    led_header_row,
    led_row,
    scenario_f_workbook,
    shifted_columns_workbook,
    standard_workbook,
)


def exception_types(result):
    return [e.type for e in result.exceptions]


# =============================================================================
# Scenario F
# =============================================================================


class TestScenarioF:
    """Ledger "Main Scoreboard" vs technical "MAIN SCOREBOARD (Option 1)"."""

    def test_fuzzy_match_overrides_computed_values(self, test_settings):
        result = import_workbook(scenario_f_workbook(), "scenario-f.xlsx",
                                 app_settings=test_settings)
        audit = result.internal_audit.per_screen[0]

        assert audit.name == "MAIN SCOREBOARD (Option 1)"
        assert audit.breakdown.total_cost == 29028.0
        assert audit.breakdown.sell_price == 41468.57
        assert audit.breakdown.bond_cost == 622.03
        assert audit.breakdown.final_client_total == 42090.60
        assert audit.breakdown.anc_margin == 12440.57

    def test_match_recorded_in_control_totals(self, test_settings):
        result = import_workbook(scenario_f_workbook(), app_settings=test_settings)
        controls = result.verification_manifest.control_totals

        assert controls.ledger_matched == 1
        assert controls.ledger_unmatched == []
        assert result.verification_manifest.per_screen[0].ledger_matched is True
        assert ExceptionType.UNMATCHED_LEDGER_ROW.value not in exception_types(result)


# =============================================================================
# Standard workbook
# =============================================================================


class TestStandardImport:
    """Full workbook with skipped rows, a ledger block and an unmatched row."""

    @pytest.fixture
    def result(self, test_settings):
        return import_workbook(standard_workbook(), "Test Arena.xlsx", app_settings=test_settings)

    def test_imports_valid_rows_only(self, result):
        names = [s.name for s in result.internal_audit.per_screen]
        assert names == ["MAIN SCOREBOARD (Option 1)", "Ribbon Board", "Altitude Club Display"]

    def test_alternate_prefix_skip_keeps_altitude(self, result):
        names = [s.name for s in result.internal_audit.per_screen]
        assert "Alt 1 - Upgraded Ribbon" not in names
        assert "Altitude Club Display" in names

    def test_control_totals(self, result):
        controls = result.verification_manifest.control_totals

        assert controls.file_name == "Test Arena.xlsx"
        assert controls.sheets_read == ["LED Sheet", "Margin Analysis"]
        assert controls.primary_sheet == "LED Sheet"
        assert controls.schema_version == "v1"
        assert controls.column_resolution == ColumnResolution.FIXED.value
        assert controls.header_row_index == 1
        assert controls.row_count == 7
        assert controls.screen_count == 3
        assert controls.skipped == {
            "alternate": 1, "blank": 1, "missing_dimensions": 1, "header": 1,
        }
        assert controls.skipped_total == 4
        assert controls.ledger_entry_count == 3
        assert controls.ledger_matched == 2
        assert controls.ledger_unmatched == ["Concourse Fascia"]

    def test_mirror_values_are_authoritative(self, result):
        finals = {s.name: s.breakdown.final_client_total for s in result.internal_audit.per_screen}
        assert finals == STANDARD_MIRROR_FINALS
        assert result.internal_audit.totals.final_client_total == 106003.77

    def test_unmatched_display_keeps_sheet_values(self, result):
        ribbon = result.internal_audit.per_screen[1]

        assert ribbon.breakdown.sell_price == 46056.0
        assert ribbon.breakdown.hardware == 28500.0
        assert ribbon.pitch_mm == 16.0

    def test_install_split_between_structure_and_labor(self, result):
        b = result.internal_audit.per_screen[1].breakdown

        assert b.structure == 2500.0
        assert b.labor == 3500.0
        assert b.shipping == 42.0

    def test_form_data_screens(self, result):
        details = result.form_data["details"]
        main, ribbon, club = details["screens"]

        assert result.form_data["receiver"]["name"] == "Test Arena"
        assert details["mirrorMode"] is True
        assert main["description"] == "Resolution: 305h x 610w. Brightness: 6000 nits."
        assert main["isHDR"] is True
        assert ribbon["brightnessNits"] is None
        assert ribbon["description"] == "Resolution: 57h x 1905w."
        assert club["brightnessNits"] is None

    def test_block_items_become_line_items(self, result):
        club = result.form_data["details"]["screens"][2]

        assert [item["category"] for item in club["lineItems"]] == ["LED Display", "Install"]
        assert [item["price"] for item in club["lineItems"]] == [10240.0, 6672.64]
        assert club["lineItems"][0]["id"] == "mi-6-0"

    def test_flags_unmatched_rows(self, result):
        unmatched = [e for e in result.exceptions
                     if e.type == ExceptionType.UNMATCHED_LEDGER_ROW.value]

        assert {e.screen_name for e in unmatched if e.screen_name} == {"Ribbon Board"}
        assert any("Concourse Fascia" in e.message for e in unmatched)

    def test_no_line_item_mismatch_when_sums_agree(self, result):
        assert ExceptionType.LINE_ITEM_SUM_MISMATCH.value not in exception_types(result)

    def test_excel_data_is_json_safe(self, result):
        excel = result.excel_data

        assert excel["sheetNames"] == ["LED Sheet", "Margin Analysis"]
        assert excel["sheets"]["LED Sheet"][0][0] == "Project Name: Test Arena"
        json.dumps(excel)

    def test_import_is_deterministic(self, test_settings):
        first = import_workbook(standard_workbook(), "a.xlsx", app_settings=test_settings)
        second = import_workbook(standard_workbook(), "a.xlsx", app_settings=test_settings)
        assert json.dumps(first.to_dict(), sort_keys=True) == json.dumps(
            second.to_dict(), sort_keys=True
        )


class TestWorkbookVariants:
    """Sheet naming and ledger presence."""

    def test_legacy_sheet_name(self, test_settings):
        buffer = build_workbook(STANDARD_LED_ROWS, led_sheet_name="LED Cost Sheet")
        result = import_workbook(buffer, app_settings=test_settings)

        assert result.verification_manifest.control_totals.primary_sheet == "LED Cost Sheet"
        assert len(result.internal_audit.per_screen) == 3

    def test_without_ledger_is_not_mirror_mode(self, test_settings):
        result = import_workbook(build_workbook(STANDARD_LED_ROWS), app_settings=test_settings)

        assert result.form_data["details"]["mirrorMode"] is False
        assert result.verification_manifest.control_totals.ledger_sheet is None
        assert ExceptionType.UNMATCHED_LEDGER_ROW.value not in exception_types(result)
        # Sheet values are used as authored
        main = result.internal_audit.per_screen[0]
        assert main.breakdown.final_client_total == 39284.56

    def test_missing_project_name_defaults(self, test_settings):
        result = import_workbook(
            build_workbook([["Cost Model"], led_header_row(), STANDARD_LED_ROWS[2]]),
            app_settings=test_settings,
        )
        assert result.form_data["receiver"]["name"] == "New Project"

    def test_row_name_filters(self, test_settings):
        rows = [
            ["Project Name: Filters"],
            led_header_row(),
            led_row("Alternative 1 - Upgrade Board", pitch=10, height=10, width=20),
            led_row("Alt1 Scoreboard", pitch=10, height=10, width=20),
            led_row("Alternates", pitch=10, height=10, width=20),
            led_row("Totally Wired Ribbon", pitch=10, height=3, width=100),
            led_row("Subtotal", pitch=10, height=3, width=100),
            led_row("Altitude Club Display", pitch=3.9, height=4, width=8),
        ]
        result = import_workbook(build_workbook(rows), app_settings=test_settings)

        names = [s.name for s in result.internal_audit.per_screen]
        assert names == ["Totally Wired Ribbon", "Altitude Club Display"]
        assert result.verification_manifest.control_totals.skipped == {
            "alternate": 3, "header": 1,
        }

    def test_weak_match_is_rejected(self, test_settings):
        ledger = [LEDGER_HEADER, ["Ma", 1, None, 0.25, 1, 2, 0, 2]]
        result = import_workbook(
            build_workbook(STANDARD_LED_ROWS[:3], ledger), app_settings=test_settings
        )
        assert result.verification_manifest.control_totals.ledger_matched == 0


class TestFatalErrors:
    """Errors that block the import."""

    def test_missing_primary_sheet(self, test_settings):
        with pytest.raises(MissingSheetError) as exc_info:
            import_workbook(build_workbook(None), "other.xlsx", app_settings=test_settings)

        error = exc_info.value
        assert error.code == ErrorCode.MISSING_SHEET
        assert error.message == 'Sheet "LED Sheet" or "LED Cost Sheet" not found'
        assert error.found == ["Summary"]

    def test_unreadable_buffer(self, test_settings):
        with pytest.raises(WorkbookReadError) as exc_info:
            import_workbook(b"definitely not a workbook", "junk.xlsx", app_settings=test_settings)
        assert exc_info.value.code == ErrorCode.WORKBOOK_UNREADABLE


# =============================================================================
# Column schema
# =============================================================================


class TestColumnSchema:
    """Fixed schema, header fallback and strict mode."""

    def test_fixed_schema_matches_standard_headers(self):
        assert fixed_schema_matches(led_header_row())

    def test_find_header_row(self):
        assert find_header_row(STANDARD_LED_ROWS) == 1
        assert find_header_row([["x"], ["y"]]) == 1
        assert find_header_row([["Display", "Pitch"]]) == 0

    def test_resolver_claims_specific_fields_first(self):
        headers = ["Display Name", "Pixel Height", "Height", "Pitch", "Width"]
        resolved = HeaderColumnResolver().resolve(headers)

        assert resolved["pixels_h"] == 1
        assert resolved["height"] == 2
        assert resolved["pitch"] == 3
        assert resolved["width"] == 4

    def test_fallback_never_remaps_financial_columns(self):
        headers = ["Display Name", "Pitch", "Height", "Width", "Sell Price"]
        columns = resolve_columns(headers)

        assert columns.resolution == ColumnResolution.HEADER_FALLBACK
        assert columns.columns["pitch"] == 1
        assert columns.columns["sell_price"] == FIXED_COLUMNS_V1["sell_price"]

    def test_shifted_columns_use_fallback(self, test_settings):
        result = import_workbook(shifted_columns_workbook(), app_settings=test_settings)
        audit = result.internal_audit.per_screen[0]

        assert result.verification_manifest.control_totals.column_resolution == "header_fallback"
        assert audit.pitch_mm == 6.0
        assert audit.height_ft == 9.0
        assert audit.width_ft == 16.0
        assert audit.area_sqft == 144.0
        assert audit.breakdown.final_client_total == 32155.20
        assert ExceptionType.SCHEMA_FALLBACK.value in exception_types(result)

    def test_strict_mode_disables_fallback(self, test_settings):
        result = import_workbook(shifted_columns_workbook(), strict_schema=True,
                                 app_settings=test_settings)

        assert result.verification_manifest.control_totals.column_resolution == "fixed"
        assert ExceptionType.SCHEMA_MISMATCH.value in exception_types(result)
        assert ExceptionType.SCHEMA_FALLBACK.value not in exception_types(result)


# =============================================================================
# Ledger parsing
# =============================================================================


class TestLedgerParser:
    """Tests for parse_ledger and match_ledger_entry."""

    def test_flat_and_block_entries(self):
        entries = parse_ledger(STANDARD_LEDGER_ROWS)

        assert [e.label for e in entries] == ["Main Scoreboard", "Altitude Club", "Concourse Fascia"]
        assert not entries[0].is_block
        assert entries[1].is_block
        assert entries[1].has_total_row
        assert entries[1].sell_price == Decimal("16912.64")
        assert entries[1].row_index == 5

    def test_block_without_total_row_sums_items(self):
        entries = parse_ledger([
            ["North Fascia"],
            ["LED Display", 1000, None, 0.25, 333.33, 1333.33, 20, 1353.33],
            ["Structure", 500, None, 0.25, 166.67, 666.67, 10, 676.67],
        ])

        assert len(entries) == 1
        block = entries[0]
        assert block.has_total_row is False
        assert block.cost == Decimal("1500.00")
        assert block.sell_price == Decimal("2000.00")
        assert block.margin_amount == Decimal("500.00")
        assert block.margin_pct == Decimal("0.25")

    def test_empty_block_is_dropped(self):
        assert parse_ledger([["Title Only"], [None], ["Another Title"]]) == []

    def test_margin_ratio_accepts_percent_forms(self):
        assert margin_ratio(0.3) == Decimal("0.3")
        assert margin_ratio(30) == Decimal("0.3")
        assert margin_ratio("30%") == Decimal("0.3")
        assert margin_ratio(None) is None

    def test_normalize_name(self):
        assert normalize_name("  MAIN   Scoreboard ") == "main scoreboard"

    def test_longest_containment_wins(self):
        entries = parse_ledger([
            ["Main", 1, None, None, None, 1, None, 1],
            ["Main Scoreboard", 2, None, None, None, 2, None, 2],
        ])
        match = match_ledger_entry("Main Scoreboard (Option 1)", entries)
        assert match.label == "Main Scoreboard"

    def test_containment_is_bidirectional(self):
        entries = parse_ledger([["Main Scoreboard - North End", 1, None, None, None, 1, None, 1]])
        assert match_ledger_entry("Main Scoreboard", entries) is not None

    def test_min_match_length(self):
        entries = parse_ledger([["LED", 1, None, None, None, 1, None, 1]])
        assert match_ledger_entry("LED Ribbon", entries, min_match_length=4) is None
        assert match_ledger_entry("LED Ribbon", entries, min_match_length=3) is not None
