"""
Unit Tests for the Formula Workbook Export.

Tests:
- Input cells carry the engine's figures
- Formula cells reproduce the sell-side cascade
- Project block sums the display totals
"""

from io import BytesIO

import pytest
from openpyxl import load_workbook

from models.screen import AuditOptions
from services.audit_export_service import (
    ROW_GRAND_TOTAL,
    ROW_SUBTOTAL,
    SHEET_TITLE,
    build_audit_workbook,
    export_audit_workbook,
)
from services.proposal_aggregator import calculate_proposal_audit
from tests.fixtures.mock_screen_data import SCENARIO_A, SCENARIO_A_EXPECTED, SCENARIO_B


@pytest.fixture
def two_display_audit():
    return calculate_proposal_audit([SCENARIO_A, SCENARIO_B])


class TestWorkbookLayout:
    """Cell positions and contents."""

    def test_display_columns_and_inputs(self, two_display_audit):
        sheet = build_audit_workbook(two_display_audit)[SHEET_TITLE]

        assert sheet["B3"].value == "Main Scoreboard"
        assert sheet["C3"].value == "Ribbon Board"
        assert sheet["B4"].value == 200.0
        assert sheet["B5"].value == SCENARIO_A_EXPECTED["hardware"]
        assert sheet["B6"].value == SCENARIO_A_EXPECTED["structure"]
        assert sheet["C6"].value == 2400.0
        assert sheet["B20"].value == pytest.approx(0.25)
        assert sheet["B22"].value == 0.015
        assert sheet["B24"].value == 0.0

    def test_cascade_formulas(self, two_display_audit):
        sheet = build_audit_workbook(two_display_audit)[SHEET_TITLE]

        assert sheet["B19"].value == "=SUM(B5:B18)"
        assert sheet["B21"].value == "=ROUND(B19/(1-B20),2)"
        assert sheet["B23"].value == "=ROUND(B21*B22,2)"
        assert sheet["B25"].value == "=ROUND((B21+B23)*B24,2)"
        assert sheet["B26"].value == "=B21+B23+B25"
        assert sheet["C21"].value == "=ROUND(C19/(1-C20),2)"

    def test_project_block(self, two_display_audit):
        sheet = build_audit_workbook(two_display_audit)[SHEET_TITLE]

        assert ROW_SUBTOTAL == 29
        assert sheet["B29"].value == "=SUM(B26:C26)"
        assert sheet["B30"].value == 0.095
        assert sheet["B31"].value == "=ROUND(B29*B30,2)"
        assert sheet.cell(row=ROW_GRAND_TOTAL, column=2).value == "=B29+B31"

    def test_options_feed_rate_inputs(self):
        options = AuditOptions(tax_rate=0.07, bond_pct=0.02, venue="Milan Puskar Stadium")
        audit = calculate_proposal_audit([SCENARIO_A], options)
        sheet = build_audit_workbook(audit, options)[SHEET_TITLE]

        assert sheet["B22"].value == 0.02
        assert sheet["B24"].value == 0.02
        assert sheet["B30"].value == 0.07
        assert sheet["B29"].value == "=SUM(B26:B26)"


class TestExportBytes:
    """Serialized output."""

    def test_bytes_round_trip_through_openpyxl(self, two_display_audit):
        data = export_audit_workbook(two_display_audit)

        assert data[:2] == b"PK"
        sheet = load_workbook(BytesIO(data))[SHEET_TITLE]
        assert sheet["B21"].value == "=ROUND(B19/(1-B20),2)"
        assert sheet["C5"].value == 24000.0

    def test_empty_proposal(self):
        audit = calculate_proposal_audit([])
        sheet = build_audit_workbook(audit)[SHEET_TITLE]
        assert sheet["B29"].value == "=SUM(B26:B26)"
