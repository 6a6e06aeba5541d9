"""
Unit Tests for models, errors, settings and money helpers.

Tests:
- Pydantic alias handling and defaults on ScreenInput / AuditOptions
- Error codes and to_dict()
- Settings from environment variables and validate()
- PricingConfig.with_options
- Spreadsheet cell coercion and cent rounding
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from config.errors import (
    ErrorCode,
    InvalidMarginError,
    MissingSheetError,
    ProposalAuditError,
    ValidationError,
    WorkbookReadError,
)
from config.pricing import DEFAULT_PRICING
from config.settings import Settings
from models.screen import AuditOptions, ScreenInput
from utils.money import coerce_number, round_to_cents, sum_cents, truncate


class TestScreenInput:
    """Tests for ScreenInput model."""

    def test_accepts_camel_case_aliases(self):
        screen = ScreenInput(**{
            "name": "Ribbon",
            "widthFt": 100,
            "heightFt": 3,
            "pitchMm": 16,
            "serviceType": "top",
            "formFactor": "Curved",
            "isReplacement": True,
            "useExistingStructure": True,
        })

        assert screen.width_ft == 100.0
        assert screen.is_top_service
        assert screen.is_curved
        assert screen.has_infrastructure_credit

    def test_missing_quantity_means_one(self):
        assert ScreenInput(name="A", quantity=None).quantity == 1

    def test_rejects_negative_dimensions(self):
        with pytest.raises(PydanticValidationError):
            ScreenInput(name="A", width_ft=-1)

    def test_rejects_negative_margin(self):
        with pytest.raises(PydanticValidationError):
            ScreenInput(name="A", desired_margin=-0.1)

    def test_margin_of_one_is_left_to_the_calculator(self):
        assert ScreenInput(name="A", desired_margin=1.0).desired_margin == 1.0

    def test_credit_requires_both_flags(self):
        screen = ScreenInput(name="A", is_replacement=True)
        assert not screen.has_infrastructure_credit

    def test_is_frozen(self):
        screen = ScreenInput(name="A")
        with pytest.raises(PydanticValidationError):
            screen.name = "B"


class TestAuditOptions:
    """Tests for AuditOptions model."""

    def test_total_tonnage(self):
        options = AuditOptions(structural_tonnage=1.5, reinforcing_tonnage=0.5)
        assert options.total_tonnage == 2.0
        assert AuditOptions().total_tonnage == 0.0

    def test_with_options_overrides_rates(self):
        config = DEFAULT_PRICING.with_options(AuditOptions(taxRate=0.07, bondPct=0.02))

        assert config.sales_tax_rate == 0.07
        assert config.bond_pct == 0.02
        assert DEFAULT_PRICING.sales_tax_rate == 0.095

    def test_with_no_overrides_returns_same_config(self):
        assert DEFAULT_PRICING.with_options(AuditOptions()) is DEFAULT_PRICING
        assert DEFAULT_PRICING.with_options(None) is DEFAULT_PRICING


class TestErrors:
    """Tests for the error taxonomy."""

    def test_invalid_margin(self):
        error = InvalidMarginError(1.0, "Main")

        assert isinstance(error, ProposalAuditError)
        assert error.code == ErrorCode.INVALID_MARGIN
        assert "100%" in error.message
        assert error.to_dict()["details"] == {"margin": 1.0, "screen_name": "Main"}

    def test_missing_sheet_message(self):
        error = MissingSheetError(["LED Sheet", "LED Cost Sheet"], ["Summary"])
        assert str(error) == 'Sheet "LED Sheet" or "LED Cost Sheet" not found'

    def test_workbook_read_error(self):
        error = WorkbookReadError("bad zip", file_name="x.xlsx")
        assert error.to_dict() == {
            "code": ErrorCode.WORKBOOK_UNREADABLE,
            "message": "bad zip",
            "details": {"file_name": "x.xlsx"},
        }

    def test_validation_error_field(self):
        error = ValidationError("Width is required", field="widthFt")
        assert error.details == {"field": "widthFt"}


class TestSettings:
    """Tests for Settings loaded from the environment."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("IMPORT_STRICT_SCHEMA", "true")
        monkeypatch.setenv("LEDGER_MIN_MATCH_LENGTH", "6")
        monkeypatch.setenv("VARIANCE_THRESHOLD", "0.05")

        loaded = Settings()

        assert loaded.import_strict_schema is True
        assert loaded.ledger_min_match_length == 6
        assert loaded.variance_threshold == 0.05

    def test_strict_flag_defaults_off(self, monkeypatch):
        monkeypatch.delenv("IMPORT_STRICT_SCHEMA", raising=False)
        assert Settings().import_strict_schema is False

    def test_validate_rejects_bad_values(self, test_settings):
        test_settings.ledger_min_match_length = 0
        with pytest.raises(ValueError):
            test_settings.validate()


class TestMoney:
    """Tests for cell coercion and rounding."""

    @pytest.mark.parametrize(
        "cell, expected",
        [
            (None, 0.0),
            ("", 0.0),
            (True, 0.0),
            (12, 12.0),
            ("10mm", 10.0),
            ("$1,250.50", 1250.5),
            ("3,500 nits", 3500.0),
            ("N/A", 0.0),
            (float("nan"), 0.0),
        ],
    )
    def test_coerce_number(self, cell, expected):
        assert coerce_number(cell) == expected

    def test_round_half_even(self):
        assert round_to_cents("0.125") == Decimal("0.12")
        assert round_to_cents("0.135") == Decimal("0.14")

    def test_float_inputs_use_shortest_repr(self):
        assert round_to_cents(2.675) == Decimal("2.68")
        assert sum_cents([0.1, 0.2]) == Decimal("0.30")

    def test_truncate_never_rounds_up(self):
        assert truncate(Decimal("19.68509"), 4) == Decimal("19.6850")
