"""
Unit Tests for the Project Aggregator.

Tests:
- Totals equal the sum of per-display values (area-weighted per-sqft rate)
- Client summary derived from totals, with project sales tax
- Structural tonnage reallocation: conservation, remainder, margin preservation
- Determinism of the whole proposal
"""

import json
from decimal import Decimal

import pytest

from config.errors import InvalidMarginError
from models.screen import AuditOptions, ScreenInput
from services.proposal_aggregator import (
    allocate_by_weight,
    calculate_proposal_audit,
    reallocate_tonnage,
)
from services.audit_calculator import calculate_per_screen_audit
from tests.fixtures.mock_screen_data import (
    CURVED,
    SCENARIO_A,
    SCENARIO_B,
    SCENARIO_C,
    SCENARIO_D,
)


class TestTotals:
    """Project totals and client summary."""

    def test_single_display_client_summary(self):
        result = calculate_proposal_audit([SCENARIO_A])
        summary = result.client_summary

        assert summary.subtotal == 59584.56
        assert summary.tax_rate == 0.095
        assert summary.tax_amount == 5660.53
        assert summary.total == 65245.09

    def test_client_breakdown_buckets(self):
        breakdown = calculate_proposal_audit([SCENARIO_A]).client_summary.breakdown

        assert breakdown.hardware == 24000.0
        assert breakdown.structure == 4800.0
        assert breakdown.install == 5000.0
        # shipping + pm + gc + travel + submittals + engineering + permits + cms + demolition
        assert breakdown.others == 3028.0

    def test_tax_rate_override(self):
        summary = calculate_proposal_audit([SCENARIO_A], AuditOptions(tax_rate=0)).client_summary
        assert summary.tax_amount == 0.0
        assert summary.total == summary.subtotal

    def test_totals_are_sums(self):
        screens = [SCENARIO_A, SCENARIO_B, SCENARIO_C, SCENARIO_D, CURVED]
        audit = calculate_proposal_audit(screens).internal_audit

        for name in ("hardware", "structure", "total_cost", "sell_price", "bond_cost",
                     "anc_margin", "final_client_total"):
            expected = round(sum(getattr(s.breakdown, name) for s in audit.per_screen), 2)
            assert getattr(audit.totals, name) == pytest.approx(expected, abs=0.005), name

    def test_per_sqft_rate_is_area_weighted(self):
        audit = calculate_proposal_audit([SCENARIO_A, SCENARIO_B]).internal_audit

        assert audit.total_area_sqft == 400.0
        assert audit.totals.final_client_total == 115921.12
        # (297.92 * 200 + 281.68 * 200) / 400
        assert audit.totals.selling_price_per_sqft == 289.80

    def test_area_weighting_differs_from_naive_sum(self):
        large = SCENARIO_A.model_copy(update={"name": "Large", "width_ft": 40.0})
        audit = calculate_proposal_audit([large, SCENARIO_B]).internal_audit

        naive = sum(s.breakdown.selling_price_per_sqft for s in audit.per_screen)
        assert audit.totals.selling_price_per_sqft != naive

    def test_empty_proposal(self):
        result = calculate_proposal_audit([])

        assert result.internal_audit.per_screen == []
        assert result.internal_audit.totals.final_client_total == 0.0
        assert result.client_summary.total == 0.0

    def test_invalid_margin_propagates(self):
        bad = SCENARIO_B.model_copy(update={"desired_margin": 1.0})
        with pytest.raises(InvalidMarginError):
            calculate_proposal_audit([SCENARIO_A, bad])

    def test_to_dict_uses_camel_case(self):
        data = calculate_proposal_audit([SCENARIO_A]).to_dict()

        assert set(data) == {"clientSummary", "internalAudit"}
        first = data["internalAudit"]["perScreen"][0]
        assert first["breakdown"]["finalClientTotal"] == 59584.56
        assert first["breakdown"]["generalConditions"] == 480.0
        assert data["clientSummary"]["taxAmount"] == 5660.53


class TestAllocateByWeight:
    """Tests for allocate_by_weight."""

    def test_proportional_split(self):
        shares = allocate_by_weight(Decimal("1000.00"), [Decimal("1"), Decimal("3")])
        assert shares == [Decimal("250.00"), Decimal("750.00")]

    def test_remainder_goes_to_last(self):
        shares = allocate_by_weight(Decimal("1000.00"), [Decimal("1")] * 3)
        assert shares == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
        assert sum(shares) == Decimal("1000.00")

    def test_zero_weights_split_equally(self):
        shares = allocate_by_weight(Decimal("100.00"), [Decimal("0")] * 3)
        assert shares == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

    def test_no_recipients(self):
        assert allocate_by_weight(Decimal("100"), []) == []


class TestTonnageReallocation:
    """Shared structural steel reallocation."""

    def test_single_display_takes_all_tonnage(self):
        result = calculate_proposal_audit([SCENARIO_A], AuditOptions(structural_tonnage=2))
        b = result.internal_audit.per_screen[0].breakdown

        assert b.structure == 6000.0
        assert b.total_cost == 45228.0
        assert b.sell_price == 60304.0
        assert b.bond_cost == 904.56
        assert b.final_client_total == 61208.56
        assert b.anc_margin == 15076.0

    def test_structural_and_reinforcing_tonnage_combine(self):
        both = calculate_proposal_audit(
            [SCENARIO_A], AuditOptions(structural_tonnage=1, reinforcing_tonnage=1)
        )
        single = calculate_proposal_audit([SCENARIO_A], AuditOptions(structural_tonnage=2))
        assert both.to_dict() == single.to_dict()

    def test_remainder_lands_on_last_display(self, cheap_steel_pricing):
        screens = [SCENARIO_A.model_copy(update={"name": f"Board {i}"}) for i in range(3)]
        result = calculate_proposal_audit(
            screens, AuditOptions(structural_tonnage=1), cheap_steel_pricing
        )
        structures = [s.breakdown.structure for s in result.internal_audit.per_screen]

        assert structures == [333.33, 333.33, 333.34]

    def test_allocation_conserves_tonnage_cost(self):
        screens = [SCENARIO_A, SCENARIO_B, SCENARIO_C, CURVED]
        result = calculate_proposal_audit(screens, AuditOptions(structural_tonnage=3.7))
        allocated = sum(
            Decimal(str(s.breakdown.structure)) for s in result.internal_audit.per_screen
        )

        assert allocated == Decimal("11100.00")
        assert result.internal_audit.totals.structure == 11100.0

    def test_allocation_follows_existing_structure_weight(self):
        result = calculate_proposal_audit([SCENARIO_A, SCENARIO_B], AuditOptions(structural_tonnage=3))
        a, b = result.internal_audit.per_screen

        # Weights 4800 : 2400 over $9,000
        assert a.breakdown.structure == 6000.0
        assert b.breakdown.structure == 3000.0

    def test_reallocation_preserves_each_margin(self):
        screens = [SCENARIO_A, SCENARIO_B.model_copy(update={"desired_margin": 0.4})]
        result = calculate_proposal_audit(screens, AuditOptions(structural_tonnage=5))

        for audit, margin in zip(result.internal_audit.per_screen, (0.25, 0.4)):
            b = audit.breakdown
            assert abs(b.sell_price * (1 - margin) - b.total_cost) <= 0.01
            assert b.final_client_total == round(b.sell_price + b.bond_cost + b.regional_tax_cost, 2)

    def test_reallocation_recomputes_regional_tax(self):
        options = AuditOptions(structural_tonnage=2, venue="Milan Puskar Stadium")
        b = calculate_proposal_audit([SCENARIO_A], options).internal_audit.per_screen[0].breakdown

        assert b.regional_tax_cost == round((b.sell_price + b.bond_cost) * 0.02, 2)

    def test_no_tonnage_leaves_displays_untouched(self):
        per_screen = [calculate_per_screen_audit(SCENARIO_A)]
        assert reallocate_tonnage(per_screen, AuditOptions()) == per_screen
        assert reallocate_tonnage(per_screen, None) == per_screen


class TestDeterminism:
    """Identical inputs give byte-identical outputs."""

    def test_repeat_proposal_is_identical(self):
        screens = [SCENARIO_A, SCENARIO_B, SCENARIO_C, SCENARIO_D, CURVED]
        options = AuditOptions(structural_tonnage=1.5, venue="WVU Coliseum", bond_pct=0.02)

        first = json.dumps(calculate_proposal_audit(screens, options).to_dict(), sort_keys=True)
        second = json.dumps(calculate_proposal_audit(screens, options).to_dict(), sort_keys=True)
        assert first == second

    def test_inputs_are_not_mutated(self):
        screen = ScreenInput(name="Board", width_ft=12, height_ft=6, pitch_mm=6.0)
        snapshot = screen.model_dump()
        calculate_proposal_audit([screen], AuditOptions(structural_tonnage=1))
        assert screen.model_dump() == snapshot
