"""Per-Display Audit Calculator.

Computes one display's full cost-to-price breakdown. Every monetary value is
a Decimal rounded to the cent after each arithmetic step; floats only appear
at the model boundary.

`build_breakdown` is the single place where sell price, bond, regional tax
and the final total are derived from cost lines. The calculator, the tonnage
reallocation pass and the spreadsheet merge all go through it.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional

import structlog

from config.errors import InvalidMarginError
from config.pricing import DEFAULT_PRICING, PricingConfig
from models.audit import COST_LINE_FIELDS, AuditBreakdown, ScreenAudit
from models.catalog import MatchingResult
from models.screen import AuditOptions, ScreenInput
from services.catalog_service import get_module, lookup_by_pitch, resolve_module_key
from services.module_matching import match_modules
from utils.money import ONE, ZERO, round_to_cents, sum_cents, to_decimal

logger = structlog.get_logger(__name__)

# Cost line name -> cent-rounded Decimal
CostLines = Dict[str, Decimal]

MM_PER_FOOT = Decimal("304.8")


# =============================================================================
# CANONICAL BREAKDOWN
# =============================================================================


def validate_margin(margin: Decimal, screen_name: Optional[str] = None) -> None:
    """Reject margins at or above 100% before anything divides by (1 - m)."""
    if margin >= ONE:
        raise InvalidMarginError(float(margin), screen_name=screen_name)


def build_breakdown(
    lines: Mapping[str, Decimal],
    *,
    margin: Decimal,
    bond_rate: Decimal,
    regional_tax_rate: Decimal,
    total_area: Decimal,
    authored: Optional[Mapping[str, Decimal]] = None,
    screen_name: Optional[str] = None,
) -> AuditBreakdown:
    """Derive the sell side of a breakdown from its cost lines.

    Args:
        lines: Cost lines keyed by COST_LINE_FIELDS names (missing = 0).
        margin: Margin on sell price; must be below 1.
        bond_rate: Performance bond rate applied to sell price.
        regional_tax_rate: Rate applied to sell + bond (0 outside the
            jurisdiction).
        total_area: Total display area used for the per-sqft rate.
        authored: Spreadsheet-authored values that replace computed ones
            (`total_cost`, `sell_price`, `bond_cost`, `final_client_total`).
        screen_name: Display name for error context.

    Returns:
        Frozen AuditBreakdown with
        final_client_total = sell_price + bond_cost + regional_tax_cost.

    Raises:
        InvalidMarginError: If the sell price must be derived and margin >= 1.
    """
    authored = authored or {}
    cost_lines = {name: round_to_cents(lines.get(name, ZERO)) for name in COST_LINE_FIELDS}

    total_cost = authored.get("total_cost")
    total_cost = round_to_cents(total_cost) if total_cost is not None else sum_cents(cost_lines.values())

    sell_price = authored.get("sell_price")
    if sell_price is None:
        validate_margin(margin, screen_name)
        sell_price = round_to_cents(total_cost / (ONE - margin))
    else:
        sell_price = round_to_cents(sell_price)

    bond_cost = authored.get("bond_cost")
    if bond_cost is None:
        bond_cost = round_to_cents(sell_price * bond_rate)
    else:
        bond_cost = round_to_cents(bond_cost)

    final_total = authored.get("final_client_total")
    if final_total is None:
        regional_tax = round_to_cents((sell_price + bond_cost) * regional_tax_rate)
        final_total = round_to_cents(sell_price + bond_cost + regional_tax)
    else:
        final_total = round_to_cents(final_total)
        regional_tax = round_to_cents(final_total - sell_price - bond_cost)

    anc_margin = round_to_cents(sell_price - total_cost)
    per_sqft = round_to_cents(final_total / total_area) if total_area > ZERO else ZERO

    return AuditBreakdown(
        **{name: float(value) for name, value in cost_lines.items()},
        total_cost=float(total_cost),
        sell_price=float(sell_price),
        anc_margin=float(anc_margin),
        margin_amount=float(anc_margin),
        bond_cost=float(bond_cost),
        regional_tax_cost=float(regional_tax),
        final_client_total=float(final_total),
        selling_price_per_sqft=float(per_sqft),
    )


def cost_lines_of(breakdown: AuditBreakdown) -> CostLines:
    """Read a breakdown's cost lines back as Decimals."""
    return {name: to_decimal(value) for name, value in breakdown.cost_lines().items()}


def back_solved_margin(breakdown: AuditBreakdown) -> Decimal:
    """Effective margin ratio, 1 - totalCost / sellPrice (0 without a sell price)."""
    sell = to_decimal(breakdown.sell_price)
    if sell <= ZERO:
        return ZERO
    return ONE - to_decimal(breakdown.total_cost) / sell


def apply_line_overrides(
    audit: ScreenAudit,
    overrides: Mapping[str, Decimal],
    *,
    bond_rate: Decimal,
    regional_tax_rate: Decimal,
) -> ScreenAudit:
    """Replace cost lines on a display and re-derive its sell side.

    The display keeps its effective margin ratio, so the divisor-model
    invariant holds after the edit.

    Args:
        audit: Existing per-display result.
        overrides: Cost lines to replace (e.g. {"structure": Decimal("6000")}).
        bond_rate: Bond rate for the recomputation.
        regional_tax_rate: Regional tax rate for the recomputation.

    Returns:
        A new ScreenAudit; the input is unchanged.
    """
    unknown = set(overrides) - set(COST_LINE_FIELDS)
    if unknown:
        raise KeyError(f"Unknown cost lines: {sorted(unknown)}")

    lines = cost_lines_of(audit.breakdown)
    lines.update({name: round_to_cents(value) for name, value in overrides.items()})
    breakdown = build_breakdown(
        lines,
        margin=back_solved_margin(audit.breakdown),
        bond_rate=bond_rate,
        regional_tax_rate=regional_tax_rate,
        total_area=to_decimal(audit.area_sqft),
        screen_name=audit.name,
    )
    return audit.model_copy(update={"breakdown": breakdown})


# =============================================================================
# PER-DISPLAY CALCULATION
# =============================================================================


def regional_tax_rate_for(
    options: Optional[AuditOptions],
    config: PricingConfig = DEFAULT_PRICING,
) -> Decimal:
    """Regional tax rate for the project location, or 0.

    Applies when the project address or venue contains any configured
    jurisdiction keyword (case-insensitive).
    """
    if options is None:
        return ZERO
    location = " ".join(
        part for part in (options.project_address, options.venue) if part
    ).lower()
    if location and any(keyword in location for keyword in config.regional_tax_keywords):
        return to_decimal(config.regional_tax_rate)
    return ZERO


def _pixels(span_ft: Decimal, pitch_mm: Decimal) -> int:
    if pitch_mm <= ZERO:
        return 0
    return int((span_ft * MM_PER_FOOT / pitch_mm).to_integral_value(rounding=ROUND_HALF_UP))


def _resolve_match(
    screen: ScreenInput,
    pitch_mm: float,
    config: PricingConfig,
) -> Optional[MatchingResult]:
    """Run the module matcher when a module key resolves and dimensions exist."""
    if screen.module_key:
        module = get_module(screen.module_key)
        if module is None:
            logger.warning("module_match_skipped", screen=screen.name,
                           module_key=screen.module_key, reason="unknown_module_key")
            return None
        module_key = module.key
    else:
        module_key = resolve_module_key(screen.product_type, pitch_mm, config)
        if module_key is None:
            return None

    if screen.width_ft <= 0 or screen.height_ft <= 0:
        return None

    result = match_modules(screen.width_ft, screen.height_ft, module_key)
    if not result.fits_target:
        logger.info("module_match_skipped", screen=screen.name,
                    module_key=module_key, reason="target_below_minimum_unit")
        return None
    return result


def calculate_per_screen_audit(
    screen: ScreenInput,
    options: Optional[AuditOptions] = None,
    config: PricingConfig = DEFAULT_PRICING,
) -> ScreenAudit:
    """Compute one display's cost-to-price breakdown.

    Args:
        screen: Display specification.
        options: Project-level overrides (bond rate, location).
        config: Pricing rates; `with_options` is applied here.

    Returns:
        ScreenAudit with the full breakdown.

    Raises:
        InvalidMarginError: If the desired margin is 100% or more.
    """
    config = config.with_options(options)
    margin = to_decimal(
        screen.desired_margin if screen.desired_margin is not None else config.default_margin
    )
    validate_margin(margin, screen.name)

    # 1. Unit cost: override -> catalog -> default
    entry = lookup_by_pitch(screen.pitch_mm, config)
    cost_per_sqft = to_decimal(
        screen.cost_per_sqft if screen.cost_per_sqft is not None else entry.cost_per_sqft
    )
    pitch = screen.pitch_mm or entry.pixel_pitch

    # 2. Module fit; achieved dimensions replace the raw target when matched
    matching = _resolve_match(screen, pitch, config)
    if matching is not None:
        width, height = to_decimal(matching.actual_width_ft), to_decimal(matching.actual_height_ft)
    else:
        width, height = to_decimal(screen.width_ft), to_decimal(screen.height_ft)

    # 3. Area
    quantity = Decimal(screen.quantity)
    unit_area = round_to_cents(width * height)
    total_area = round_to_cents(unit_area * quantity)

    # 4. Hardware, spare parts on the per-unit cost
    unit_hardware = round_to_cents(unit_area * cost_per_sqft)
    if screen.include_spare_parts:
        unit_hardware = round_to_cents(
            unit_hardware + unit_hardware * to_decimal(config.spare_parts_pct)
        )
    hardware = round_to_cents(unit_hardware * quantity)

    # 5. Structure / engineering percentages
    if screen.has_infrastructure_credit:
        structure_pct = to_decimal(config.credit_structure_pct)
        engineering_pct = to_decimal(config.credit_engineering_pct)
    else:
        structure_pct = to_decimal(
            config.structure_pct_top if screen.is_top_service else config.structure_pct_front_rear
        )
        engineering_pct = to_decimal(config.engineering_pct)

    # 6. Curved multipliers
    structure_mult = to_decimal(config.curved_structure_multiplier) if screen.is_curved else ONE
    labor_mult = to_decimal(config.curved_labor_multiplier) if screen.is_curved else ONE

    def pct_of_hardware(pct: float) -> Decimal:
        return round_to_cents(hardware * to_decimal(pct))

    # 7-8. Cost lines
    power = pct_of_hardware(config.power_pct)
    if screen.outlet_distance > config.outlet_distance_threshold_ft:
        power = round_to_cents(power + to_decimal(config.outlet_surcharge))

    lines: CostLines = {
        "hardware": hardware,
        "structure": round_to_cents(round_to_cents(hardware * structure_pct) * structure_mult),
        "install": round_to_cents(to_decimal(config.install_flat_fee) * labor_mult),
        "labor": round_to_cents(pct_of_hardware(config.labor_pct) * labor_mult),
        "power": power,
        "shipping": round_to_cents(total_area * to_decimal(config.shipping_per_sqft)),
        "pm": round_to_cents(total_area * to_decimal(config.pm_per_sqft)),
        "general_conditions": pct_of_hardware(config.general_conditions_pct),
        "travel": pct_of_hardware(config.travel_pct),
        "submittals": pct_of_hardware(config.submittals_pct),
        "engineering": round_to_cents(hardware * engineering_pct),
        "permits": round_to_cents(config.permits_fixed),
        "cms": pct_of_hardware(config.cms_pct),
        "demolition": round_to_cents(config.demolition_fixed) if screen.is_replacement else ZERO,
    }

    # 9-13. Sell side
    breakdown = build_breakdown(
        lines,
        margin=margin,
        bond_rate=to_decimal(config.bond_pct),
        regional_tax_rate=regional_tax_rate_for(options, config),
        total_area=total_area,
        screen_name=screen.name,
    )

    pitch_dec = to_decimal(pitch)
    pixels_high = _pixels(height, pitch_dec)
    pixels_wide = _pixels(width, pitch_dec)

    logger.debug(
        "screen_audit_calculated",
        screen=screen.name,
        area_sqft=float(total_area),
        total_cost=breakdown.total_cost,
        final_client_total=breakdown.final_client_total,
    )

    return ScreenAudit(
        name=screen.name,
        product_type=screen.product_type or "",
        quantity=screen.quantity,
        area_sqft=float(total_area),
        unit_area_sqft=float(unit_area),
        width_ft=float(width),
        height_ft=float(height),
        pixels_high=pixels_high,
        pixels_wide=pixels_wide,
        pixel_resolution=pixels_high * pixels_wide,
        pixel_matrix=f"{pixels_high} x {pixels_wide} @ {float(pitch):g}mm",
        pitch_mm=float(pitch),
        cost_per_sqft=float(cost_per_sqft),
        service_type=screen.service_type or config.default_service_type,
        form_factor=screen.form_factor,
        module_key=matching.module_key if matching else screen.module_key,
        matching=matching,
        breakdown=breakdown,
    )
