"""Project Aggregator.

Runs the per-display calculator over every display, reallocates shared
structural steel cost, sums totals and derives the client summary.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Sequence

import structlog

from config.pricing import DEFAULT_PRICING, PricingConfig
from models.audit import (
    CLIENT_OTHER_FIELDS,
    COST_LINE_FIELDS,
    SELL_SIDE_FIELDS,
    AuditBreakdown,
    ClientSummary,
    ClientSummaryBreakdown,
    InternalAudit,
    ProposalAudit,
    ScreenAudit,
)
from models.screen import AuditOptions, ScreenInput
from services.audit_calculator import (
    apply_line_overrides,
    calculate_per_screen_audit,
    regional_tax_rate_for,
)
from utils.money import ZERO, round_to_cents, sum_cents, to_decimal

logger = structlog.get_logger(__name__)


# =============================================================================
# SHARED COST ALLOCATION
# =============================================================================


def allocate_by_weight(total: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    """Split a cent amount proportionally to weights.

    Each share is rounded to the cent and the remainder lands on the last
    share, so the shares always sum to `total` exactly. Zero total weight
    splits equally.

    Args:
        total: Amount to distribute (already cent-rounded).
        weights: Non-negative weights, one per recipient.

    Returns:
        One allocation per weight.
    """
    if not weights:
        return []
    total = round_to_cents(total)
    weight_sum = sum(weights, ZERO)
    count = len(weights)

    shares: List[Decimal] = []
    for weight in weights[:-1]:
        if weight_sum > ZERO:
            shares.append(round_to_cents(total * weight / weight_sum))
        else:
            shares.append(round_to_cents(total / count))
    shares.append(total - sum(shares, ZERO))
    return shares


def reallocate_tonnage(
    per_screen: List[ScreenAudit],
    options: Optional[AuditOptions],
    config: PricingConfig = DEFAULT_PRICING,
) -> List[ScreenAudit]:
    """Replace each display's structure line with its share of steel cost.

    tonnageCost = total tonnage x steel price per ton, split by existing
    structure weight. Displays whose structure changes are recomputed at
    their original effective margin. Returns a new list; nothing is
    modified in place.
    """
    if options is None or options.total_tonnage <= 0 or not per_screen:
        return list(per_screen)

    tonnage_cost = round_to_cents(
        to_decimal(options.total_tonnage) * to_decimal(config.steel_price_per_ton)
    )
    weights = [to_decimal(audit.breakdown.structure) for audit in per_screen]
    allocations = allocate_by_weight(tonnage_cost, weights)

    bond_rate = to_decimal(config.bond_pct)
    regional_rate = regional_tax_rate_for(options, config)

    result: List[ScreenAudit] = []
    for audit, allocation in zip(per_screen, allocations):
        if allocation == to_decimal(audit.breakdown.structure):
            result.append(audit)
            continue
        result.append(
            apply_line_overrides(
                audit,
                {"structure": allocation},
                bond_rate=bond_rate,
                regional_tax_rate=regional_rate,
            )
        )

    logger.info(
        "tonnage_reallocated",
        tonnage=options.total_tonnage,
        tonnage_cost=float(tonnage_cost),
        displays=len(per_screen),
    )
    return result


# =============================================================================
# TOTALS
# =============================================================================


def sum_breakdowns(per_screen: Sequence[ScreenAudit]) -> AuditBreakdown:
    """Sum every breakdown field; the per-sqft rate is area-weighted."""
    values = {}
    for name in COST_LINE_FIELDS + SELL_SIDE_FIELDS:
        values[name] = float(sum_cents(getattr(a.breakdown, name) for a in per_screen))

    total_area = sum((to_decimal(a.area_sqft) for a in per_screen), ZERO)
    if total_area > ZERO:
        weighted = sum(
            (to_decimal(a.breakdown.selling_price_per_sqft) * to_decimal(a.area_sqft)
             for a in per_screen),
            ZERO,
        )
        values["selling_price_per_sqft"] = float(round_to_cents(weighted / total_area))
    else:
        values["selling_price_per_sqft"] = 0.0
    return AuditBreakdown(**values)


def build_internal_audit(per_screen: Sequence[ScreenAudit]) -> InternalAudit:
    """Wrap per-display results with their totals."""
    return InternalAudit(
        per_screen=list(per_screen),
        totals=sum_breakdowns(per_screen),
        total_area_sqft=float(sum_cents(a.area_sqft for a in per_screen)),
    )


def build_client_summary(
    totals: AuditBreakdown,
    config: PricingConfig = DEFAULT_PRICING,
) -> ClientSummary:
    """Client-facing view derived strictly from internal totals."""
    subtotal = to_decimal(totals.final_client_total)
    tax_rate = to_decimal(config.sales_tax_rate)
    tax_amount = round_to_cents(subtotal * tax_rate)
    others = sum_cents(getattr(totals, name) for name in CLIENT_OTHER_FIELDS)

    return ClientSummary(
        subtotal=float(round_to_cents(subtotal)),
        tax_rate=float(tax_rate),
        tax_amount=float(tax_amount),
        total=float(round_to_cents(subtotal + tax_amount)),
        breakdown=ClientSummaryBreakdown(
            hardware=totals.hardware,
            structure=totals.structure,
            install=totals.install,
            others=float(others),
        ),
    )


# =============================================================================
# ENTRY POINT
# =============================================================================


def calculate_proposal_audit(
    screens: Sequence[ScreenInput],
    options: Optional[AuditOptions] = None,
    config: PricingConfig = DEFAULT_PRICING,
) -> ProposalAudit:
    """Price a whole proposal.

    Args:
        screens: Display specifications.
        options: Tax/bond overrides, tonnage and project location.
        config: Pricing rates.

    Returns:
        ProposalAudit with the client summary and the internal audit.

    Raises:
        InvalidMarginError: If any display's margin is 100% or more.
    """
    config = config.with_options(options)
    per_screen = [calculate_per_screen_audit(screen, options, config) for screen in screens]
    per_screen = reallocate_tonnage(per_screen, options, config)

    internal_audit = build_internal_audit(per_screen)
    client_summary = build_client_summary(internal_audit.totals, config)

    logger.info(
        "proposal_audit_calculated",
        displays=len(per_screen),
        total_area_sqft=internal_audit.total_area_sqft,
        subtotal=client_summary.subtotal,
        total=client_summary.total,
    )
    return ProposalAudit(client_summary=client_summary, internal_audit=internal_audit)
