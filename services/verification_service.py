"""Verification Service for spreadsheet imports.

Compares Mirror Mode values (authored spreadsheet) against an Intelligence
Mode recomputation of the same displays and turns the differences into a
manifest plus a list of reviewable exceptions.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import structlog

from config.settings import Settings, settings as default_settings
from models.audit import AuditBreakdown, InternalAudit
from models.verification import (
    ControlTotals,
    ExceptionSeverity,
    ExceptionType,
    FinancialSnapshot,
    MatchType,
    PerScreenManifest,
    ProposalTotalsManifest,
    ReconciliationException,
    ReconciliationVerdict,
    VerificationManifest,
)
from utils.money import ZERO, round_to_cents, sum_cents, to_decimal

logger = structlog.get_logger(__name__)

PERCENT_PLACES = Decimal("0.000001")


def snapshot(breakdown: AuditBreakdown) -> FinancialSnapshot:
    """Sell-side figures of a breakdown."""
    return FinancialSnapshot(
        hardware=breakdown.hardware,
        total_cost=breakdown.total_cost,
        sell_price=breakdown.sell_price,
        anc_margin=breakdown.anc_margin,
        bond_cost=breakdown.bond_cost,
        regional_tax_cost=breakdown.regional_tax_cost,
        final_total=breakdown.final_client_total,
    )


def variance_of(source: float, calculated: float) -> Tuple[Decimal, Decimal]:
    """Return (calculated - source, that difference as a fraction of source)."""
    source_d, calculated_d = to_decimal(source), to_decimal(calculated)
    variance = round_to_cents(calculated_d - source_d)
    if source_d == ZERO:
        percent = ZERO if variance == ZERO else Decimal("1")
    else:
        percent = (variance / abs(source_d)).quantize(PERCENT_PLACES)
    return variance, percent


def classify_variance(
    variance: Decimal,
    percent: Decimal,
    config: Settings = default_settings,
) -> MatchType:
    """EXACT at the cent, WITHIN_THRESHOLD under either threshold, else EXCEEDS."""
    if variance == ZERO:
        return MatchType.EXACT
    if abs(variance) <= to_decimal(config.variance_threshold) or abs(percent) <= to_decimal(
        config.variance_percent_threshold
    ):
        return MatchType.WITHIN_THRESHOLD
    return MatchType.EXCEEDS_THRESHOLD


def compute_manifest(
    control_totals: ControlTotals,
    mirror_audit: InternalAudit,
    calculated_audit: InternalAudit,
    row_indexes: Sequence[int],
    ledger_matched: Sequence[bool],
    config: Settings = default_settings,
) -> VerificationManifest:
    """Build the verification manifest for one import.

    Args:
        control_totals: Figures captured while reading the workbook.
        mirror_audit: Audit built from the authored spreadsheet values.
        calculated_audit: Intelligence Mode audit of the same displays, in
            the same order.
        row_indexes: 1-based sheet row of each display.
        ledger_matched: Whether each display was overridden by the ledger.
        config: Variance thresholds.

    Returns:
        VerificationManifest with per-display and proposal comparisons.
    """
    per_screen: List[PerScreenManifest] = []
    for idx, source in enumerate(mirror_audit.per_screen):
        calculated = (
            calculated_audit.per_screen[idx] if idx < len(calculated_audit.per_screen) else None
        )
        calc_final = calculated.breakdown.final_client_total if calculated else 0.0
        variance, percent = variance_of(source.breakdown.final_client_total, calc_final)
        per_screen.append(
            PerScreenManifest(
                name=source.name,
                row_index=row_indexes[idx] if idx < len(row_indexes) else 0,
                area_sqft=source.area_sqft,
                pixel_resolution=source.pixel_resolution,
                pixel_matrix=source.pixel_matrix,
                ledger_matched=bool(ledger_matched[idx]) if idx < len(ledger_matched) else False,
                source=snapshot(source.breakdown),
                calculated=snapshot(calculated.breakdown) if calculated else FinancialSnapshot(),
                variance=float(variance),
                variance_percent=float(percent),
            )
        )

    source_totals = snapshot(mirror_audit.totals)
    calculated_totals = snapshot(calculated_audit.totals)
    variance, percent = variance_of(source_totals.final_total, calculated_totals.final_total)
    match_type = classify_variance(variance, percent, config)

    proposal_totals = ProposalTotalsManifest(
        screen_count=len(mirror_audit.per_screen),
        total_area_sqft=float(sum_cents(s.area_sqft for s in mirror_audit.per_screen)),
        total_pixel_resolution=sum(s.pixel_resolution for s in mirror_audit.per_screen),
        source_totals=source_totals,
        calculated_totals=calculated_totals,
        variance=float(variance),
        variance_percent=float(percent),
    )
    verdict = ReconciliationVerdict(
        source_final_total=source_totals.final_total,
        calculated_final_total=calculated_totals.final_total,
        variance=float(variance),
        variance_percent=float(percent),
        is_match=match_type != MatchType.EXCEEDS_THRESHOLD,
        match_type=match_type,
    )

    logger.info(
        "verification_manifest_computed",
        screens=len(per_screen),
        match_type=match_type.value,
        variance=float(variance),
    )
    return VerificationManifest(
        control_totals=control_totals,
        per_screen=per_screen,
        proposal_totals=proposal_totals,
        reconciliation=verdict,
    )


def detect_exceptions(
    manifest: VerificationManifest,
    mirror_audit: Optional[InternalAudit] = None,
    config: Settings = default_settings,
) -> List[ReconciliationException]:
    """Flag variances and totals that do not add up.

    - proposal variance beyond threshold -> CALC_MISMATCH (error)
    - display variance beyond the per-display alert -> SCREEN_VARIANCE
    - display cost lines not summing to its total cost -> LINE_ITEM_SUM_MISMATCH
    """
    exceptions: List[ReconciliationException] = []
    verdict = manifest.reconciliation

    if verdict.match_type == MatchType.EXCEEDS_THRESHOLD.value:
        exceptions.append(
            ReconciliationException(
                type=ExceptionType.CALC_MISMATCH,
                severity=ExceptionSeverity.ERROR,
                message=(
                    f"Spreadsheet total ${verdict.source_final_total:,.2f} differs from "
                    f"recalculated ${verdict.calculated_final_total:,.2f}"
                ),
                expected=verdict.source_final_total,
                actual=verdict.calculated_final_total,
                variance=verdict.variance,
            )
        )

    alert = to_decimal(config.screen_variance_alert)
    for screen in manifest.per_screen:
        if abs(to_decimal(screen.variance)) > alert:
            exceptions.append(
                ReconciliationException(
                    type=ExceptionType.SCREEN_VARIANCE,
                    severity=ExceptionSeverity.WARNING,
                    message=f"{screen.name}: recalculated total differs by ${screen.variance:,.2f}",
                    screen_name=screen.name,
                    row_index=screen.row_index,
                    expected=screen.source.final_total,
                    actual=screen.calculated.final_total,
                    variance=screen.variance,
                )
            )

    if mirror_audit is not None:
        threshold = to_decimal(config.variance_threshold)
        rows = {s.name: s.row_index for s in manifest.per_screen}
        for audit in mirror_audit.per_screen:
            line_sum = sum_cents(audit.breakdown.cost_lines().values())
            stated = to_decimal(audit.breakdown.total_cost)
            if abs(line_sum - stated) > threshold:
                exceptions.append(
                    ReconciliationException(
                        type=ExceptionType.LINE_ITEM_SUM_MISMATCH,
                        severity=ExceptionSeverity.WARNING,
                        message=(
                            f"{audit.name}: cost lines sum to ${float(line_sum):,.2f} "
                            f"but total cost is ${float(stated):,.2f}"
                        ),
                        screen_name=audit.name,
                        row_index=rows.get(audit.name),
                        expected=float(stated),
                        actual=float(line_sum),
                        variance=float(round_to_cents(line_sum - stated)),
                    )
                )

    if exceptions:
        logger.warning("reconciliation_exceptions_detected", count=len(exceptions))
    return exceptions
