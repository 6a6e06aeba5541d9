"""Module Matcher.

Converts a target opening (feet) into a buildable grid of LED modules using
the slightly-smaller rule: module counts are always floored, so the built
display never exceeds the requested footprint.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR
from typing import Optional

import structlog

from config.pricing import DEFAULT_PRICING, PricingConfig
from models.catalog import LedModule, MatchingResult
from services.catalog_service import DEFAULT_MODULE_KEY, LED_MODULES, get_module, list_modules
from utils.money import round_to_cents, to_decimal, truncate

logger = structlog.get_logger(__name__)

INCHES_PER_FOOT = Decimal("12")
HALF = Decimal("0.5")


def _floor_count(span_inches: Decimal, module_inches: Decimal, half_module: bool) -> Decimal:
    """Floor a module count, to the half unit when half modules are allowed."""
    raw = span_inches / module_inches
    if half_module:
        count = (raw * 2).to_integral_value(rounding=ROUND_FLOOR) / 2
        return max(count, HALF)
    count = raw.to_integral_value(rounding=ROUND_FLOOR)
    return max(count, Decimal("1"))


def _achieved_feet(count: Decimal, module_inches: Decimal) -> Decimal:
    return truncate(count * module_inches / INCHES_PER_FOOT, 4)


def match_modules(
    target_width_ft: float,
    target_height_ft: float,
    module_key: str = DEFAULT_MODULE_KEY,
) -> MatchingResult:
    """Fit the largest module grid that does not exceed the target.

    Args:
        target_width_ft: Requested width in feet.
        target_height_ft: Requested height in feet.
        module_key: LED module catalog key; unknown keys use DEFAULT.

    Returns:
        MatchingResult with counts, achieved dimensions and differences.
        For a target smaller than one minimum unit the clamped grid is
        larger than the target and `fits_target` is False.
    """
    module: Optional[LedModule] = get_module(module_key)
    if module is None:
        logger.debug("module_key_unknown", module_key=module_key, fallback=DEFAULT_MODULE_KEY)
        module = LED_MODULES[DEFAULT_MODULE_KEY]

    target_w = to_decimal(target_width_ft)
    target_h = to_decimal(target_height_ft)

    count_w = _floor_count(target_w * INCHES_PER_FOOT, module.width_inches, module.supports_half_module)
    count_h = _floor_count(target_h * INCHES_PER_FOOT, module.height_inches, module.supports_half_module)

    actual_w = _achieved_feet(count_w, module.width_inches)
    actual_h = _achieved_feet(count_h, module.height_inches)

    return MatchingResult(
        module_key=module.key,
        module_count_w=float(count_w),
        module_count_h=float(count_h),
        total_modules=float(count_w * count_h),
        target_width_ft=float(target_w),
        target_height_ft=float(target_h),
        actual_width_ft=float(actual_w),
        actual_height_ft=float(actual_h),
        area_sqft=float(round_to_cents(actual_w * actual_h)),
        diff_width_ft=float(truncate(actual_w - target_w, 4)),
        diff_height_ft=float(truncate(actual_h - target_h, 4)),
    )


def find_best_fit_module(
    target_width_ft: float,
    target_height_ft: float,
    pitch_mm: float,
    config: PricingConfig = DEFAULT_PRICING,
) -> Optional[MatchingResult]:
    """Pick the catalog module at a pitch that wastes the least area.

    Candidates are modules within the best-fit pitch tolerance; any whose
    grid would exceed the target is discarded, and the highest fill ratio
    wins (first in catalog order on ties).

    Returns:
        The best MatchingResult, or None when no module fits. Callers price
        from raw target dimensions in that case.
    """
    tolerance = to_decimal(config.best_fit_pitch_tolerance_mm)
    target_pitch = to_decimal(pitch_mm)

    best: Optional[MatchingResult] = None
    for module in list_modules():
        if abs(to_decimal(module.pitch) - target_pitch) > tolerance:
            continue
        result = match_modules(target_width_ft, target_height_ft, module.key)
        if not result.fits_target:
            continue
        if best is None or result.fill_ratio > best.fill_ratio:
            best = result

    if best is None:
        logger.info(
            "best_fit_not_found",
            target_width_ft=target_width_ft,
            target_height_ft=target_height_ft,
            pitch_mm=pitch_mm,
        )
    return best
