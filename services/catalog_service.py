"""Catalog Lookup Service for the proposal audit engine.

Pure lookups over in-code catalog data:
- Product catalog: pixel pitch -> default unit cost ($/sqft)
- LED module catalog: module key -> physical building block

Absence of a match degrades to defaults rather than failing, since a price
must always be produceable.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Dict, List, Optional

import structlog

from config.pricing import DEFAULT_PRICING, PricingConfig
from models.catalog import CatalogEntry, LedModule

logger = structlog.get_logger(__name__)


# =============================================================================
# PRODUCT CATALOG (pitch -> cost per square foot)
# =============================================================================

PRODUCT_CATALOG: List[CatalogEntry] = [
    CatalogEntry(
        product_id="anc-fp-19", product_name="Fine Pitch 1.9mm", category="Fine Pitch",
        pixel_pitch=1.9, cost_per_sqft=420.0, cabinet_width_mm=250, cabinet_height_mm=250,
        service_type="Front/Rear", module_key="LG-GSQA-019", supports_half_module=True,
    ),
    CatalogEntry(
        product_id="anc-fp-27", product_name="Fine Pitch 2.7mm", category="Fine Pitch",
        pixel_pitch=2.7, cost_per_sqft=310.0, cabinet_width_mm=250, cabinet_height_mm=250,
        service_type="Front/Rear", module_key="LG-GSQA-027", supports_half_module=True,
    ),
    CatalogEntry(
        product_id="anc-in-39", product_name="Indoor 3.9mm", category="Indoor",
        pixel_pitch=3.9, cost_per_sqft=240.0, cabinet_width_mm=250, cabinet_height_mm=250,
        service_type="Front/Rear", module_key="LG-GSQA-039", supports_half_module=True,
    ),
    CatalogEntry(
        product_id="anc-in-60", product_name="Indoor 6mm", category="Indoor",
        pixel_pitch=6.0, cost_per_sqft=165.0, cabinet_width_mm=500, cabinet_height_mm=500,
        service_type="Front/Rear", module_key="LG-LAA-060", supports_half_module=False,
    ),
    CatalogEntry(
        product_id="anc-in-100", product_name="Indoor 10mm", category="Indoor",
        pixel_pitch=10.0, cost_per_sqft=120.0, cabinet_width_mm=320, cabinet_height_mm=320,
        service_type="Top", module_key="YAHAM-S3-100", supports_half_module=True,
    ),
    CatalogEntry(
        product_id="anc-out-160", product_name="Outdoor 16mm", category="Outdoor",
        pixel_pitch=16.0, cost_per_sqft=95.0, cabinet_width_mm=500, cabinet_height_mm=500,
        service_type="Front/Rear", module_key="YAHAM-OUT-160", supports_half_module=False,
    ),
]


# =============================================================================
# LED MODULE CATALOG (module-by-module building blocks)
# =============================================================================


def _module(key: str, manufacturer: str, name: str, width_mm: float, height_mm: float,
            pitch: float, nits: int, weight_lbs: float, max_power_watts: float,
            supports_half_module: bool) -> LedModule:
    return LedModule(
        key=key, manufacturer=manufacturer, name=name, width_mm=width_mm,
        height_mm=height_mm, pitch=pitch, nits=nits, weight_lbs=weight_lbs,
        max_power_watts=max_power_watts, supports_half_module=supports_half_module,
    )


LED_MODULES: Dict[str, LedModule] = {
    module.key: module
    for module in [
        _module("DEFAULT", "Generic", "Standard 500x500", 500, 500, 3.9, 5000, 15.0, 150, False),
        # LG
        _module("LG-GSQA-039", "LG", "GSQA 3.9mm Indoor", 250, 250, 3.9, 7500, 4.5, 85, True),
        _module("LG-GSQA-027", "LG", "GSQA 2.7mm Fine Pitch", 250, 250, 2.7, 1200, 4.2, 80, True),
        _module("LG-GSQA-019", "LG", "GSQA 1.9mm Fine Pitch", 250, 250, 1.9, 1000, 4.2, 75, True),
        _module("LG-LAA-100", "LG", "LAA 10mm Outdoor", 500, 500, 10.0, 7000, 22.0, 300, False),
        _module("LG-LAA-060", "LG", "LAA 6mm Indoor", 500, 500, 6.0, 5500, 18.0, 220, False),
        # Yaham
        _module("YAHAM-S3-100", "Yaham", "S3 10mm Indoor", 320, 320, 10.0, 5000, 9.5, 110, True),
        _module("YAHAM-S3-060", "Yaham", "S3 6mm Indoor", 320, 320, 6.0, 4500, 9.0, 105, True),
        _module("YAHAM-S3-039", "Yaham", "S3 3.9mm Indoor", 320, 320, 3.9, 4000, 8.8, 100, True),
        _module("YAHAM-OUT-160", "Yaham", "16mm Outdoor", 500, 500, 16.0, 8000, 24.0, 320, False),
        _module("YAHAM-OUT-100", "Yaham", "10mm Outdoor", 500, 500, 10.0, 8000, 25.0, 340, False),
        # Absen
        _module("ABSEN-A27", "Absen", "Acclaim 2.7mm", 300, 300, 2.7, 1000, 6.0, 90, True),
        _module("ABSEN-A39", "Absen", "Acclaim 3.9mm", 300, 300, 3.9, 1200, 6.0, 90, True),
        # Unilumin
        _module("UNILUMIN-UTV-P19", "Unilumin", "UTV 1.9mm", 250, 250, 1.9, 800, 4.0, 70, True),
        _module("UNILUMIN-UTV-P27", "Unilumin", "UTV 2.7mm", 250, 250, 2.7, 900, 4.0, 70, True),
    ]
}

DEFAULT_MODULE_KEY = "DEFAULT"


# =============================================================================
# LOOKUPS
# =============================================================================


def default_catalog_entry(config: PricingConfig = DEFAULT_PRICING) -> CatalogEntry:
    """Catalog entry used when no row matches the requested pitch."""
    return CatalogEntry(
        product_id="default",
        product_name="Default LED",
        pixel_pitch=config.default_pitch_mm,
        cost_per_sqft=config.default_cost_per_sqft,
        supports_half_module=False,
    )


def lookup_by_pitch(
    pitch_mm: Optional[float],
    config: PricingConfig = DEFAULT_PRICING,
    catalog: Optional[List[CatalogEntry]] = None,
) -> CatalogEntry:
    """Find the closest catalog entry for a pixel pitch.

    Args:
        pitch_mm: Pixel pitch in millimetres.
        config: Pricing config supplying tolerance and defaults.
        catalog: Catalog rows to search (defaults to PRODUCT_CATALOG).

    Returns:
        The closest entry within the tolerance, else the default entry.
    """
    rows = PRODUCT_CATALOG if catalog is None else catalog
    if pitch_mm is None or pitch_mm <= 0:
        return default_catalog_entry(config)

    target = Decimal(str(pitch_mm))
    tolerance = Decimal(str(config.catalog_pitch_tolerance_mm))
    best: Optional[CatalogEntry] = None
    best_delta: Optional[Decimal] = None
    for entry in rows:
        delta = abs(Decimal(str(entry.pixel_pitch)) - target)
        if delta <= tolerance and (best_delta is None or delta < best_delta):
            best, best_delta = entry, delta

    if best is None:
        logger.debug("catalog_pitch_not_found", pitch_mm=pitch_mm)
        return default_catalog_entry(config)
    return best


def get_module(module_key: Optional[str]) -> Optional[LedModule]:
    """Get a module by key (case-insensitive); None if unknown."""
    if not module_key:
        return None
    return LED_MODULES.get(module_key.strip().upper())


def list_modules(include_default: bool = False) -> List[LedModule]:
    """All catalog modules in declaration order."""
    return [
        module for key, module in LED_MODULES.items()
        if include_default or key != DEFAULT_MODULE_KEY
    ]


def resolve_module_key(
    product_type: Optional[str],
    pitch_mm: float,
    config: PricingConfig = DEFAULT_PRICING,
) -> Optional[str]:
    """Guess the module key from product-type text and pitch.

    The manufacturer must appear as a whole word in the product text and the
    module pitch must be within tolerance; the closest pitch wins. "Outdoor"
    in the text breaks ties toward outdoor modules.

    Returns:
        A module key, or None when nothing qualifies.
    """
    if not product_type:
        return None
    text = product_type.lower()
    wants_outdoor = "outdoor" in text
    tolerance = Decimal(str(config.module_key_pitch_tolerance_mm))
    target = Decimal(str(pitch_mm))

    candidates = []
    for order, module in enumerate(list_modules()):
        if not re.search(rf"\b{re.escape(module.manufacturer.lower())}\b", text):
            continue
        delta = abs(Decimal(str(module.pitch)) - target)
        if delta > tolerance:
            continue
        outdoor_mismatch = ("outdoor" in module.name.lower()) != wants_outdoor
        candidates.append((delta, outdoor_mismatch, order, module.key))

    if not candidates:
        return None
    return min(candidates)[3]
