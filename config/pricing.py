"""Pricing rate configuration.

Every rate, fee and threshold used by the audit calculator and the project
aggregator lives here, so a test (or a caller) can override any single value
without reaching into the algorithm. Instances are frozen; derive a variant
with `dataclasses.replace` or `PricingConfig.with_options`.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple


# Location keywords for the Morgantown, WV business & occupation tax.
# Single-jurisdiction rule; see DESIGN.md before extending it.
MORGANTOWN_KEYWORDS: Tuple[str, ...] = (
    "morgantown",
    "wvu",
    "milan puskar",
    "puskar stadium",
)


@dataclass(frozen=True)
class PricingConfig:
    """Rates and fees for one calculation pass.

    Percentages are fractions of hardware cost unless noted otherwise.
    """

    # Catalog fallbacks
    default_cost_per_sqft: float = 120.0
    default_pitch_mm: float = 10.0
    default_margin: float = 0.25
    default_service_type: str = "Front/Rear"
    catalog_pitch_tolerance_mm: float = 0.1
    best_fit_pitch_tolerance_mm: float = 1.0
    module_key_pitch_tolerance_mm: float = 0.25

    # Hardware
    spare_parts_pct: float = 0.05

    # Structure (by service type) and the infrastructure credit
    structure_pct_top: float = 0.10
    structure_pct_front_rear: float = 0.20
    credit_structure_pct: float = 0.05
    credit_engineering_pct: float = 0.05

    # Curved form factor
    curved_structure_multiplier: float = 1.25
    curved_labor_multiplier: float = 1.15

    # Percentage lines
    labor_pct: float = 0.15
    power_pct: float = 0.15
    general_conditions_pct: float = 0.02
    travel_pct: float = 0.03
    submittals_pct: float = 0.01
    engineering_pct: float = 0.02
    cms_pct: float = 0.02

    # Per total square foot
    shipping_per_sqft: float = 0.14
    pm_per_sqft: float = 0.50

    # Fixed fees
    install_flat_fee: float = 5000.0
    permits_fixed: float = 500.0
    demolition_fixed: float = 5000.0

    # Power run
    outlet_distance_threshold_ft: float = 50.0
    outlet_surcharge: float = 2500.0

    # Sell-side
    bond_pct: float = 0.015
    sales_tax_rate: float = 0.095
    regional_tax_rate: float = 0.02
    regional_tax_keywords: Tuple[str, ...] = MORGANTOWN_KEYWORDS

    # Shared structural steel
    steel_price_per_ton: float = 3000.0

    def with_options(self, options: Optional[Any]) -> "PricingConfig":
        """Apply per-request overrides from an AuditOptions-like object.

        Args:
            options: Object exposing `bond_pct` and `tax_rate` (None = keep).

        Returns:
            A new PricingConfig; self is never modified.
        """
        if options is None:
            return self
        updates = {}
        if getattr(options, "bond_pct", None) is not None:
            updates["bond_pct"] = float(options.bond_pct)
        if getattr(options, "tax_rate", None) is not None:
            updates["sales_tax_rate"] = float(options.tax_rate)
        return replace(self, **updates) if updates else self


DEFAULT_PRICING = PricingConfig()
