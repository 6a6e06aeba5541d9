"""Audit result models for the proposal pricing engine.

ScreenAudit holds one display's full cost-to-price breakdown; InternalAudit
rolls the displays up for internal review; ClientSummary is the client-safe
view derived from the internal totals. All records are frozen: an edit
produces a new record through the calculator, never an in-place patch.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.catalog import MatchingResult


# Cost lines that make up totalCost (bond and taxes excluded).
COST_LINE_FIELDS = (
    "hardware",
    "structure",
    "install",
    "labor",
    "power",
    "shipping",
    "pm",
    "general_conditions",
    "travel",
    "submittals",
    "engineering",
    "permits",
    "cms",
    "demolition",
)

# Minor lines folded into the client's "others" bucket.
CLIENT_OTHER_FIELDS = (
    "shipping",
    "pm",
    "general_conditions",
    "travel",
    "submittals",
    "engineering",
    "permits",
    "cms",
    "demolition",
)

# Derived sell-side values, summed like the cost lines in project totals.
SELL_SIDE_FIELDS = (
    "total_cost",
    "sell_price",
    "anc_margin",
    "margin_amount",
    "bond_cost",
    "regional_tax_cost",
    "final_client_total",
)


# =============================================================================
# BREAKDOWN
# =============================================================================


class AuditBreakdown(BaseModel):
    """Every cost line plus the sell-side values derived from them.

    Invariants:
    - total_cost is the sum of the cost lines and excludes bond and tax
    - final_client_total = sell_price + bond_cost + regional_tax_cost
    - anc_margin = sell_price - total_cost
    """

    # Cost lines
    hardware: float = Field(default=0.0, description="LED display hardware")
    structure: float = Field(default=0.0, description="Structural materials")
    install: float = Field(default=0.0, description="Installation (flat fee)")
    labor: float = Field(default=0.0, description="Installation labor")
    power: float = Field(default=0.0, description="Electrical, incl. outlet surcharge")
    shipping: float = Field(default=0.0)
    pm: float = Field(default=0.0, description="Project management")
    general_conditions: float = Field(default=0.0, alias="generalConditions")
    travel: float = Field(default=0.0)
    submittals: float = Field(default=0.0)
    engineering: float = Field(default=0.0)
    permits: float = Field(default=0.0)
    cms: float = Field(default=0.0, description="Content management system")
    demolition: float = Field(default=0.0)

    # Sell side
    total_cost: float = Field(default=0.0, alias="totalCost", description="Sum of cost lines")
    sell_price: float = Field(
        default=0.0, alias="sellPrice", description="total_cost / (1 - margin)"
    )
    anc_margin: float = Field(default=0.0, alias="ancMargin", description="sell - cost")
    margin_amount: float = Field(
        default=0.0, alias="marginAmount", description="Alias of anc_margin for exports"
    )
    bond_cost: float = Field(default=0.0, alias="bondCost", description="sell * bond rate")
    regional_tax_cost: float = Field(
        default=0.0, alias="regionalTaxCost", description="Jurisdiction tax on sell + bond"
    )
    final_client_total: float = Field(
        default=0.0, alias="finalClientTotal", description="sell + bond + regional tax"
    )
    selling_price_per_sqft: float = Field(
        default=0.0, alias="sellingPricePerSqFt", description="final total / total area"
    )

    class Config:
        populate_by_name = True
        frozen = True

    def cost_lines(self) -> Dict[str, float]:
        """Return the cost lines keyed by attribute name."""
        return {name: getattr(self, name) for name in COST_LINE_FIELDS}

    @property
    def effective_margin(self) -> float:
        """Margin ratio realised on the sell price (1 - cost / sell)."""
        if self.sell_price <= 0:
            return 0.0
        return 1 - self.total_cost / self.sell_price


# =============================================================================
# PER-SCREEN AUDIT
# =============================================================================


class ScreenAudit(BaseModel):
    """Computed result for one display."""

    name: str
    product_type: str = Field(default="", alias="productType")
    quantity: int = Field(default=1, ge=0)
    area_sqft: float = Field(default=0.0, ge=0, alias="areaSqFt", description="Area x quantity")
    unit_area_sqft: float = Field(default=0.0, ge=0, alias="unitAreaSqFt")
    width_ft: float = Field(default=0.0, alias="widthFt", description="Width used for pricing")
    height_ft: float = Field(default=0.0, alias="heightFt", description="Height used for pricing")
    pixels_high: int = Field(default=0, ge=0, alias="pixelsHigh")
    pixels_wide: int = Field(default=0, ge=0, alias="pixelsWide")
    pixel_resolution: int = Field(default=0, ge=0, alias="pixelResolution")
    pixel_matrix: str = Field(default="", alias="pixelMatrix", description='e.g. "96 x 192 @ 10mm"')
    pitch_mm: float = Field(default=0.0, alias="pitchMm")
    cost_per_sqft: float = Field(default=0.0, alias="costPerSqFt")
    service_type: Optional[str] = Field(default=None, alias="serviceType")
    form_factor: Optional[str] = Field(default=None, alias="formFactor")
    module_key: Optional[str] = Field(default=None, alias="moduleKey")
    matching: Optional[MatchingResult] = Field(default=None, description="Module grid used")
    breakdown: AuditBreakdown = Field(default_factory=AuditBreakdown)

    class Config:
        populate_by_name = True
        frozen = True


# =============================================================================
# PROJECT-LEVEL VIEWS
# =============================================================================


class InternalAudit(BaseModel):
    """Fully itemised audit: every display plus aggregated totals."""

    per_screen: List[ScreenAudit] = Field(default_factory=list, alias="perScreen")
    totals: AuditBreakdown = Field(default_factory=AuditBreakdown)
    total_area_sqft: float = Field(default=0.0, ge=0, alias="totalAreaSqFt")

    class Config:
        populate_by_name = True
        frozen = True


class ClientSummaryBreakdown(BaseModel):
    """Coarse four-bucket breakdown shown to the client."""

    hardware: float = 0.0
    structure: float = 0.0
    install: float = 0.0
    others: float = 0.0

    class Config:
        frozen = True


class ClientSummary(BaseModel):
    """Client-facing totals derived from InternalAudit.totals."""

    subtotal: float = Field(default=0.0, description="Sum of final client totals")
    tax_rate: float = Field(default=0.0, alias="taxRate", description="Project sales tax rate")
    tax_amount: float = Field(default=0.0, alias="taxAmount")
    total: float = Field(default=0.0, description="subtotal + project sales tax")
    breakdown: ClientSummaryBreakdown = Field(default_factory=ClientSummaryBreakdown)

    class Config:
        populate_by_name = True
        frozen = True


class ProposalAudit(BaseModel):
    """Output contract handed to rendering and export collaborators."""

    client_summary: ClientSummary = Field(..., alias="clientSummary")
    internal_audit: InternalAudit = Field(..., alias="internalAudit")

    class Config:
        populate_by_name = True
        frozen = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a camelCase dict for JSON/CSV/XML exporters."""
        return self.model_dump(by_alias=True)
