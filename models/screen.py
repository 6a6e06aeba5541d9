"""Display input models for the proposal audit engine.

A ScreenInput describes one display as entered in the proposal form or
extracted from a cost spreadsheet. AuditOptions carries the project-level
overrides that accompany a calculation request.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class ServiceType(str, Enum):
    """How the display is serviced once mounted."""

    TOP = "Top"                 # Ribbon boards, serviced from above
    FRONT_REAR = "Front/Rear"   # Scoreboards and walls


class FormFactor(str, Enum):
    """Physical shape of the display face."""

    STRAIGHT = "Straight"
    CURVED = "Curved"


# =============================================================================
# SCREEN INPUT
# =============================================================================


class ScreenInput(BaseModel):
    """One display's specification.

    Dimensions are in feet, pitch in millimetres. Optional values fall back
    to the PricingConfig defaults at calculation time.
    """

    name: str = Field(..., description="Display name")
    product_type: Optional[str] = Field(
        default=None, alias="productType", description="Product type / manufacturer text"
    )
    width_ft: float = Field(default=0.0, ge=0, alias="widthFt", description="Target width (ft)")
    height_ft: float = Field(default=0.0, ge=0, alias="heightFt", description="Target height (ft)")
    quantity: int = Field(default=1, ge=0, description="Number of identical displays")
    pitch_mm: Optional[float] = Field(
        default=None, gt=0, alias="pitchMm", description="Pixel pitch (mm)"
    )
    cost_per_sqft: Optional[float] = Field(
        default=None, ge=0, alias="costPerSqFt", description="Unit cost override ($/sqft)"
    )
    desired_margin: Optional[float] = Field(
        default=None,
        ge=0,
        alias="desiredMargin",
        description="Margin on sell price as a fraction; must be below 1.0",
    )
    service_type: Optional[str] = Field(
        default=None, alias="serviceType", description='"Top" or "Front/Rear"'
    )
    form_factor: Optional[str] = Field(
        default=None, alias="formFactor", description='"Straight" or "Curved"'
    )
    outlet_distance: float = Field(
        default=0.0, ge=0, alias="outletDistance", description="Distance to power outlet (ft)"
    )
    is_replacement: bool = Field(default=False, alias="isReplacement")
    use_existing_structure: bool = Field(default=False, alias="useExistingStructure")
    include_spare_parts: bool = Field(default=False, alias="includeSpareParts")
    module_key: Optional[str] = Field(
        default=None, alias="moduleKey", description="Explicit LED module catalog key"
    )

    class Config:
        populate_by_name = True
        frozen = True

    @field_validator("quantity", mode="before")
    @classmethod
    def default_quantity(cls, v: Any) -> Any:
        """Treat a missing quantity as a single display."""
        return 1 if v is None else v

    @property
    def is_curved(self) -> bool:
        """Check if the display uses the curved form factor."""
        return (self.form_factor or "").strip().lower() == FormFactor.CURVED.value.lower()

    @property
    def is_top_service(self) -> bool:
        """Check if the display is serviced from the top."""
        return (self.service_type or "").strip().lower() == ServiceType.TOP.value.lower()

    @property
    def has_infrastructure_credit(self) -> bool:
        """Replacement project that reuses the existing structure."""
        return self.is_replacement and self.use_existing_structure


# =============================================================================
# CALCULATION OPTIONS
# =============================================================================


class AuditOptions(BaseModel):
    """Project-level overrides for one calculation request."""

    tax_rate: Optional[float] = Field(
        default=None, ge=0, le=1, alias="taxRate", description="Project sales tax rate"
    )
    bond_pct: Optional[float] = Field(
        default=None, ge=0, le=1, alias="bondPct", description="Performance bond rate"
    )
    structural_tonnage: Optional[float] = Field(
        default=None, ge=0, alias="structuralTonnage", description="Structural steel (tons)"
    )
    reinforcing_tonnage: Optional[float] = Field(
        default=None, ge=0, alias="reinforcingTonnage", description="Reinforcing steel (tons)"
    )
    project_address: Optional[str] = Field(default=None, alias="projectAddress")
    venue: Optional[str] = Field(default=None, description="Venue name")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def total_tonnage(self) -> float:
        """Structural plus reinforcing tonnage."""
        return (self.structural_tonnage or 0.0) + (self.reinforcing_tonnage or 0.0)
