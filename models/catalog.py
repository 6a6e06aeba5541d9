"""Catalog and module-fit models.

CatalogEntry rows map a pixel pitch to a unit cost; LedModule rows describe
the physical building block a display is assembled from. MatchingResult is
the output of fitting a module grid into a target opening.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


MM_PER_INCH = Decimal("25.4")


class CatalogEntry(BaseModel):
    """Product catalog row keyed by pixel pitch."""

    product_id: str = Field(..., alias="productId")
    product_name: str = Field(..., alias="productName")
    category: str = Field(default="Indoor", description="Indoor / Outdoor / Fine Pitch")
    pixel_pitch: float = Field(..., gt=0, alias="pixelPitch", description="Pitch (mm)")
    cost_per_sqft: float = Field(..., ge=0, alias="costPerSqFt")
    cabinet_width_mm: Optional[float] = Field(default=None, alias="cabinetWidthMm")
    cabinet_height_mm: Optional[float] = Field(default=None, alias="cabinetHeightMm")
    service_type: Optional[str] = Field(default=None, alias="serviceType")
    module_key: Optional[str] = Field(default=None, alias="moduleKey")
    supports_half_module: bool = Field(default=False, alias="supportsHalfModule")

    class Config:
        populate_by_name = True
        frozen = True


class LedModule(BaseModel):
    """Physical LED module (cabinet) used to build a display grid."""

    key: str = Field(..., description="Catalog key, e.g. 'LG-GSQA-039'")
    manufacturer: str
    name: str
    width_mm: float = Field(..., gt=0, alias="widthMm")
    height_mm: float = Field(..., gt=0, alias="heightMm")
    pitch: float = Field(..., gt=0, description="Pixel pitch (mm)")
    nits: int = Field(default=0, ge=0)
    weight_lbs: float = Field(default=0.0, ge=0, alias="weightLbs")
    max_power_watts: float = Field(default=0.0, ge=0, alias="maxPowerWatts")
    supports_half_module: bool = Field(default=False, alias="supportsHalfModule")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def width_inches(self) -> Decimal:
        """Module width in inches (exact)."""
        return Decimal(str(self.width_mm)) / MM_PER_INCH

    @property
    def height_inches(self) -> Decimal:
        """Module height in inches (exact)."""
        return Decimal(str(self.height_mm)) / MM_PER_INCH


class MatchingResult(BaseModel):
    """Module grid that fits inside a target opening.

    Counts may be half-integers when the module supports half modules.
    Differences are achieved minus target and are never positive for a
    target at least one minimum unit in each axis.
    """

    module_key: str = Field(..., alias="moduleKey")
    module_count_w: float = Field(..., ge=0, alias="moduleCountW")
    module_count_h: float = Field(..., ge=0, alias="moduleCountH")
    total_modules: float = Field(..., ge=0, alias="totalModules")
    target_width_ft: float = Field(..., alias="targetWidthFt")
    target_height_ft: float = Field(..., alias="targetHeightFt")
    actual_width_ft: float = Field(..., alias="actualWidthFt")
    actual_height_ft: float = Field(..., alias="actualHeightFt")
    area_sqft: float = Field(..., alias="areaSqFt")
    diff_width_ft: float = Field(..., alias="diffWidthFt")
    diff_height_ft: float = Field(..., alias="diffHeightFt")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def fits_target(self) -> bool:
        """True when the grid does not exceed the opening in either axis."""
        return self.diff_width_ft <= 0 and self.diff_height_ft <= 0

    @property
    def fill_ratio(self) -> float:
        """Achieved area over target area (0 when the target has no area)."""
        target_area = self.target_width_ft * self.target_height_ft
        if target_area <= 0:
            return 0.0
        return (self.actual_width_ft * self.actual_height_ft) / target_area
