"""Reconciliation and verification models for spreadsheet imports.

Mirror Mode treats the authored spreadsheet as ground truth. These models
capture the control totals taken at import time, the Mirror-vs-Intelligence
comparison, and the flags a reviewer works through afterwards.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models.audit import InternalAudit


# =============================================================================
# ENUMS
# =============================================================================


class SkipReason(str, Enum):
    """Why a technical-sheet row was not imported."""

    HEADER = "header"                           # Title/header text rows
    BLANK = "blank"                             # No display name
    ALTERNATE = "alternate"                     # "Alt ..." / "Alternate ..." options
    MISSING_DIMENSIONS = "missing_dimensions"   # Pitch, height or width not positive


class ColumnResolution(str, Enum):
    """Which column resolver mapped the technical sheet."""

    FIXED = "fixed"
    HEADER_FALLBACK = "header_fallback"


class MatchType(str, Enum):
    """Outcome of comparing source and calculated totals."""

    EXACT = "EXACT"
    WITHIN_THRESHOLD = "WITHIN_THRESHOLD"
    EXCEEDS_THRESHOLD = "EXCEEDS_THRESHOLD"


class ExceptionSeverity(str, Enum):
    """Severity of a reconciliation flag."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ExceptionType(str, Enum):
    """Category of a reconciliation flag."""

    UNMATCHED_LEDGER_ROW = "unmatched_ledger_row"
    SCHEMA_FALLBACK = "schema_fallback"
    SCHEMA_MISMATCH = "schema_mismatch"
    CALC_MISMATCH = "calc_mismatch"
    SCREEN_VARIANCE = "screen_variance"
    LINE_ITEM_SUM_MISMATCH = "line_item_sum_mismatch"


# =============================================================================
# CONTROL TOTALS
# =============================================================================


class ControlTotals(BaseModel):
    """Aggregate figures captured while reading the workbook."""

    file_name: str = Field(default="unknown.xlsx", alias="fileName")
    sheets_read: List[str] = Field(default_factory=list, alias="sheetsRead")
    primary_sheet: str = Field(default="", alias="primarySheet")
    ledger_sheet: Optional[str] = Field(default=None, alias="ledgerSheet")
    schema_version: str = Field(default="v1", alias="schemaVersion")
    column_resolution: ColumnResolution = Field(
        default=ColumnResolution.FIXED, alias="columnResolution"
    )
    header_row_index: int = Field(default=1, ge=0, alias="headerRowIndex")
    row_count: int = Field(default=0, ge=0, alias="rowCount", description="Data rows scanned")
    screen_count: int = Field(default=0, ge=0, alias="screenCount")
    skipped: Dict[str, int] = Field(default_factory=dict, description="Skipped rows by reason")
    ledger_entry_count: int = Field(default=0, ge=0, alias="ledgerEntryCount")
    ledger_matched: int = Field(default=0, ge=0, alias="ledgerMatched")
    ledger_unmatched: List[str] = Field(default_factory=list, alias="ledgerUnmatched")

    class Config:
        populate_by_name = True
        use_enum_values = True

    @property
    def skipped_total(self) -> int:
        """Total rows skipped for any reason."""
        return sum(self.skipped.values())


# =============================================================================
# MANIFEST
# =============================================================================


class FinancialSnapshot(BaseModel):
    """Sell-side figures for one display or for the whole proposal."""

    hardware: float = 0.0
    total_cost: float = Field(default=0.0, alias="totalCost")
    sell_price: float = Field(default=0.0, alias="sellPrice")
    anc_margin: float = Field(default=0.0, alias="ancMargin")
    bond_cost: float = Field(default=0.0, alias="bondCost")
    regional_tax_cost: float = Field(default=0.0, alias="regionalTaxCost")
    final_total: float = Field(default=0.0, alias="finalTotal")

    class Config:
        populate_by_name = True


class PerScreenManifest(BaseModel):
    """Mirror (source) versus Intelligence (calculated) for one display."""

    name: str
    row_index: int = Field(default=0, alias="rowIndex", description="1-based sheet row")
    area_sqft: float = Field(default=0.0, alias="areaSqFt")
    pixel_resolution: int = Field(default=0, alias="pixelResolution")
    pixel_matrix: str = Field(default="", alias="pixelMatrix")
    ledger_matched: bool = Field(default=False, alias="ledgerMatched")
    source: FinancialSnapshot = Field(default_factory=FinancialSnapshot)
    calculated: FinancialSnapshot = Field(default_factory=FinancialSnapshot)
    variance: float = Field(default=0.0, description="calculated - source final total")
    variance_percent: float = Field(default=0.0, alias="variancePercent")

    class Config:
        populate_by_name = True


class ProposalTotalsManifest(BaseModel):
    """Proposal-wide source and calculated totals."""

    screen_count: int = Field(default=0, alias="screenCount")
    total_area_sqft: float = Field(default=0.0, alias="totalAreaSqFt")
    total_pixel_resolution: int = Field(default=0, alias="totalPixelResolution")
    source_totals: FinancialSnapshot = Field(default_factory=FinancialSnapshot, alias="sourceTotals")
    calculated_totals: FinancialSnapshot = Field(
        default_factory=FinancialSnapshot, alias="calculatedTotals"
    )
    variance: float = 0.0
    variance_percent: float = Field(default=0.0, alias="variancePercent")

    class Config:
        populate_by_name = True


class ReconciliationVerdict(BaseModel):
    """Whether Mirror Mode and Intelligence Mode agree at proposal level."""

    source_final_total: float = Field(default=0.0, alias="sourceFinalTotal")
    calculated_final_total: float = Field(default=0.0, alias="calculatedFinalTotal")
    variance: float = 0.0
    variance_percent: float = Field(default=0.0, alias="variancePercent")
    is_match: bool = Field(default=False, alias="isMatch")
    match_type: MatchType = Field(default=MatchType.EXCEEDS_THRESHOLD, alias="matchType")

    class Config:
        populate_by_name = True
        use_enum_values = True


class VerificationManifest(BaseModel):
    """Everything a reviewer needs to verify an import."""

    control_totals: ControlTotals = Field(default_factory=ControlTotals, alias="controlTotals")
    per_screen: List[PerScreenManifest] = Field(default_factory=list, alias="perScreen")
    proposal_totals: ProposalTotalsManifest = Field(
        default_factory=ProposalTotalsManifest, alias="proposalTotals"
    )
    reconciliation: ReconciliationVerdict = Field(default_factory=ReconciliationVerdict)

    class Config:
        populate_by_name = True


class ReconciliationException(BaseModel):
    """A reviewable flag raised during import or verification."""

    type: ExceptionType
    severity: ExceptionSeverity
    message: str
    screen_name: Optional[str] = Field(default=None, alias="screenName")
    row_index: Optional[int] = Field(default=None, alias="rowIndex")
    expected: Optional[float] = None
    actual: Optional[float] = None
    variance: Optional[float] = None

    class Config:
        populate_by_name = True
        use_enum_values = True


# =============================================================================
# IMPORT RESULT
# =============================================================================


class ImportResult(BaseModel):
    """Output of the spreadsheet reconciliation importer."""

    form_data: Dict[str, Any] = Field(default_factory=dict, alias="formData")
    internal_audit: InternalAudit = Field(..., alias="internalAudit")
    verification_manifest: VerificationManifest = Field(..., alias="verificationManifest")
    exceptions: List[ReconciliationException] = Field(default_factory=list)
    excel_data: Dict[str, Any] = Field(default_factory=dict, alias="excelData")

    class Config:
        populate_by_name = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a camelCase dict for the API layer."""
        return self.model_dump(by_alias=True, mode="json")
