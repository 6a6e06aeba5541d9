"""Column schema for the technical ("LED Sheet") worksheet.

Two structurally separate resolvers:
- FIXED_COLUMNS_V1: the versioned fixed column-index map (always preferred)
- HeaderColumnResolver: header-text search, used only when the fixed
  schema's anchor labels disagree and strict mode is off

Financial columns are only ever read from fixed positions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from models.verification import ColumnResolution

logger = structlog.get_logger(__name__)


SCHEMA_VERSION = "v1"
PRIMARY_SHEET_NAMES: Tuple[str, ...] = ("LED Sheet", "LED Cost Sheet")
LEDGER_SHEET_NAME = "Margin Analysis"

HEADER_LABELS = ("display name", "display")
HEADER_SEARCH_ROWS = 5
DEFAULT_HEADER_ROW = 1

TECHNICAL_FIELDS = (
    "name",
    "product",
    "quantity",
    "pitch",
    "height",
    "width",
    "pixels_h",
    "pixels_w",
    "brightness",
)

FINANCIAL_FIELDS = (
    "hardware",
    "install",
    "other",
    "shipping",
    "total_cost",
    "sell_price",
    "margin",
    "bond",
    "final_total",
)

# Zero-based column indexes (A=0)
FIXED_COLUMNS_V1: Dict[str, int] = {
    "name": 0,          # A - Display Name
    "product": 1,       # B - Product / manufacturer
    "quantity": 3,      # D - Qty
    "pitch": 4,         # E - Pixel Pitch
    "height": 5,        # F - Height (ft)
    "width": 6,         # G - Width (ft)
    "pixels_h": 7,      # H - Pixels high
    "pixels_w": 9,      # J - Pixels wide
    "brightness": 12,   # M - Brightness (nits)
    "hardware": 16,     # Q - LED price
    "install": 17,      # R - Install
    "other": 18,        # S - Other
    "shipping": 19,     # T - Shipping
    "total_cost": 20,   # U - Total cost
    "sell_price": 22,   # W - Sell price
    "margin": 23,       # X - Margin
    "bond": 24,         # Y - Bond
    "final_total": 25,  # Z - Final total
}

# Header text the fixed positions must carry for the schema to be trusted
ANCHOR_LABELS: Dict[str, Tuple[str, ...]] = {
    "name": ("display",),
    "pitch": ("pitch",),
    "height": ("height",),
    "width": ("width",),
}


def header_text(cell: Any) -> str:
    """Lower-cased, whitespace-collapsed text of a header cell."""
    if cell is None:
        return ""
    return " ".join(str(cell).split()).lower()


def cell_at(row: Sequence[Any], index: Optional[int]) -> Any:
    """Cell value at index, or None past the end of a ragged row."""
    if index is None or index < 0 or index >= len(row):
        return None
    return row[index]


def find_header_row(rows: Sequence[Sequence[Any]]) -> int:
    """Index of the first row (within the first five) labelled "Display Name"/"Display"."""
    for index, row in enumerate(rows[:HEADER_SEARCH_ROWS]):
        if any(header_text(cell) in HEADER_LABELS for cell in row):
            return index
    return DEFAULT_HEADER_ROW


def find_hdr_column(headers: Sequence[Any]) -> Optional[int]:
    """HDR has no fixed position; locate it by header text."""
    for index, cell in enumerate(headers):
        if "hdr" in header_text(cell):
            return index
    return None


def fixed_schema_matches(headers: Sequence[Any]) -> bool:
    """True when every anchor column carries its expected header label."""
    for name, labels in ANCHOR_LABELS.items():
        text = header_text(cell_at(headers, FIXED_COLUMNS_V1[name]))
        if not any(label in text for label in labels):
            return False
    return True


class HeaderColumnResolver:
    """Last-resort column resolver driven by header text.

    Only technical columns are resolved. More specific fields are claimed
    first so "Pixel Height" is not taken for "Height".
    """

    PATTERNS: List[Tuple[str, Tuple[str, ...]]] = [
        ("pixels_h", ("pixels high", "pixel h", "pixels h", "res h", "resolution h")),
        ("pixels_w", ("pixels wide", "pixel w", "pixels w", "res w", "resolution w")),
        ("name", ("display name", "display", "screen name")),
        ("product", ("product", "manufacturer")),
        ("quantity", ("qty", "quantity")),
        ("pitch", ("pitch",)),
        ("height", ("height",)),
        ("width", ("width",)),
        ("brightness", ("brightness", "nits")),
    ]

    def resolve(self, headers: Sequence[Any]) -> Dict[str, int]:
        """Map technical fields to column indexes found by header text.

        Fields whose header cannot be found are omitted.
        """
        texts = [header_text(cell) for cell in headers]
        claimed: set = set()
        resolved: Dict[str, int] = {}
        for field_name, patterns in self.PATTERNS:
            for index, text in enumerate(texts):
                if index in claimed or not text:
                    continue
                if any(pattern in text for pattern in patterns):
                    resolved[field_name] = index
                    claimed.add(index)
                    break
        return resolved


@dataclass(frozen=True)
class ColumnMap:
    """Resolved column positions for one technical sheet."""

    columns: Dict[str, int] = field(default_factory=lambda: dict(FIXED_COLUMNS_V1))
    hdr: Optional[int] = None
    resolution: ColumnResolution = ColumnResolution.FIXED
    anchors_agree: bool = True
    version: str = SCHEMA_VERSION

    def value(self, row: Sequence[Any], field_name: str) -> Any:
        return cell_at(row, self.columns.get(field_name))

    def hdr_value(self, row: Sequence[Any]) -> Any:
        return cell_at(row, self.hdr)


def resolve_columns(
    headers: Sequence[Any],
    strict: bool = False,
    resolver: Optional[HeaderColumnResolver] = None,
) -> ColumnMap:
    """Choose the column map for a technical sheet.

    Args:
        headers: Header row cells.
        strict: Never fall back to header-text resolution.
        resolver: Fallback resolver (defaults to HeaderColumnResolver()).

    Returns:
        ColumnMap; `resolution` tells which path produced it and
        `anchors_agree` whether the fixed labels were confirmed.
    """
    hdr = find_hdr_column(headers)
    if fixed_schema_matches(headers):
        return ColumnMap(hdr=hdr)

    if strict:
        logger.warning("import_schema_mismatch_strict", headers=[header_text(h) for h in headers])
        return ColumnMap(hdr=hdr, anchors_agree=False)

    technical = (resolver or HeaderColumnResolver()).resolve(headers)
    columns = dict(FIXED_COLUMNS_V1)
    columns.update({k: v for k, v in technical.items() if k in TECHNICAL_FIELDS})
    logger.warning("import_schema_fallback", remapped=sorted(technical))
    return ColumnMap(
        columns=columns,
        hdr=hdr,
        resolution=ColumnResolution.HEADER_FALLBACK,
        anchors_agree=False,
    )
