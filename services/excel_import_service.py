"""Spreadsheet Reconciliation Importer (Mirror Mode).

Parses an authored cost workbook into the same InternalAudit shape the
aggregator produces. The "Margin Analysis" ledger, when present, is the
source of truth for each display it matches; the engine then recomputes the
extracted displays natively (Intelligence Mode) so the two can be compared.

Usage:
    result = import_workbook(buffer, file_name="Project.xlsx")
    result.internal_audit.totals.final_client_total
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence
from zipfile import BadZipFile

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from config.errors import MissingSheetError, WorkbookReadError
from config.pricing import DEFAULT_PRICING, PricingConfig
from config.settings import Settings, settings as default_settings
from models.audit import InternalAudit, ScreenAudit
from models.screen import AuditOptions, ScreenInput
from models.verification import (
    ColumnResolution,
    ControlTotals,
    ExceptionSeverity,
    ExceptionType,
    ImportResult,
    ReconciliationException,
    SkipReason,
)
from services.audit_calculator import build_breakdown, regional_tax_rate_for
from services.import_schema import (
    HEADER_LABELS,
    LEDGER_SHEET_NAME,
    PRIMARY_SHEET_NAMES,
    ColumnMap,
    find_header_row,
    resolve_columns,
)
from services.ledger_parser import LedgerEntry, margin_ratio, match_ledger_entry, parse_ledger
from services.proposal_aggregator import (
    build_client_summary,
    build_internal_audit,
    calculate_proposal_audit,
)
from services.verification_service import compute_manifest, detect_exceptions
from utils.money import ONE, ZERO, coerce_number, round_to_cents, to_decimal

logger = structlog.get_logger(__name__)

PROJECT_NAME_PREFIX = "project name:"
DEFAULT_PROJECT_NAME = "New Project"
PROPOSAL_NAME = "LED Display Proposal"
DEFAULT_PRODUCT_TYPE = "LED Display"

ALTERNATE_PREFIXES = ("alt", "alternate")
# Real display names that happen to start with "alt"
ALTERNATE_EXEMPT_PREFIXES = ("altitude",)
_TOTAL_LABEL_RE = re.compile(r"^(sub|grand )?total\b")


@dataclass
class ImportedRow:
    """One accepted technical-sheet row and everything derived from it."""

    row_index: int
    screen: Dict[str, Any]
    screen_input: ScreenInput
    audit: ScreenAudit
    ledger_entry: Optional[LedgerEntry] = None


@dataclass
class SheetScan:
    """Intermediate state of one import pass."""

    rows: List[ImportedRow] = field(default_factory=list)
    skipped: Dict[str, int] = field(default_factory=dict)
    row_count: int = 0

    def skip(self, reason: SkipReason) -> None:
        self.skipped[reason.value] = self.skipped.get(reason.value, 0) + 1


# =============================================================================
# CELL HELPERS
# =============================================================================


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _json_safe(value: Any) -> Any:
    """Cell value as a JSON-compatible scalar."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def _brightness(value: Any) -> Optional[float]:
    """Brightness in nits; 0, blank and N/A are hidden."""
    if value is None or _text(value).upper() in ("", "N/A", "NA"):
        return None
    number = coerce_number(value)
    return number if number > 0 else None


def _is_hdr(value: Any) -> bool:
    if value is True:
        return True
    return _text(value).lower() in ("yes", "true", "y")


def _description(pixels_h: int, pixels_w: int, brightness: Optional[float]) -> str:
    text = f"Resolution: {pixels_h}h x {pixels_w}w."
    if brightness:
        text += f" Brightness: {brightness:g} nits."
    return text


def _skip_reason(name: str, pitch: float, height: float, width: float) -> Optional[SkipReason]:
    normalized = name.lower()
    if not normalized:
        return SkipReason.BLANK
    if (
        normalized in HEADER_LABELS
        or normalized.startswith(PROJECT_NAME_PREFIX)
        or _TOTAL_LABEL_RE.match(normalized)
    ):
        return SkipReason.HEADER
    if normalized.startswith(ALTERNATE_PREFIXES) and not normalized.startswith(
        ALTERNATE_EXEMPT_PREFIXES
    ):
        return SkipReason.ALTERNATE
    if pitch <= 0 or height <= 0 or width <= 0:
        return SkipReason.MISSING_DIMENSIONS
    return None


# =============================================================================
# ROW CONVERSION
# =============================================================================


def _authored_from_sheet(row: Sequence[Any], columns: ColumnMap) -> Dict[str, Decimal]:
    mapping = {
        "total_cost": columns.value(row, "total_cost"),
        "sell_price": columns.value(row, "sell_price"),
        "bond_cost": columns.value(row, "bond"),
        "final_client_total": columns.value(row, "final_total"),
    }
    authored = {name: round_to_cents(coerce_number(cell)) for name, cell in mapping.items()}
    return {name: value for name, value in authored.items() if value != ZERO}


def _cost_lines_from_sheet(row: Sequence[Any], columns: ColumnMap) -> Dict[str, Decimal]:
    """Technical-sheet cost columns mapped onto breakdown lines.

    Install is split evenly between structure and labor; "other" is labor.
    """
    install = to_decimal(coerce_number(columns.value(row, "install")))
    half_install = round_to_cents(install / 2)
    return {
        "hardware": round_to_cents(coerce_number(columns.value(row, "hardware"))),
        "structure": half_install,
        "labor": round_to_cents(
            install - half_install + to_decimal(coerce_number(columns.value(row, "other")))
        ),
        "shipping": round_to_cents(coerce_number(columns.value(row, "shipping"))),
    }


def _desired_margin(
    ledger: Optional[LedgerEntry],
    authored: Dict[str, Decimal],
    config: PricingConfig,
) -> Decimal:
    """Margin for Intelligence Mode: ledger %, else back-solved from the sheet."""
    if ledger is not None and ledger.margin_pct is not None:
        candidate = ledger.margin_pct
    elif authored.get("sell_price", ZERO) > ZERO and "total_cost" in authored:
        candidate = ONE - authored["total_cost"] / authored["sell_price"]
    else:
        candidate = to_decimal(config.default_margin)
    if candidate < ZERO or candidate >= ONE:
        return to_decimal(config.default_margin)
    return candidate


def _convert_row(
    row_index: int,
    row: Sequence[Any],
    columns: ColumnMap,
    ledger_entries: Sequence[LedgerEntry],
    options: Optional[AuditOptions],
    config: PricingConfig,
    app_settings: Settings,
) -> ImportedRow:
    name = _text(columns.value(row, "name"))
    product_type = _text(columns.value(row, "product")) or DEFAULT_PRODUCT_TYPE
    pitch = coerce_number(columns.value(row, "pitch"))
    height = coerce_number(columns.value(row, "height"))
    width = coerce_number(columns.value(row, "width"))
    quantity = int(coerce_number(columns.value(row, "quantity")))
    if quantity <= 0:
        quantity = 1
    pixels_h = int(coerce_number(columns.value(row, "pixels_h")))
    pixels_w = int(coerce_number(columns.value(row, "pixels_w")))
    brightness = _brightness(columns.value(row, "brightness"))
    description = _description(pixels_h, pixels_w, brightness)

    ledger = match_ledger_entry(name, ledger_entries, app_settings.ledger_min_match_length)
    lines = _cost_lines_from_sheet(row, columns)
    sheet_authored = _authored_from_sheet(row, columns)
    authored = ledger.authored_values() if ledger is not None else sheet_authored
    margin = _desired_margin(ledger, authored, config)

    unit_area = round_to_cents(to_decimal(height) * to_decimal(width))
    total_area = round_to_cents(unit_area * quantity)

    breakdown = build_breakdown(
        lines,
        margin=margin,
        bond_rate=to_decimal(config.bond_pct),
        regional_tax_rate=regional_tax_rate_for(options, config),
        total_area=total_area,
        authored=authored,
        screen_name=name,
    )

    audit = ScreenAudit(
        name=name,
        product_type=product_type,
        quantity=quantity,
        area_sqft=float(total_area),
        unit_area_sqft=float(unit_area),
        width_ft=width,
        height_ft=height,
        pixels_high=pixels_h,
        pixels_wide=pixels_w,
        pixel_resolution=pixels_h * pixels_w,
        pixel_matrix=f"{pixels_h} x {pixels_w} @ {pitch:g}mm",
        pitch_mm=pitch,
        breakdown=breakdown,
    )

    hardware = lines["hardware"]
    cost_per_sqft = (
        float(round_to_cents(hardware / total_area)) if hardware > ZERO and total_area > ZERO else None
    )
    screen_input = ScreenInput(
        name=name,
        product_type=product_type,
        width_ft=width,
        height_ft=height,
        quantity=quantity,
        pitch_mm=pitch,
        cost_per_sqft=cost_per_sqft,
        desired_margin=float(margin),
    )

    line_items = []
    if ledger is not None:
        line_items = [
            {
                "id": f"mi-{row_index}-{idx}",
                "category": item.label,
                "price": float(item.sell_price),
                "description": description,
            }
            for idx, item in enumerate(ledger.items)
            if item.sell_price > ZERO
        ]

    screen = {
        "name": name,
        "productType": product_type,
        "pitchMm": pitch,
        "heightFt": height,
        "widthFt": width,
        "quantity": quantity,
        "pixelsH": pixels_h,
        "pixelsW": pixels_w,
        "brightnessNits": brightness,
        "isHDR": _is_hdr(columns.hdr_value(row)),
        "description": description,
        "lineItems": line_items,
    }
    return ImportedRow(
        row_index=row_index,
        screen=screen,
        screen_input=screen_input,
        audit=audit,
        ledger_entry=ledger,
    )


# =============================================================================
# WORKBOOK ACCESS
# =============================================================================


def _read_rows(buffer: bytes, file_name: str) -> Dict[str, List[List[Any]]]:
    """Read every sheet of the workbook into lists of row values."""
    try:
        workbook = load_workbook(BytesIO(buffer), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as e:
        logger.error("workbook_unreadable", file_name=file_name, error=str(e))
        raise WorkbookReadError(f"Could not read workbook: {e}", file_name=file_name) from e

    try:
        return {
            sheet.title: [list(row) for row in sheet.iter_rows(values_only=True)]
            for sheet in workbook.worksheets
        }
    finally:
        workbook.close()


def _project_name(rows: List[List[Any]]) -> str:
    first = _text(rows[0][0]) if rows and rows[0] else ""
    if first.lower().startswith(PROJECT_NAME_PREFIX):
        return first[len(PROJECT_NAME_PREFIX):].strip() or DEFAULT_PROJECT_NAME
    return DEFAULT_PROJECT_NAME


def _import_exceptions(
    columns: ColumnMap,
    scan: SheetScan,
    ledger_entries: Sequence[LedgerEntry],
    app_settings: Settings,
) -> List[ReconciliationException]:
    """Flags raised while reading: schema drift, unmatched rows, block sums."""
    flags: List[ReconciliationException] = []

    if columns.resolution == ColumnResolution.HEADER_FALLBACK:
        flags.append(ReconciliationException(
            type=ExceptionType.SCHEMA_FALLBACK,
            severity=ExceptionSeverity.WARNING,
            message="Fixed column schema did not match headers; technical columns "
                    "were resolved by header text",
        ))
    elif not columns.anchors_agree:
        flags.append(ReconciliationException(
            type=ExceptionType.SCHEMA_MISMATCH,
            severity=ExceptionSeverity.ERROR,
            message="Fixed column schema did not match headers; strict mode kept "
                    "the fixed columns",
        ))

    if ledger_entries:
        for imported in scan.rows:
            if imported.ledger_entry is None:
                logger.info("ledger_row_unmatched", screen=imported.audit.name,
                            row_index=imported.row_index)
                flags.append(ReconciliationException(
                    type=ExceptionType.UNMATCHED_LEDGER_ROW,
                    severity=ExceptionSeverity.WARNING,
                    message=f"{imported.audit.name}: no matching ledger row; "
                            f"spreadsheet values kept",
                    screen_name=imported.audit.name,
                    row_index=imported.row_index,
                ))

    matched_ids = {id(r.ledger_entry) for r in scan.rows if r.ledger_entry is not None}
    for entry in ledger_entries:
        if id(entry) not in matched_ids:
            flags.append(ReconciliationException(
                type=ExceptionType.UNMATCHED_LEDGER_ROW,
                severity=ExceptionSeverity.INFO,
                message=f"Ledger row \"{entry.label}\" did not match any display",
                row_index=entry.row_index,
            ))

    threshold = to_decimal(app_settings.variance_threshold)
    for entry in ledger_entries:
        if entry.has_total_row and abs(entry.item_sell_sum - entry.sell_price) > threshold:
            flags.append(ReconciliationException(
                type=ExceptionType.LINE_ITEM_SUM_MISMATCH,
                severity=ExceptionSeverity.WARNING,
                message=f"{entry.label}: line items sum to ${float(entry.item_sell_sum):,.2f} "
                        f"but TOTAL row says ${float(entry.sell_price):,.2f}",
                screen_name=entry.label,
                row_index=entry.row_index,
                expected=float(entry.sell_price),
                actual=float(entry.item_sell_sum),
                variance=float(round_to_cents(entry.item_sell_sum - entry.sell_price)),
            ))
    return flags


# =============================================================================
# ENTRY POINT
# =============================================================================


def import_workbook(
    buffer: bytes,
    file_name: Optional[str] = None,
    options: Optional[AuditOptions] = None,
    config: PricingConfig = DEFAULT_PRICING,
    strict_schema: Optional[bool] = None,
    app_settings: Settings = default_settings,
) -> ImportResult:
    """Import an authored cost workbook in Mirror Mode.

    Args:
        buffer: Raw .xlsx bytes.
        file_name: Original file name, for control totals and errors.
        options: Project options used by the recomputation.
        config: Pricing rates.
        strict_schema: Disable the header-text column fallback (defaults to
            the IMPORT_STRICT_SCHEMA setting).
        app_settings: Match length and variance thresholds.

    Returns:
        ImportResult with formData, internalAudit, verificationManifest,
        exceptions and excelData.

    Raises:
        WorkbookReadError: If the buffer is not a readable workbook.
        MissingSheetError: If neither primary sheet name exists.
    """
    file_name = file_name or "unknown.xlsx"
    strict = app_settings.import_strict_schema if strict_schema is None else strict_schema
    config = config.with_options(options)

    sheets = _read_rows(buffer, file_name)
    primary_name = next((name for name in PRIMARY_SHEET_NAMES if name in sheets), None)
    if primary_name is None:
        logger.error("primary_sheet_missing", file_name=file_name, found=list(sheets))
        raise MissingSheetError(list(PRIMARY_SHEET_NAMES), list(sheets))

    led_rows = sheets[primary_name]
    ledger_rows = sheets.get(LEDGER_SHEET_NAME)
    ledger_entries = parse_ledger(ledger_rows) if ledger_rows is not None else []

    header_index = find_header_row(led_rows)
    headers = led_rows[header_index] if header_index < len(led_rows) else []
    columns = resolve_columns(headers, strict=strict)

    scan = SheetScan()
    for index in range(header_index + 1, len(led_rows)):
        row = led_rows[index]
        scan.row_count += 1
        name = _text(columns.value(row, "name"))
        reason = _skip_reason(
            name,
            coerce_number(columns.value(row, "pitch")),
            coerce_number(columns.value(row, "height")),
            coerce_number(columns.value(row, "width")),
        )
        if reason is not None:
            scan.skip(reason)
            continue
        scan.rows.append(
            _convert_row(index + 1, row, columns, ledger_entries, options, config, app_settings)
        )

    mirror_audit: InternalAudit = build_internal_audit([r.audit for r in scan.rows])
    calculated = calculate_proposal_audit([r.screen_input for r in scan.rows], options, config)

    matched_ids = {id(r.ledger_entry) for r in scan.rows if r.ledger_entry is not None}
    control_totals = ControlTotals(
        file_name=file_name,
        sheets_read=[primary_name] + ([LEDGER_SHEET_NAME] if ledger_rows is not None else []),
        primary_sheet=primary_name,
        ledger_sheet=LEDGER_SHEET_NAME if ledger_rows is not None else None,
        schema_version=columns.version,
        column_resolution=columns.resolution,
        header_row_index=header_index,
        row_count=scan.row_count,
        screen_count=len(scan.rows),
        skipped=dict(scan.skipped),
        ledger_entry_count=len(ledger_entries),
        ledger_matched=sum(1 for r in scan.rows if r.ledger_entry is not None),
        ledger_unmatched=[e.label for e in ledger_entries if id(e) not in matched_ids],
    )

    manifest = compute_manifest(
        control_totals,
        mirror_audit,
        calculated.internal_audit,
        row_indexes=[r.row_index for r in scan.rows],
        ledger_matched=[r.ledger_entry is not None for r in scan.rows],
        config=app_settings,
    )
    exceptions = _import_exceptions(columns, scan, ledger_entries, app_settings)
    exceptions.extend(detect_exceptions(manifest, mirror_audit, app_settings))

    client_summary = build_client_summary(mirror_audit.totals, config)
    form_data = {
        "receiver": {"name": _project_name(led_rows)},
        "details": {
            "proposalName": PROPOSAL_NAME,
            "screens": [r.screen for r in scan.rows],
            "internalAudit": mirror_audit.model_dump(by_alias=True),
            "clientSummary": client_summary.model_dump(by_alias=True),
            "mirrorMode": ledger_rows is not None,
        },
    }
    excel_data = {
        "sheetNames": list(sheets),
        "sheets": {
            name: [[_json_safe(cell) for cell in row] for row in rows]
            for name, rows in sheets.items()
        },
    }

    logger.info(
        "workbook_imported",
        file_name=file_name,
        primary_sheet=primary_name,
        screens=len(scan.rows),
        skipped=scan.skipped,
        ledger_matched=control_totals.ledger_matched,
        exceptions=len(exceptions),
    )
    return ImportResult(
        form_data=form_data,
        internal_audit=mirror_audit,
        verification_manifest=manifest,
        exceptions=exceptions,
        excel_data=excel_data,
    )
