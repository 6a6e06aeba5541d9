"""Audit Export Service.

Writes a proposal audit to an .xlsx workbook with live formulas, so a
reviewer can change any input cell and watch the same cascade the engine
computes: cost lines -> total cost -> margin divisor -> bond -> regional
tax -> display total -> sales tax -> grand total.

Layout (sheet "Audit"): one column per display, one row per figure, and a
project block underneath the display rows.
"""

from __future__ import annotations

from io import BytesIO
from typing import Dict, Optional

import structlog
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config.pricing import DEFAULT_PRICING, PricingConfig
from models.audit import COST_LINE_FIELDS, ProposalAudit
from models.screen import AuditOptions
from services.audit_calculator import back_solved_margin, regional_tax_rate_for

logger = structlog.get_logger(__name__)

SHEET_TITLE = "Audit"
LABEL_COLUMN = 1
FIRST_DISPLAY_COLUMN = 2

LINE_LABELS: Dict[str, str] = {
    "hardware": "Hardware",
    "structure": "Structure",
    "install": "Install",
    "labor": "Labor",
    "power": "Power",
    "shipping": "Shipping",
    "pm": "Project Management",
    "general_conditions": "General Conditions",
    "travel": "Travel",
    "submittals": "Submittals",
    "engineering": "Engineering",
    "permits": "Permits",
    "cms": "CMS",
    "demolition": "Demolition",
}

# Fixed row positions
ROW_TITLE = 1
ROW_DISPLAY = 3
ROW_AREA = 4
ROW_FIRST_LINE = 5
ROW_LAST_LINE = ROW_FIRST_LINE + len(COST_LINE_FIELDS) - 1
ROW_TOTAL_COST = ROW_LAST_LINE + 1
ROW_MARGIN = ROW_TOTAL_COST + 1
ROW_SELL = ROW_MARGIN + 1
ROW_BOND_RATE = ROW_SELL + 1
ROW_BOND = ROW_BOND_RATE + 1
ROW_REGIONAL_RATE = ROW_BOND + 1
ROW_REGIONAL_TAX = ROW_REGIONAL_RATE + 1
ROW_DISPLAY_TOTAL = ROW_REGIONAL_TAX + 1
ROW_PER_SQFT = ROW_DISPLAY_TOTAL + 1
ROW_SUBTOTAL = ROW_PER_SQFT + 2
ROW_SALES_TAX_RATE = ROW_SUBTOTAL + 1
ROW_SALES_TAX = ROW_SALES_TAX_RATE + 1
ROW_GRAND_TOTAL = ROW_SALES_TAX + 1


# ==================== STYLE DEFINITIONS ====================
def _define_styles() -> Dict[str, object]:
    thin = Side(style="thin")
    return {
        "title_font": Font(size=14, bold=True, color="FFFFFF"),
        "title_fill": PatternFill(start_color="2563EB", end_color="2563EB", fill_type="solid"),
        "header_fill": PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid"),
        "input_fill": PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid"),
        "header_font": Font(bold=True, color="FFFFFF"),
        "bold_font": Font(bold=True),
        "thin_border": Border(left=thin, right=thin, top=thin, bottom=thin),
        "currency_format": "$#,##0.00",
        "percent_format": "0.00%",
    }


def _label_rows() -> Dict[int, str]:
    rows = {
        ROW_DISPLAY: "Display",
        ROW_AREA: "Area (sqft)",
        ROW_TOTAL_COST: "Total Cost",
        ROW_MARGIN: "Margin",
        ROW_SELL: "Sell Price",
        ROW_BOND_RATE: "Bond Rate",
        ROW_BOND: "Bond",
        ROW_REGIONAL_RATE: "Regional Tax Rate",
        ROW_REGIONAL_TAX: "Regional Tax",
        ROW_DISPLAY_TOTAL: "Display Total",
        ROW_PER_SQFT: "Price per sqft",
    }
    for offset, name in enumerate(COST_LINE_FIELDS):
        rows[ROW_FIRST_LINE + offset] = LINE_LABELS[name]
    return rows


def build_audit_workbook(
    proposal_audit: ProposalAudit,
    options: Optional[AuditOptions] = None,
    config: PricingConfig = DEFAULT_PRICING,
) -> Workbook:
    """Build the formula workbook for a proposal audit.

    Args:
        proposal_audit: Engine output to export.
        options: Options used for the calculation (bond/tax/location).
        config: Pricing rates used for the calculation.

    Returns:
        openpyxl Workbook with input cells and formula cells.
    """
    config = config.with_options(options)
    styles = _define_styles()
    regional_rate = float(regional_tax_rate_for(options, config))
    per_screen = proposal_audit.internal_audit.per_screen

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE

    title = sheet.cell(row=ROW_TITLE, column=LABEL_COLUMN, value="Proposal Audit")
    title.font, title.fill = styles["title_font"], styles["title_fill"]

    for row, label in _label_rows().items():
        sheet.cell(row=row, column=LABEL_COLUMN, value=label).font = styles["bold_font"]
    sheet.column_dimensions[get_column_letter(LABEL_COLUMN)].width = 24

    def put_input(row: int, column: int, value: float, number_format: str) -> None:
        cell = sheet.cell(row=row, column=column, value=value)
        cell.fill = styles["input_fill"]
        cell.number_format = number_format
        cell.border = styles["thin_border"]

    def put_formula(row: int, column: int, formula: str, number_format: str) -> None:
        cell = sheet.cell(row=row, column=column, value=formula)
        cell.number_format = number_format
        cell.border = styles["thin_border"]

    currency, percent = styles["currency_format"], styles["percent_format"]
    for offset, screen in enumerate(per_screen):
        column = FIRST_DISPLAY_COLUMN + offset
        c = get_column_letter(column)
        breakdown = screen.breakdown

        header = sheet.cell(row=ROW_DISPLAY, column=column, value=screen.name)
        header.font, header.fill = styles["header_font"], styles["header_fill"]
        header.alignment = Alignment(horizontal="center", wrap_text=True)
        sheet.column_dimensions[c].width = 18

        put_input(ROW_AREA, column, screen.area_sqft, "#,##0.00")
        for line_offset, name in enumerate(COST_LINE_FIELDS):
            put_input(ROW_FIRST_LINE + line_offset, column, getattr(breakdown, name), currency)

        put_formula(ROW_TOTAL_COST, column,
                    f"=SUM({c}{ROW_FIRST_LINE}:{c}{ROW_LAST_LINE})", currency)
        put_input(ROW_MARGIN, column, float(back_solved_margin(breakdown)), percent)
        put_formula(ROW_SELL, column,
                    f"=ROUND({c}{ROW_TOTAL_COST}/(1-{c}{ROW_MARGIN}),2)", currency)
        put_input(ROW_BOND_RATE, column, config.bond_pct, percent)
        put_formula(ROW_BOND, column, f"=ROUND({c}{ROW_SELL}*{c}{ROW_BOND_RATE},2)", currency)
        put_input(ROW_REGIONAL_RATE, column, regional_rate, percent)
        put_formula(ROW_REGIONAL_TAX, column,
                    f"=ROUND(({c}{ROW_SELL}+{c}{ROW_BOND})*{c}{ROW_REGIONAL_RATE},2)", currency)
        put_formula(ROW_DISPLAY_TOTAL, column,
                    f"={c}{ROW_SELL}+{c}{ROW_BOND}+{c}{ROW_REGIONAL_TAX}", currency)
        put_formula(ROW_PER_SQFT, column,
                    f"=IF({c}{ROW_AREA}>0,ROUND({c}{ROW_DISPLAY_TOTAL}/{c}{ROW_AREA},2),0)",
                    currency)

    # Project block
    first = get_column_letter(FIRST_DISPLAY_COLUMN)
    last = get_column_letter(max(FIRST_DISPLAY_COLUMN, FIRST_DISPLAY_COLUMN + len(per_screen) - 1))
    value_column = FIRST_DISPLAY_COLUMN
    v = get_column_letter(value_column)

    for row, label in (
        (ROW_SUBTOTAL, "Subtotal"),
        (ROW_SALES_TAX_RATE, "Sales Tax Rate"),
        (ROW_SALES_TAX, "Sales Tax"),
        (ROW_GRAND_TOTAL, "Grand Total"),
    ):
        sheet.cell(row=row, column=LABEL_COLUMN, value=label).font = styles["bold_font"]

    put_formula(ROW_SUBTOTAL, value_column,
                f"=SUM({first}{ROW_DISPLAY_TOTAL}:{last}{ROW_DISPLAY_TOTAL})", currency)
    put_input(ROW_SALES_TAX_RATE, value_column, config.sales_tax_rate, percent)
    put_formula(ROW_SALES_TAX, value_column,
                f"=ROUND({v}{ROW_SUBTOTAL}*{v}{ROW_SALES_TAX_RATE},2)", currency)
    put_formula(ROW_GRAND_TOTAL, value_column,
                f"={v}{ROW_SUBTOTAL}+{v}{ROW_SALES_TAX}", currency)
    sheet.cell(row=ROW_GRAND_TOTAL, column=value_column).font = styles["bold_font"]

    sheet.freeze_panes = sheet.cell(row=ROW_AREA, column=FIRST_DISPLAY_COLUMN)
    logger.info("audit_workbook_built", displays=len(per_screen))
    return workbook


def export_audit_workbook(
    proposal_audit: ProposalAudit,
    options: Optional[AuditOptions] = None,
    config: PricingConfig = DEFAULT_PRICING,
) -> bytes:
    """Build the formula workbook and return it as .xlsx bytes."""
    workbook = build_audit_workbook(proposal_audit, options, config)
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
