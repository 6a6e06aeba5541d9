"""Audit Summary Logger for the proposal audit engine.

Prints banner-style summaries of a priced proposal and of a workbook import
so they stand out in a terminal, and mirrors the key figures to structlog.
"""

from typing import Any, Dict, List, Optional

import structlog

from models.audit import ProposalAudit
from models.verification import ImportResult

logger = structlog.get_logger(__name__)

# Visual markers for different summary types
BANNER_WIDTH = 80
PROPOSAL_BANNER_CHAR = "█"
SCREEN_BANNER_CHAR = "─"
IMPORT_BANNER_CHAR = "═"
EXCEPTION_BANNER_CHAR = "!"


def _create_banner(char: str, text: str, width: int = BANNER_WIDTH) -> str:
    """Create a centered banner with given character."""
    text_with_spaces = f" {text} "
    padding = (width - len(text_with_spaces)) // 2
    return char * padding + text_with_spaces + char * (width - padding - len(text_with_spaces))


def _money(value: float) -> str:
    return f"${value:,.2f}"


def format_proposal_audit(audit: ProposalAudit, title: Optional[str] = None) -> List[str]:
    """Render a proposal audit as banner lines."""
    summary = audit.client_summary
    internal = audit.internal_audit
    totals = internal.totals

    lines = [
        PROPOSAL_BANNER_CHAR * BANNER_WIDTH,
        _create_banner(PROPOSAL_BANNER_CHAR, title or "PROPOSAL AUDIT"),
        PROPOSAL_BANNER_CHAR * BANNER_WIDTH,
    ]
    for screen in internal.per_screen:
        b = screen.breakdown
        lines.append(_create_banner(SCREEN_BANNER_CHAR, screen.name))
        lines.append(f"║ Area        : {screen.area_sqft:,.2f} sqft ({screen.quantity} x "
                     f"{screen.width_ft:g}ft x {screen.height_ft:g}ft)")
        lines.append(f"║ Resolution  : {screen.pixel_matrix}")
        lines.append(f"║ Total Cost  : {_money(b.total_cost)}")
        lines.append(f"║ Sell Price  : {_money(b.sell_price)} "
                     f"(margin {_money(b.anc_margin)}, {b.effective_margin:.1%})")
        lines.append(f"║ Bond        : {_money(b.bond_cost)}")
        if b.regional_tax_cost:
            lines.append(f"║ Regional Tax: {_money(b.regional_tax_cost)}")
        lines.append(f"║ Final Total : {_money(b.final_client_total)} "
                     f"({_money(b.selling_price_per_sqft)}/sqft)")

    lines.append(PROPOSAL_BANNER_CHAR * BANNER_WIDTH)
    lines.append(f"║ Displays        : {len(internal.per_screen)}")
    lines.append(f"║ Total Area      : {internal.total_area_sqft:,.2f} sqft")
    lines.append(f"║ Total Cost      : {_money(totals.total_cost)}")
    lines.append(f"║ Subtotal        : {_money(summary.subtotal)}")
    lines.append(f"║ Sales Tax       : {_money(summary.tax_amount)} ({summary.tax_rate:.2%})")
    lines.append(f"║ Client Total    : {_money(summary.total)}")
    lines.append(PROPOSAL_BANNER_CHAR * BANNER_WIDTH)
    return lines


def log_proposal_audit(audit: ProposalAudit, title: Optional[str] = None) -> None:
    """Print the proposal banner and log its headline figures."""
    print("\n")
    for line in format_proposal_audit(audit, title):
        print(line)
    print("\n")

    logger.info(
        "proposal_audit_logged",
        displays=len(audit.internal_audit.per_screen),
        subtotal=audit.client_summary.subtotal,
        total=audit.client_summary.total,
    )


def format_import_summary(result: ImportResult) -> List[str]:
    """Render an import's control totals, verdict and flags as banner lines."""
    manifest = result.verification_manifest
    controls = manifest.control_totals
    verdict = manifest.reconciliation
    skipped: Dict[str, Any] = controls.skipped

    lines = [
        IMPORT_BANNER_CHAR * BANNER_WIDTH,
        _create_banner(IMPORT_BANNER_CHAR, f"IMPORT: {controls.file_name}"),
        IMPORT_BANNER_CHAR * BANNER_WIDTH,
        f"║ Sheets Read     : {', '.join(controls.sheets_read)}",
        f"║ Schema          : {controls.schema_version} ({controls.column_resolution})",
        f"║ Rows Scanned    : {controls.row_count}",
        f"║ Displays        : {controls.screen_count}",
        f"║ Skipped         : {controls.skipped_total}"
        + (f" ({', '.join(f'{k}={v}' for k, v in sorted(skipped.items()))})" if skipped else ""),
        f"║ Ledger Matched  : {controls.ledger_matched}/{controls.ledger_entry_count}",
        f"║ Mirror Total    : {_money(verdict.source_final_total)}",
        f"║ Recalculated    : {_money(verdict.calculated_final_total)}",
        f"║ Verdict         : {verdict.match_type} (variance {_money(verdict.variance)})",
        IMPORT_BANNER_CHAR * BANNER_WIDTH,
    ]
    if result.exceptions:
        lines.append(_create_banner(EXCEPTION_BANNER_CHAR, f"{len(result.exceptions)} FLAG(S)"))
        for flag in result.exceptions:
            lines.append(f"║ [{flag.severity}] {flag.type}: {flag.message}")
        lines.append(EXCEPTION_BANNER_CHAR * BANNER_WIDTH)
    return lines


def log_import_summary(result: ImportResult) -> None:
    """Print the import banner and log the reconciliation verdict."""
    print("\n")
    for line in format_import_summary(result):
        print(line)
    print("\n")

    manifest = result.verification_manifest
    logger.info(
        "import_summary_logged",
        file_name=manifest.control_totals.file_name,
        screens=manifest.control_totals.screen_count,
        match_type=manifest.reconciliation.match_type,
        exceptions=len(result.exceptions),
    )
