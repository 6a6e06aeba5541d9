"""
Price a proposal from JSON, or import an authored cost workbook, and print the audit.

Usage:
  # Intelligence Mode: price displays from a JSON proposal
  python scripts/price_proposal.py --proposal proposal.json --out audit.json --xlsx audit.xlsx

  # Mirror Mode: import a cost workbook and verify it
  python scripts/price_proposal.py --workbook "Project Cost.xlsx" --venue "Milan Puskar Stadium"

Proposal JSON shape:
  {"screens": [{"name": "Main Scoreboard", "widthFt": 20, "heightFt": 10, ...}],
   "options": {"taxRate": 0.095, "structuralTonnage": 2}}
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

# Scripts run from the repository root without an install.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config.errors import ProposalAuditError, ValidationError  # noqa: E402
from config.settings import settings  # noqa: E402
from models.screen import AuditOptions, ScreenInput  # noqa: E402
from services.audit_export_service import export_audit_workbook  # noqa: E402
from services.excel_import_service import import_workbook  # noqa: E402
from services.proposal_aggregator import calculate_proposal_audit  # noqa: E402
from utils.audit_logger import log_import_summary, log_proposal_audit  # noqa: E402


def _configure_logging() -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def _options(payload: Dict[str, Any], args: argparse.Namespace) -> AuditOptions:
    """Proposal options with command-line overrides applied."""
    data = dict(payload)
    for key, value in (
        ("taxRate", args.tax_rate),
        ("bondPct", args.bond_pct),
        ("structuralTonnage", args.structural_tonnage),
        ("reinforcingTonnage", args.reinforcing_tonnage),
        ("projectAddress", args.address),
        ("venue", args.venue),
    ):
        if value is not None:
            data[key] = value
    return AuditOptions.model_validate(data)


def _screens(payload: Dict[str, Any]) -> List[ScreenInput]:
    """Validate the proposal's display list."""
    raw = payload.get("screens")
    if not isinstance(raw, list):
        raise ValidationError('Proposal JSON must contain a "screens" list', field="screens")
    screens = []
    for index, item in enumerate(raw):
        try:
            screens.append(ScreenInput.model_validate(item))
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid display at index {index}",
                field=f"screens[{index}]",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e
    return screens


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Price an LED display proposal")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--proposal", help="Proposal JSON file ({screens, options})")
    source.add_argument("--workbook", help="Authored cost workbook (.xlsx) to import")
    parser.add_argument("--out", required=False, help="Write the audit JSON here (default: stdout)")
    parser.add_argument("--xlsx", required=False, help="Write the formula audit workbook here")
    parser.add_argument("--tax-rate", type=float, help="Project sales tax rate override")
    parser.add_argument("--bond-pct", type=float, help="Bond rate override")
    parser.add_argument("--structural-tonnage", type=float, help="Structural steel tons")
    parser.add_argument("--reinforcing-tonnage", type=float, help="Reinforcing steel tons")
    parser.add_argument("--address", help="Project address")
    parser.add_argument("--venue", help="Venue name")
    parser.add_argument("--strict-schema", action="store_true",
                        help="Disable header-text column fallback on import")
    parser.add_argument("--quiet", action="store_true", help="Skip the banner summary")
    args = parser.parse_args(argv)

    try:
        if args.proposal:
            with open(args.proposal, "r", encoding="utf-8") as f:
                payload = json.load(f)
            options = _options(payload.get("options") or {}, args)
            screens = _screens(payload)
            audit = calculate_proposal_audit(screens, options)
            if not args.quiet:
                log_proposal_audit(audit)
            output = audit.to_dict()
        else:
            options = _options({}, args)
            with open(args.workbook, "rb") as f:
                buffer = f.read()
            result = import_workbook(
                buffer,
                file_name=os.path.basename(args.workbook),
                options=options,
                strict_schema=True if args.strict_schema else None,
            )
            if not args.quiet:
                log_import_summary(result)
            output = result.to_dict()
            audit = None
    except ProposalAuditError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2

    if args.xlsx:
        if audit is None:
            print("--xlsx is only supported with --proposal", file=sys.stderr)
            return 1
        with open(args.xlsx, "wb") as f:
            f.write(export_audit_workbook(audit, options))
        print(f"Wrote {args.xlsx}", file=sys.stderr)

    text = json.dumps(output, indent=2, sort_keys=True)
    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"Wrote {args.out}", file=sys.stderr)
    else:
        print(text)
    return 0


if __name__ == "__main__":
    _configure_logging()
    raise SystemExit(main())
