"""Proposal audit configuration.

This package contains:
- settings: Environment variables and runtime knobs
- pricing: Rate/fee constants for the calculator and aggregator
- errors: Custom exceptions and error codes
"""

from config.settings import settings
from config.pricing import PricingConfig, DEFAULT_PRICING
from config.errors import (
    ProposalAuditError,
    InvalidMarginError,
    MissingSheetError,
    WorkbookReadError,
)

__all__ = [
    "settings",
    "PricingConfig",
    "DEFAULT_PRICING",
    "ProposalAuditError",
    "InvalidMarginError",
    "MissingSheetError",
    "WorkbookReadError",
]
