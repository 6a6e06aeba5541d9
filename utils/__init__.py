"""Utility modules for the proposal audit engine."""

from utils.audit_logger import (
    format_proposal_audit,
    format_import_summary,
    log_proposal_audit,
    log_import_summary,
)

__all__ = [
    "format_proposal_audit",
    "format_import_summary",
    "log_proposal_audit",
    "log_import_summary",
]
