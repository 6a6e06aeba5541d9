"""Proposal audit error handling.

Custom exceptions and error codes for the pricing engine and the
spreadsheet reconciliation importer.
"""

from typing import Optional, Dict, Any, List


# Error Codes
class ErrorCode:
    """Error code constants."""

    # Validation Errors (1xxx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FIELD = "INVALID_FIELD"

    # Calculation Errors (2xxx)
    INVALID_MARGIN = "INVALID_MARGIN"

    # Import Errors (3xxx)
    MISSING_SHEET = "MISSING_SHEET"
    WORKBOOK_UNREADABLE = "WORKBOOK_UNREADABLE"


class ProposalAuditError(Exception):
    """Base exception for proposal audit errors.

    Provides structured error information for callers.

    Attributes:
        code: Error code from ErrorCode constants
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Initialize ProposalAuditError.

        Args:
            code: Error code from ErrorCode constants
            message: Human-readable error message
            details: Additional error context
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response.

        Returns:
            Dictionary with code, message, and details.
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }

    def __repr__(self) -> str:
        return f"ProposalAuditError(code={self.code!r}, message={self.message!r})"


class ValidationError(ProposalAuditError):
    """Validation-specific error."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details={**(details or {}), "field": field} if field else details
        )


class InvalidMarginError(ProposalAuditError):
    """Desired margin at or above 100%.

    The divisor model (cost / (1 - margin)) is undefined there, so the
    proposal must not be priced.
    """

    def __init__(self, margin: float, screen_name: Optional[str] = None):
        super().__init__(
            code=ErrorCode.INVALID_MARGIN,
            message=(
                f"Invalid margin: {margin * 100:g}%. Margin must be less than "
                f"100% for the divisor margin model."
            ),
            details={"margin": margin, "screen_name": screen_name}
        )
        self.margin = margin
        self.screen_name = screen_name


class MissingSheetError(ProposalAuditError):
    """Workbook lacks the primary technical sheet."""

    def __init__(self, expected: List[str], found: List[str]):
        super().__init__(
            code=ErrorCode.MISSING_SHEET,
            message=(
                "Sheet " + " or ".join(f'"{name}"' for name in expected) + " not found"
            ),
            details={"expected": expected, "found": found}
        )
        self.expected = expected
        self.found = found


class WorkbookReadError(ProposalAuditError):
    """Buffer could not be opened as a workbook."""

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(
            code=ErrorCode.WORKBOOK_UNREADABLE,
            message=message,
            details={"file_name": file_name}
        )
        self.file_name = file_name
