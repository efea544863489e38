"""
Exception hierarchy for the bundle summarization engine.

- MissingDataError: the bundle lacks its type marker or its entry array
- BundleParseError: invalid JSON, or a top-level type other than "Bundle"
- TimelineOtherError: reserved for callers; never raised by the engine

Per-field extraction problems are never raised: an absent field is a
legitimate value and handlers simply emit nothing.
"""

from typing import Any, Dict, Optional


class TimelineError(Exception):
    """Base exception for all summarization errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        """
        Args:
            message: Human-readable error message
            error_code: Machine-readable error code for categorization
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "TIMELINE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class MissingDataError(TimelineError):
    """Raised when the input lacks the minimum bundle structure."""

    def __init__(self, message: str = "Input is missing the minimum required bundle data",
                 field: Optional[str] = None, **kwargs):
        details = kwargs.get("details", {})
        if field:
            details["field"] = field
        super().__init__(message=message, error_code="MISSING_DATA", details=details)


class BundleParseError(TimelineError):
    """Raised when the input cannot be read as a bundle."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=f"Unable to read bundle: {message}",
            error_code="PARSE",
            details=kwargs.get("details", {}),
        )


class TimelineOtherError(TimelineError):
    """Caller-defined failure wrapped in the timeline error vocabulary."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=f"Other error: {message}",
            error_code="OTHER",
            details=kwargs.get("details", {}),
        )
