"""Custom exceptions for Performance Insights."""

from typing import Any, Dict, List, Optional
from enum import Enum


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Error categories for classification."""
    DATA = "data"
    VALIDATION = "validation"
    COLLABORATOR = "collaborator"
    COMPUTATION = "computation"
    CONFIGURATION = "configuration"


class PerformanceInsightsException(Exception):
    """Base exception for Performance Insights."""

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.user_message = user_message or self._generate_user_message()
        self.recoverable = recoverable

    def _generate_user_message(self) -> str:
        """Generate user-friendly error message."""
        if self.category == ErrorCategory.DATA:
            return "Not enough study data yet. Keep practicing to unlock detailed analysis."
        elif self.category == ErrorCategory.VALIDATION:
            return "Some study data could not be read and was treated as empty."
        elif self.category == ErrorCategory.COLLABORATOR:
            return "Some optional insights are temporarily unavailable."
        elif self.category == ErrorCategory.COMPUTATION:
            return "We couldn't analyze your performance right now. Please try again shortly."
        else:
            return "Something went wrong. Please try again."

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and host responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class InsufficientDataException(PerformanceInsightsException):
    """Raised when the record store holds too little data for analysis."""

    def __init__(
        self,
        sessions: int,
        assessments: int,
        unmet: List[str],
        **kwargs
    ):
        super().__init__(
            message=f"Insufficient data: {', '.join(unmet)}",
            error_code="INSUFFICIENT_DATA",
            category=ErrorCategory.DATA,
            severity=ErrorSeverity.LOW,
            **kwargs
        )
        self.details.update({
            "sessions": sessions,
            "assessments": assessments,
            "unmet": unmet,
        })


class CollaboratorUnavailableException(PerformanceInsightsException):
    """Raised when an optional collaborator is missing or failing."""

    def __init__(self, collaborator: str, reason: Optional[str] = None, **kwargs):
        super().__init__(
            message=f"Collaborator {collaborator} unavailable" + (f": {reason}" if reason else ""),
            error_code="COLLABORATOR_UNAVAILABLE",
            category=ErrorCategory.COLLABORATOR,
            severity=ErrorSeverity.LOW,
            **kwargs
        )
        self.details["collaborator"] = collaborator
        if reason:
            self.details["reason"] = reason


class MalformedRecordException(PerformanceInsightsException):
    """Raised when a record payload cannot be interpreted at all."""

    def __init__(self, record_type: str, payload: Any = None, **kwargs):
        super().__init__(
            message=f"Malformed {record_type} record",
            error_code="MALFORMED_RECORD",
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.details["record_type"] = record_type
        if payload is not None:
            self.details["payload_type"] = type(payload).__name__


class ComputationException(PerformanceInsightsException):
    """Raised when an analysis produces an unusable result."""

    def __init__(self, operation: str, reason: str, **kwargs):
        super().__init__(
            message=f"Computation failed in {operation}: {reason}",
            error_code="COMPUTATION_FAILED",
            category=ErrorCategory.COMPUTATION,
            severity=ErrorSeverity.HIGH,
            recoverable=False,
            **kwargs
        )
        self.details["operation"] = operation
        self.details["reason"] = reason
