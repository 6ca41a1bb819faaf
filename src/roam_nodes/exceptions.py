"""Custom exceptions for roam-nodes.

Provides a structured exception hierarchy with error codes and
machine-readable error information for the retrieval pipeline.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Retrieval errors (1xxx)
    RETRIEVAL_FAILED = 1001
    STORE_UNREACHABLE = 1002

    # Decode errors (2xxx)
    DECODE_FAILED = 2001
    DECODE_MALFORMED_LIST = 2002

    # Format errors (3xxx)
    FORMAT_FAILED = 3001
    FORMAT_CALLBACK_FAILED = 3002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    TEMPLATE_INVALID = 6002


class RoamError(Exception):
    """Base exception for all roam-nodes errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RETRIEVAL_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class RetrievalError(RoamError):
    """Raised when the aggregating node query cannot be executed.

    Covers an unreachable store, a malformed query and schema mismatches.
    No partial results accompany this error.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RETRIEVAL_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.original_error = original_error


class DecodeError(RoamError):
    """Raised when an aggregated row cannot be decoded into nodes."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        column: Optional[str] = None,
        code: ErrorCode = ErrorCode.DECODE_FAILED
    ):
        details = {}
        if node_id:
            details["node_id"] = node_id
        if column:
            details["column"] = column

        super().__init__(message, code=code, details=details)
        self.node_id = node_id
        self.column = column


class FormatError(RoamError):
    """Raised when a node cannot be turned into a display label.

    The whole candidate list is abandoned; the offending node is named
    so the caller can report it.
    """

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        field: Optional[str] = None,
        code: ErrorCode = ErrorCode.FORMAT_FAILED
    ):
        details = {}
        if node_id:
            details["node_id"] = node_id
        if field:
            details["field"] = field

        super().__init__(message, code=code, details=details)
        self.node_id = node_id
        self.field = field


class ConfigurationError(RoamError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
