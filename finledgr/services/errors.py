"""
finledgr Error Handling

Specific error types with user-friendly messages and debugging context.
"""
from typing import Optional, Dict, Any
from fastapi import HTTPException
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for client handling."""
    # Input errors (400s)
    INVALID_PATTERN = "INVALID_PATTERN"

    # Auth errors (401/403)
    MISSING_USER_CONTEXT = "MISSING_USER_CONTEXT"

    # Lookup errors (404)
    PATTERN_NOT_FOUND = "PATTERN_NOT_FOUND"

    # Conflict errors (409)
    PATTERN_CONFLICT = "PATTERN_CONFLICT"

    # Storage errors (500s)
    DATABASE_ERROR = "DATABASE_ERROR"


class FinledgrError(Exception):
    """Base exception with structured error info."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.detail = detail
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        result = {
            "error": self.code.value,
            "message": self.message
        }
        if self.detail:
            result["detail"] = self.detail
        if self.context:
            result["context"] = self.context
        return result


class InvalidPatternError(FinledgrError):
    """Pattern text is not a valid regular expression."""

    def __init__(self, pattern: str, detail: str):
        super().__init__(
            code=ErrorCode.INVALID_PATTERN,
            message="Invalid regular expression pattern",
            detail=detail,
            context={"pattern": pattern}
        )


class MissingUserContextError(FinledgrError):
    """Operation needs an authenticated user and none was supplied."""

    def __init__(self, operation: str):
        super().__init__(
            code=ErrorCode.MISSING_USER_CONTEXT,
            message="User not authenticated",
            detail=f"'{operation}' requires a user id",
            context={"operation": operation}
        )


class PatternNotFoundError(FinledgrError):
    """Pattern id does not exist for this user."""

    def __init__(self, pattern_id: str):
        super().__init__(
            code=ErrorCode.PATTERN_NOT_FOUND,
            message=f"Pattern not found: {pattern_id}",
            context={"pattern_id": pattern_id}
        )


class PatternConflictError(FinledgrError):
    """User already has a pattern with this text."""

    def __init__(self, pattern: str):
        super().__init__(
            code=ErrorCode.PATTERN_CONFLICT,
            message="Pattern already exists",
            detail=f"Another pattern already uses '{pattern}'",
            context={"pattern": pattern}
        )


class PatternStoreError(FinledgrError):
    """Error reading or writing the pattern store."""

    def __init__(self, operation: str, detail: str):
        super().__init__(
            code=ErrorCode.DATABASE_ERROR,
            message=f"Pattern store {operation} failed",
            detail=detail,
            context={"operation": operation}
        )


STATUS_MAP = {
    ErrorCode.INVALID_PATTERN: 400,
    ErrorCode.MISSING_USER_CONTEXT: 401,
    ErrorCode.PATTERN_NOT_FOUND: 404,
    ErrorCode.PATTERN_CONFLICT: 409,
    ErrorCode.DATABASE_ERROR: 500,
}


def to_http_exception(error: FinledgrError) -> HTTPException:
    """Convert FinledgrError to HTTPException."""
    return HTTPException(
        status_code=STATUS_MAP.get(error.code, 500),
        detail=error.to_dict()
    )
