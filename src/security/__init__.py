"""
Query Input Security Module

Security components:
- Structural input validation with named error codes
- Query text sanitization
"""

from src.security.input_validation import (
    EmptyPatientIdError,
    EmptyQueryError,
    ErrorCode,
    InputValidator,
    InvalidDateRangeError,
    InvalidSpanError,
    QueryTooLongError,
    QueryValidationError,
)

__all__ = [
    "EmptyPatientIdError",
    "EmptyQueryError",
    "ErrorCode",
    "InputValidator",
    "InvalidDateRangeError",
    "InvalidSpanError",
    "QueryTooLongError",
    "QueryValidationError",
]
