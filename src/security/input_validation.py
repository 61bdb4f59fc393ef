"""
Input Validation for Query Understanding

Structural checks on caller input. Each failure raises a distinct, named
error that callers map to a client error:
- Empty query / empty patient ID
- Query over the length cap
- Inverted date ranges and invalid character spans passed explicitly

Semantic ambiguity (no intent, no temporal phrase, unknown terms) is never
validated here; those cases degrade to defaults inside the parsers.
"""

import logging
import os
import re
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = int(os.environ.get("MAX_QUERY_LENGTH", "1000"))

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


# ============================================
# Errors
# ============================================


class ErrorCode(str, Enum):
    """Machine-readable codes for structural input errors."""

    EMPTY_QUERY = "EMPTY_QUERY"
    EMPTY_PATIENT_ID = "EMPTY_PATIENT_ID"
    QUERY_TOO_LONG = "QUERY_TOO_LONG"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_SPAN = "INVALID_SPAN"


class QueryValidationError(ValueError):
    """Raised when caller input is structurally invalid."""

    code: ErrorCode

    def __init__(self, message: str, code: ErrorCode):
        super().__init__(message)
        self.code = code


class EmptyQueryError(QueryValidationError):
    def __init__(self) -> None:
        super().__init__("Query cannot be empty", ErrorCode.EMPTY_QUERY)


class EmptyPatientIdError(QueryValidationError):
    def __init__(self) -> None:
        super().__init__("Patient ID cannot be empty", ErrorCode.EMPTY_PATIENT_ID)


class QueryTooLongError(QueryValidationError):
    def __init__(self, length: int, limit: int = MAX_QUERY_LENGTH):
        super().__init__(
            f"Query is too long ({length} characters, max {limit})",
            ErrorCode.QUERY_TOO_LONG,
        )
        self.length = length
        self.limit = limit


class InvalidDateRangeError(QueryValidationError):
    def __init__(self, date_from: datetime, date_to: datetime):
        super().__init__(
            f"date_from ({date_from.isoformat()}) must not be after "
            f"date_to ({date_to.isoformat()})",
            ErrorCode.INVALID_DATE_RANGE,
        )


class InvalidSpanError(QueryValidationError):
    def __init__(self, start: int, end: int):
        super().__init__(
            f"Invalid character span [{start}, {end})", ErrorCode.INVALID_SPAN
        )


# ============================================
# Validator
# ============================================


class InputValidator:
    """Validates and sanitizes query input before parsing."""

    def __init__(self, max_query_length: int = MAX_QUERY_LENGTH):
        self.max_query_length = max_query_length

    def validate(self, query: str | None, patient_id: str | None) -> None:
        """Check query and patient ID, in order. Raises on the first failure."""
        if query is None or not query.strip():
            raise EmptyQueryError()
        if patient_id is None or not patient_id.strip():
            raise EmptyPatientIdError()
        length = len(query.strip())
        if length > self.max_query_length:
            logger.warning(
                "Rejected query of %d characters (limit %d)",
                length,
                self.max_query_length,
            )
            raise QueryTooLongError(length, self.max_query_length)

    def check_date_range(self, date_from: datetime, date_to: datetime) -> None:
        """Raise if an explicitly supplied range is inverted."""
        if date_from > date_to:
            raise InvalidDateRangeError(date_from, date_to)

    def check_span(self, start: int, end: int) -> None:
        """Raise if a character span is negative or empty."""
        if start < 0 or end <= start:
            raise InvalidSpanError(start, end)

    def sanitize(self, text: str) -> str:
        """Strip control characters and collapse runs of whitespace."""
        text = _CONTROL_CHARS.sub("", text)
        return _WHITESPACE.sub(" ", text).strip()
