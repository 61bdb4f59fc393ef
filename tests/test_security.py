"""
Tests for Query Input Validation

Structural checks, error codes and sanitization.
"""

from datetime import datetime, timezone

import pytest

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


@pytest.fixture
def validator():
    return InputValidator()


class TestInputValidator:
    """Tests for query and patient ID checks."""

    @pytest.mark.unit
    def test_valid_input(self, validator):
        validator.validate("What medications is the patient taking?", "patient-1")

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "query,patient_id,error",
        [
            (None, "patient-1", EmptyQueryError),
            ("\n\t ", "patient-1", EmptyQueryError),
            ("", None, EmptyQueryError),
            ("notes", None, EmptyPatientIdError),
            ("notes", "   ", EmptyPatientIdError),
            ("x" * 1001, "", EmptyPatientIdError),
            ("x" * 1001, "patient-1", QueryTooLongError),
        ],
    )
    def test_first_failure_wins(self, validator, query, patient_id, error):
        with pytest.raises(error):
            validator.validate(query, patient_id)

    @pytest.mark.unit
    def test_errors_carry_codes(self, validator):
        with pytest.raises(QueryValidationError) as exc_info:
            validator.validate("", "patient-1")
        assert exc_info.value.code is ErrorCode.EMPTY_QUERY

    @pytest.mark.unit
    def test_too_long_reports_length(self):
        validator = InputValidator(max_query_length=5)
        with pytest.raises(QueryTooLongError) as exc_info:
            validator.validate("abcdefg", "patient-1")
        assert exc_info.value.length == 7
        assert exc_info.value.limit == 5
        assert exc_info.value.code is ErrorCode.QUERY_TOO_LONG

    @pytest.mark.unit
    def test_errors_are_value_errors(self, validator):
        with pytest.raises(ValueError):
            validator.validate("notes", "")


class TestRangeAndSpanChecks:
    """Tests for explicit range and span checks."""

    @pytest.mark.unit
    def test_inverted_range(self, validator):
        later = datetime(2024, 6, 1, tzinfo=timezone.utc)
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        validator.check_date_range(earlier, later)
        validator.check_date_range(later, later)
        with pytest.raises(InvalidDateRangeError) as exc_info:
            validator.check_date_range(later, earlier)
        assert exc_info.value.code is ErrorCode.INVALID_DATE_RANGE

    @pytest.mark.unit
    @pytest.mark.parametrize("start,end", [(-1, 3), (4, 4), (5, 2)])
    def test_invalid_spans(self, validator, start, end):
        with pytest.raises(InvalidSpanError):
            validator.check_span(start, end)

    @pytest.mark.unit
    def test_valid_span(self, validator):
        validator.check_span(0, 1)


class TestSanitize:
    """Tests for text sanitization."""

    @pytest.mark.unit
    def test_sanitize_null_bytes(self, validator):
        assert validator.sanitize("insulin\x00 dose") == "insulin dose"

    @pytest.mark.unit
    def test_sanitize_collapses_whitespace(self, validator):
        assert validator.sanitize("  notes \n\n from\tlast   week ") == "notes from last week"
