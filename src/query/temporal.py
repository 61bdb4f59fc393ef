"""
Temporal Phrase Parsing

Turns phrases such as "in the last 3 months", "since March 2024" or
"between 01/05/2024 and 02/10/2024" into an explicit, timezone-aware date
range. Parsing is an ordered table of (pattern, resolver) rules: every rule is
matched against the text, the leftmost match wins, and on an equal start
offset the rule listed first wins.

Unit arithmetic uses fixed lengths (a month is 30 days, a year 365) so ranges
are stable regardless of the calendar position of the reference date.
Calendar-aligned phrases ("this month", "March 2024") use real calendar
boundaries instead.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from src.query.vocabulary import MONTH_NAMES, MONTH_PATTERN
from src.security.input_validation import InvalidDateRangeError

logger = logging.getLogger(__name__)

UNIT_DAYS = {"day": 1, "week": 7, "month": 30, "year": 365}

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class TemporalFilter:
    """An explicit date range recovered from a temporal phrase."""

    time_reference: str
    date_from: datetime
    date_to: datetime
    relative_type: str | None = None
    amount: int | None = None

    def __post_init__(self):
        if self.date_from > self.date_to:
            raise InvalidDateRangeError(self.date_from, self.date_to)

    def to_dict(self) -> dict:
        data = {
            "timeReference": self.time_reference,
            "dateFrom": self.date_from.isoformat(),
            "dateTo": self.date_to.isoformat(),
        }
        if self.relative_type is not None:
            data["relativeType"] = self.relative_type
            data["amount"] = self.amount
        return data


@dataclass(frozen=True)
class RelativeTime:
    relative_type: str
    amount: int
    direction: str
    reference: str


# ============================================
# Date helpers
# ============================================


def as_utc(value: datetime | None) -> datetime:
    """Return ``value`` as an aware UTC datetime; ``None`` means now."""
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _midnight(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _month_number(name: str) -> int:
    prefix = name.lower().rstrip(".")[:3]
    return next(number for month, number in MONTH_NAMES.items() if month.startswith(prefix))


def _month_window(year: int, month: int, tz) -> tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=tz)
    return start, start + relativedelta(months=1)


def _year_window(year: int, tz) -> tuple[datetime, datetime]:
    start = datetime(year, 1, 1, tzinfo=tz)
    return start, start + relativedelta(years=1)


# ============================================
# Patterns
# ============================================

_UNIT = r"(?:day|week|month|year)"
_ORDINAL = r"(?:st|nd|rd|th)?"

_ISO = r"\d{4}-\d{2}-\d{2}"
_NUMERIC = r"\d{1,2}/\d{1,2}/(?:\d{4}|\d{2})"
_MDY = rf"{MONTH_PATTERN}\.?\s+\d{{1,2}}{_ORDINAL},?\s+\d{{4}}"
_DMY = rf"\d{{1,2}}{_ORDINAL}\s+(?:of\s+)?{MONTH_PATTERN}\.?,?\s+\d{{4}}"
_MONTH_YEAR = rf"{MONTH_PATTERN}\.?,?\s+\d{{4}}"
_AGO = rf"\d+\s+{_UNIT}s?\s+ago"

# A single point in time, as accepted after "since" or inside "between ... and ..."
# Alternatives are ordered longest form first.
_POINT = (
    rf"(?:{_ISO}|{_NUMERIC}|{_MDY}|{_DMY}|{_MONTH_YEAR}|{_AGO}"
    rf"|last\s+(?:week|month|year)|yesterday|today|\d{{4}}|{MONTH_PATTERN})"
)

_FLAGS = re.IGNORECASE


def _compile(pattern: str) -> re.Pattern:
    return re.compile(rf"(?<!\w){pattern}(?!\w)", _FLAGS)


_YEAR_RE = re.compile(r"^\d{4}$")
_AGO_RE = re.compile(rf"^(\d+)\s+({_UNIT})s?\s+ago$", _FLAGS)
_LAST_UNIT_RE = re.compile(r"^last\s+(week|month|year)$", _FLAGS)
_MONTH_YEAR_RE = re.compile(rf"^({MONTH_PATTERN})\.?,?\s+(\d{{4}})$", _FLAGS)
_MONTH_ONLY_RE = re.compile(rf"^({MONTH_PATTERN})$", _FLAGS)

_PAST_RELATIVE_RE = _compile(
    rf"(?:in\s+the\s+)?(?:last|past|previous)\s+(\d+)\s+({_UNIT})s?"
)
_AGO_RELATIVE_RE = _compile(rf"(\d+)\s+({_UNIT})s?\s+ago")
_FUTURE_RELATIVE_RE = _compile(rf"(?:next|coming|following)\s+(\d+)\s+({_UNIT})s?")


@dataclass(frozen=True)
class _Rule:
    name: str
    pattern: re.Pattern
    resolve: Callable[[re.Match, datetime], "TemporalFilter | None"]


class TemporalParser:
    """Resolves temporal phrases in query text to a TemporalFilter."""

    def __init__(self):
        self._rules = [
            _Rule(
                "between",
                _compile(rf"between\s+(?P<a>{_POINT})\s+and\s+(?P<b>{_POINT})"),
                self._resolve_between,
            ),
            _Rule("since", _compile(rf"since\s+(?P<a>{_POINT})"), self._resolve_since),
            _Rule(
                "last_n",
                _compile(
                    rf"(?:in\s+the\s+)?(?:last|past|previous)\s+"
                    rf"(?:(?P<n>\d+)\s+(?P<unit>{_UNIT})s?|(?P<single>week|month|year))"
                ),
                self._resolve_last_n,
            ),
            _Rule("this", _compile(r"this\s+(?P<unit>week|month|year)"), self._resolve_this),
            _Rule(
                "ago",
                _compile(rf"(?P<n>\d+)\s+(?P<unit>{_UNIT})s?\s+ago"),
                self._resolve_ago,
            ),
            _Rule("day_word", _compile(r"(?P<word>yesterday|today)"), self._resolve_point_rule),
            _Rule(
                "absolute",
                _compile(rf"(?P<a>{_ISO}|{_NUMERIC}|{_MDY}|{_DMY})"),
                self._resolve_point_rule,
            ),
            _Rule("month_year", _compile(rf"(?P<a>{_MONTH_YEAR})"), self._resolve_point_rule),
            _Rule(
                "year",
                _compile(r"(?:in|during)\s+(?P<a>\d{4})(?![-/])"),
                self._resolve_point_rule,
            ),
        ]

    def parse(
        self, text: str, reference_date: datetime | None = None
    ) -> TemporalFilter | None:
        """Parse the leftmost temporal phrase in ``text``.

        Args:
            text: Query text.
            reference_date: "Now" for relative phrases. Defaults to the
                current UTC time; naive values are read as UTC.

        Returns:
            TemporalFilter, or None when no phrase is recognized.
        """
        if not text or not text.strip():
            return None
        reference = as_utc(reference_date)

        for _start, _order, rule, match in self._candidates(text):
            result = self._apply(rule, match, reference)
            if result is not None:
                logger.debug(
                    "Temporal rule %s matched %r -> [%s, %s]",
                    rule.name,
                    result.time_reference,
                    result.date_from.isoformat(),
                    result.date_to.isoformat(),
                )
                return result
        return None

    def parse_all(
        self, text: str, reference_date: datetime | None = None
    ) -> list[TemporalFilter]:
        """Parse every non-overlapping temporal phrase, left to right."""
        if not text or not text.strip():
            return []
        reference = as_utc(reference_date)

        results: list[TemporalFilter] = []
        taken: list[tuple[int, int]] = []
        for _start, _order, rule, match in self._candidates(text):
            start, end = match.span()
            if any(start < t_end and t_start < end for t_start, t_end in taken):
                continue
            result = self._apply(rule, match, reference)
            if result is not None:
                results.append(result)
                taken.append((start, end))
        return results

    def has_temporal(self, text: str) -> bool:
        return self.parse(text) is not None

    def parse_relative_time(self, text: str) -> RelativeTime | None:
        """Describe a "last N units", "N units ago" or "next N units" phrase."""
        if not text or not text.strip():
            return None
        for pattern, direction in (
            (_PAST_RELATIVE_RE, "past"),
            (_AGO_RELATIVE_RE, "past"),
            (_FUTURE_RELATIVE_RE, "future"),
        ):
            match = pattern.search(text)
            if match:
                return RelativeTime(
                    relative_type=match.group(2).lower() + "s",
                    amount=int(match.group(1)),
                    direction=direction,
                    reference=match.group(0),
                )
        return None

    @staticmethod
    def _apply(rule: _Rule, match: re.Match, reference: datetime) -> "TemporalFilter | None":
        """Run a rule's resolver; dates outside the calendar range count as no match."""
        try:
            return rule.resolve(match, reference)
        except InvalidDateRangeError:
            raise
        except (ValueError, OverflowError) as e:
            logger.debug(
                "Temporal rule %s could not resolve %r: %s", rule.name, match.group(0), e
            )
            return None

    def _candidates(self, text: str):
        found = []
        for order, rule in enumerate(self._rules):
            for match in rule.pattern.finditer(text):
                found.append((match.start(), order, rule, match))
        found.sort(key=lambda item: (item[0], item[1]))
        return found

    # ============================================
    # Resolvers
    # ============================================

    def _resolve_between(self, match, reference):
        first = self._resolve_point(match.group("a"), reference)
        second = self._resolve_point(match.group("b"), reference)
        if first is None or second is None:
            return None
        earlier, later = sorted((first, second))
        return TemporalFilter(
            time_reference=match.group(0),
            date_from=earlier[0],
            date_to=max(earlier[1], later[1]),
        )

    def _resolve_since(self, match, reference):
        point = self._resolve_point(match.group("a"), reference)
        if point is None:
            return None
        if point[0] > reference:
            logger.debug("Ignoring 'since' phrase in the future: %r", match.group(0))
            return None
        return TemporalFilter(
            time_reference=match.group(0), date_from=point[0], date_to=reference
        )

    def _resolve_last_n(self, match, reference):
        if match.group("single"):
            unit, amount = match.group("single").lower(), 1
        else:
            unit, amount = match.group("unit").lower(), int(match.group("n"))
        return TemporalFilter(
            time_reference=match.group(0),
            date_from=reference - timedelta(days=amount * UNIT_DAYS[unit]),
            date_to=reference,
            relative_type=unit + "s",
            amount=amount,
        )

    def _resolve_this(self, match, reference):
        unit = match.group("unit").lower()
        today = _midnight(reference)
        if unit == "week":
            start = today - timedelta(days=today.weekday())
        elif unit == "month":
            start = today.replace(day=1)
        else:
            start = today.replace(month=1, day=1)
        return TemporalFilter(time_reference=match.group(0), date_from=start, date_to=reference)

    def _resolve_ago(self, match, reference):
        unit, amount = match.group("unit").lower(), int(match.group("n"))
        start = _midnight(reference - timedelta(days=amount * UNIT_DAYS[unit]))
        return TemporalFilter(
            time_reference=match.group(0),
            date_from=start,
            date_to=start + ONE_DAY,
            relative_type=unit + "s",
            amount=amount,
        )

    def _resolve_point_rule(self, match, reference):
        groups = match.groupdict()
        point = self._resolve_point(groups.get("a") or groups.get("word"), reference)
        if point is None:
            return None
        return TemporalFilter(time_reference=match.group(0), date_from=point[0], date_to=point[1])

    def _resolve_point(
        self, text: str, reference: datetime
    ) -> tuple[datetime, datetime] | None:
        """Resolve a single point expression to a [start, end] window."""
        text = " ".join(text.split())
        lowered = text.lower()
        tz = reference.tzinfo

        if lowered == "today":
            start = _midnight(reference)
            return start, start + ONE_DAY
        if lowered == "yesterday":
            start = _midnight(reference) - ONE_DAY
            return start, start + ONE_DAY

        ago = _AGO_RE.match(text)
        if ago:
            days = int(ago.group(1)) * UNIT_DAYS[ago.group(2).lower()]
            start = _midnight(reference - timedelta(days=days))
            return start, start + ONE_DAY

        last = _LAST_UNIT_RE.match(text)
        if last:
            return reference - timedelta(days=UNIT_DAYS[last.group(1).lower()]), reference

        if _YEAR_RE.match(text):
            return _year_window(int(text), tz)

        month_year = _MONTH_YEAR_RE.match(text)
        if month_year:
            return _month_window(int(month_year.group(2)), _month_number(month_year.group(1)), tz)

        month_only = _MONTH_ONLY_RE.match(text)
        if month_only:
            return _month_window(reference.year, _month_number(month_only.group(1)), tz)

        try:
            parsed = date_parser.parse(text, default=datetime(reference.year, 1, 1))
        except (ValueError, OverflowError):
            logger.debug("Unresolvable date expression %r", text)
            return None
        start = _midnight(parsed).replace(tzinfo=tz)
        return start, start + ONE_DAY
