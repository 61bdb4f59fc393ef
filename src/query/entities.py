"""
Clinical Entity Extraction

Rule-based extraction of medications, conditions, symptoms, dates and named
people from a query. Each entity type is found by an independent pass over
the original text, so spans always index into the caller's string. Overlaps
between entities of the same type are resolved by keeping the longer span;
entities of different types may overlap freely.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from dateutil import parser as date_parser

from src.query.vocabulary import (
    MONTH_PATTERN,
    TIME_UNIT_PATTERN,
    Vocabulary,
    get_vocabulary,
)
from src.security.input_validation import InvalidSpanError

logger = logging.getLogger(__name__)


class EntityType(str, Enum):
    MEDICATION = "medication"
    CONDITION = "condition"
    SYMPTOM = "symptom"
    DATE = "date"
    PERSON = "person"


# Secondary sort key for entities sharing a start offset
_TYPE_ORDER = {entity_type: i for i, entity_type in enumerate(EntityType)}


@dataclass(frozen=True)
class Entity:
    """A typed span of the query text."""

    type: EntityType
    text: str
    span: tuple[int, int]
    normalized_value: str | None = None

    def __post_init__(self):
        start, end = self.span
        if start < 0 or end <= start:
            raise InvalidSpanError(start, end)

    @property
    def start(self) -> int:
        return self.span[0]

    @property
    def end(self) -> int:
        return self.span[1]

    def overlaps(self, other: "Entity") -> bool:
        return self.start < other.end and other.start < self.end


# ============================================
# Patterns
# ============================================

_DOSAGE_PATTERN = re.compile(
    r"(?<!\w)(\d+(?:\.\d+)?)\s*(mg|mcg|g|ml)(?!\w)", re.IGNORECASE
)
_FREQUENCY_PATTERN = re.compile(r"(?<!\w)(?:qd|bid|tid|qid|q\d+h|prn)(?!\w)", re.IGNORECASE)

_ORDINAL = r"(?:st|nd|rd|th)?"

# Absolute dates; normalized to an ISO date string
_ABSOLUTE_DATE_PATTERNS = [
    re.compile(r"(?<!\d)\d{4}-\d{2}-\d{2}(?!\d)"),
    re.compile(r"(?<!\d)\d{1,2}/\d{1,2}/(?:\d{4}|\d{2})(?!\d)"),
    re.compile(
        rf"\b{MONTH_PATTERN}\.?\s+\d{{1,2}}{_ORDINAL},?\s+\d{{4}}\b", re.IGNORECASE
    ),
    re.compile(
        rf"\b\d{{1,2}}{_ORDINAL}\s+(?:of\s+)?{MONTH_PATTERN}\.?,?\s+\d{{4}}\b",
        re.IGNORECASE,
    ),
]

_MONTH_YEAR_PATTERN = re.compile(rf"\b{MONTH_PATTERN}\.?\s+\d{{4}}\b", re.IGNORECASE)

# Relative phrases have no fixed calendar value
_RELATIVE_DATE_PATTERNS = [
    re.compile(
        rf"\b(?:in\s+the\s+)?(?:last|past|previous)\s+(?:\d+\s+)?{TIME_UNIT_PATTERN}\b",
        re.IGNORECASE,
    ),
    re.compile(rf"\b\d+\s+{TIME_UNIT_PATTERN}\s+ago\b", re.IGNORECASE),
    re.compile(r"\bthis\s+(?:week|month|year)\b", re.IGNORECASE),
    re.compile(r"\b(?:yesterday|today)\b", re.IGNORECASE),
]

_NAME = r"[A-Z][a-zA-Z'\-]+"


def _lexicon_pattern(terms) -> re.Pattern:
    # Longest alternatives first so "chest pain" wins over "pain" at one offset
    ordered = sorted(set(terms), key=len, reverse=True)
    alternation = "|".join(re.escape(term) for term in ordered)
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)", re.IGNORECASE)


def _iso_date(text: str) -> str | None:
    try:
        parsed = date_parser.parse(text, default=datetime(2000, 1, 1))
    except (ValueError, OverflowError):
        logger.debug("Could not normalize date text %r", text)
        return None
    return parsed.date().isoformat()


def _iso_month(text: str) -> str | None:
    try:
        parsed = date_parser.parse(text, default=datetime(2000, 1, 1))
    except (ValueError, OverflowError):
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


class EntityExtractor:
    """Finds clinical entities in free text."""

    def __init__(self, vocabulary: Vocabulary | None = None):
        self._vocab = vocabulary or get_vocabulary()
        self._lexicons = {
            EntityType.MEDICATION: _lexicon_pattern(self._vocab.medications),
            EntityType.CONDITION: _lexicon_pattern(self._vocab.conditions),
            EntityType.SYMPTOM: _lexicon_pattern(self._vocab.symptoms),
        }
        titles = "|".join(re.escape(t) for t in self._vocab.person_titles)
        # Title is case-insensitive; names must stay capitalized
        self._person_pattern = re.compile(
            rf"(?<!\w)(?i:{titles})\.?\s+({_NAME}(?:\s+{_NAME})?)"
        )

    def extract(self, text: str) -> list[Entity]:
        """Extract every entity from ``text``.

        Returns:
            Entities sorted by start offset, then by type order.
        """
        if not text or not text.strip():
            return []

        found: list[Entity] = []
        for entity_type, pattern in self._lexicons.items():
            found.extend(self._lexicon_entities(text, entity_type, pattern))
        found.extend(self._dosage_entities(text))
        found.extend(self._date_entities(text))
        found.extend(self._person_entities(text))

        entities = self._deduplicate(found)
        entities.sort(key=lambda e: (e.start, _TYPE_ORDER[e.type]))
        logger.debug("Extracted %d entities from %r", len(entities), text[:100])
        return entities

    def extract_by_type(self, text: str, entity_type: EntityType) -> list[Entity]:
        return [e for e in self.extract(text) if e.type is entity_type]

    def has_entity_type(self, text: str, entity_type: EntityType) -> bool:
        return bool(self.extract_by_type(text, entity_type))

    @staticmethod
    def count_by_type(entities: list[Entity]) -> dict[EntityType, int]:
        counts = Counter(e.type for e in entities)
        return {entity_type: counts.get(entity_type, 0) for entity_type in EntityType}

    def normalize(self, term: str) -> str:
        """Lower-case a term and expand it if it is a known abbreviation."""
        lowered = " ".join(term.lower().split())
        return self._vocab.abbreviations.get(lowered, lowered)

    # ============================================
    # Passes
    # ============================================

    def _lexicon_entities(self, text, entity_type, pattern):
        for match in pattern.finditer(text):
            yield Entity(
                type=entity_type,
                text=match.group(0),
                span=match.span(),
                normalized_value=self.normalize(match.group(0)),
            )

    def _dosage_entities(self, text):
        for match in _DOSAGE_PATTERN.finditer(text):
            amount, unit = match.groups()
            yield Entity(
                type=EntityType.MEDICATION,
                text=match.group(0),
                span=match.span(),
                normalized_value=f"{amount} {unit.lower()}",
            )
        for match in _FREQUENCY_PATTERN.finditer(text):
            yield Entity(
                type=EntityType.MEDICATION,
                text=match.group(0),
                span=match.span(),
                normalized_value=self.normalize(match.group(0)),
            )

    def _date_entities(self, text):
        for pattern in _ABSOLUTE_DATE_PATTERNS:
            for match in pattern.finditer(text):
                yield Entity(
                    type=EntityType.DATE,
                    text=match.group(0),
                    span=match.span(),
                    normalized_value=_iso_date(match.group(0)),
                )
        for match in _MONTH_YEAR_PATTERN.finditer(text):
            yield Entity(
                type=EntityType.DATE,
                text=match.group(0),
                span=match.span(),
                normalized_value=_iso_month(match.group(0)),
            )
        for pattern in _RELATIVE_DATE_PATTERNS:
            for match in pattern.finditer(text):
                yield Entity(type=EntityType.DATE, text=match.group(0), span=match.span())

    def _person_entities(self, text):
        for match in self._person_pattern.finditer(text):
            yield Entity(
                type=EntityType.PERSON,
                text=match.group(0),
                span=match.span(),
                normalized_value=match.group(1),
            )

    @staticmethod
    def _deduplicate(entities: list[Entity]) -> list[Entity]:
        """Drop same-type overlaps, keeping the longer (then earlier) span."""
        kept: list[Entity] = []
        by_type: dict[EntityType, list[Entity]] = {}
        for entity in entities:
            by_type.setdefault(entity.type, []).append(entity)

        for group in by_type.values():
            group.sort(key=lambda e: (-(e.end - e.start), e.start))
            accepted: list[Entity] = []
            for candidate in group:
                if not any(candidate.overlaps(other) for other in accepted):
                    accepted.append(candidate)
            kept.extend(accepted)
        return kept
