"""
Metadata Filtering for Retrieval Candidates

Narrows candidates by patient, artifact type, date range and author. Clauses
combine with AND; a clause is active when its criterion is not None.

Two modes return the same set:
- Linear: checks every candidate against every clause
- Indexed: builds a MetadataIndex over the batch (patient, type, author and
  calendar month buckets) and intersects bucket positions

The index is built per call and never cached, so it can never go stale.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.query.temporal import as_utc
from src.rag.models import Candidate, parse_candidate_date, to_candidates
from src.security.input_validation import InvalidDateRangeError

logger = logging.getLogger(__name__)


class FilterCriteria(BaseModel):
    """AND-combined metadata constraints. ``None`` disables a clause."""

    model_config = ConfigDict(frozen=True)

    patient_id: str | None = None
    artifact_types: list[str] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    author: str | None = None

    @classmethod
    def from_structured_query(cls, structured_query) -> "FilterCriteria":
        filters = structured_query.filters
        date_range = filters.date_range
        return cls(
            patient_id=structured_query.patient_id,
            artifact_types=filters.artifact_types,
            date_from=date_range.date_from if date_range is not None else None,
            date_to=date_range.date_to if date_range is not None else None,
            author=filters.author,
        )

    def applied_clauses(self) -> list[str]:
        applied = []
        if self.patient_id is not None:
            applied.append("patient_id")
        if self.artifact_types is not None:
            applied.append("artifact_types")
        if self.date_from is not None or self.date_to is not None:
            applied.append("date_range")
        if self.author is not None:
            applied.append("author")
        return applied


@dataclass
class FilterResult:
    candidates: list[Candidate]
    total_before: int
    total_after: int
    filters_applied: list[str] = field(default_factory=list)
    execution_time_ms: float = 0.0


def _author_key(author: str) -> str:
    return author.strip().casefold()


def _month_key(value: datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


# ============================================
# MetadataIndex
# ============================================


class MetadataIndex:
    """Bucketed positions of one candidate batch."""

    def __init__(self, candidates: list[Candidate]):
        self.candidates = candidates
        self.by_patient: dict[str, set[int]] = defaultdict(set)
        self.by_type: dict[str, set[int]] = defaultdict(set)
        self.by_author: dict[str, set[int]] = defaultdict(set)
        self.by_month: dict[str, set[int]] = defaultdict(set)
        self.dates: dict[int, datetime] = {}

        for position, candidate in enumerate(candidates):
            metadata = candidate.metadata
            if metadata.patient_id is not None:
                self.by_patient[metadata.patient_id].add(position)
            if metadata.artifact_type is not None:
                self.by_type[metadata.artifact_type].add(position)
            if metadata.author is not None:
                self.by_author[_author_key(metadata.author)].add(position)
            parsed = parse_candidate_date(metadata.date)
            if parsed is not None:
                self.dates[position] = parsed
                self.by_month[_month_key(parsed)].add(position)

    def lookup(self, criteria: FilterCriteria) -> list[int]:
        """Positions matching every active clause, in input order."""
        matched = set(range(len(self.candidates)))

        if criteria.patient_id is not None:
            matched &= self.by_patient.get(criteria.patient_id, set())
        if criteria.artifact_types is not None:
            by_type: set[int] = set()
            for artifact_type in criteria.artifact_types:
                by_type |= self.by_type.get(artifact_type, set())
            matched &= by_type
        if criteria.author is not None:
            matched &= self.by_author.get(_author_key(criteria.author), set())
        if criteria.date_from is not None or criteria.date_to is not None:
            matched &= self._date_positions(criteria)

        return sorted(matched)

    def _date_positions(self, criteria: FilterCriteria) -> set[int]:
        date_from = as_utc(criteria.date_from) if criteria.date_from is not None else None
        date_to = as_utc(criteria.date_to) if criteria.date_to is not None else None
        low = _month_key(date_from) if date_from is not None else ""
        high = _month_key(date_to) if date_to is not None else "9999-99"

        positions: set[int] = set()
        for month, bucket in self.by_month.items():
            if not low <= month <= high:
                continue
            for position in bucket:
                value = self.dates[position]
                if date_from is not None and value < date_from:
                    continue
                if date_to is not None and value > date_to:
                    continue
                positions.add(position)
        return positions

    def stats(self) -> dict[str, int]:
        return {
            "total_candidates": len(self.candidates),
            "unique_patients": len(self.by_patient),
            "unique_types": len(self.by_type),
            "unique_authors": len(self.by_author),
            "unique_months": len(self.by_month),
            "undated": len(self.candidates) - len(self.dates),
        }


# ============================================
# MetadataFilter
# ============================================


class MetadataFilter:
    """Filters retrieval candidates on their metadata."""

    def filter(
        self, candidates, criteria: FilterCriteria, use_index: bool = False
    ) -> list[Candidate]:
        """Return the candidates satisfying every active clause.

        Args:
            candidates: Candidate models or dicts.
            criteria: Filter clauses.
            use_index: Build a MetadataIndex for this call instead of scanning.

        Raises:
            InvalidDateRangeError: If ``criteria.date_from`` is after ``date_to``.
        """
        self.validate_criteria(criteria)
        items = to_candidates(candidates)
        if not items:
            return []

        if use_index:
            index = self.build_index(items)
            result = [items[position] for position in index.lookup(criteria)]
        else:
            result = [c for c in items if self.matches(c, criteria)]

        logger.debug(
            "Metadata filter kept %d of %d candidates (%s)",
            len(result),
            len(items),
            ", ".join(criteria.applied_clauses()) or "no clauses",
        )
        return result

    def filter_with_stats(
        self, candidates, criteria: FilterCriteria, use_index: bool = False
    ) -> FilterResult:
        start_time = time.time()
        items = to_candidates(candidates)
        result = self.filter(items, criteria, use_index=use_index)
        return FilterResult(
            candidates=result,
            total_before=len(items),
            total_after=len(result),
            filters_applied=criteria.applied_clauses(),
            execution_time_ms=(time.time() - start_time) * 1000,
        )

    def batch_filter(
        self, candidates, criteria_list: list[FilterCriteria], use_index: bool = False
    ) -> list[list[Candidate]]:
        """Apply several criteria to one batch; the index is shared within the call."""
        for criteria in criteria_list:
            self.validate_criteria(criteria)
        items = to_candidates(candidates)
        if not use_index:
            return [[c for c in items if self.matches(c, crit)] for crit in criteria_list]
        index = self.build_index(items)
        return [[items[p] for p in index.lookup(crit)] for crit in criteria_list]

    @staticmethod
    def build_index(candidates) -> MetadataIndex:
        return MetadataIndex(to_candidates(candidates))

    @staticmethod
    def validate_criteria(criteria: FilterCriteria) -> None:
        if criteria.date_from is not None and criteria.date_to is not None:
            date_from, date_to = as_utc(criteria.date_from), as_utc(criteria.date_to)
            if date_from > date_to:
                raise InvalidDateRangeError(date_from, date_to)

    @staticmethod
    def matches(candidate: Candidate, criteria: FilterCriteria) -> bool:
        metadata = candidate.metadata
        if criteria.patient_id is not None and metadata.patient_id != criteria.patient_id:
            return False
        if (
            criteria.artifact_types is not None
            and metadata.artifact_type not in criteria.artifact_types
        ):
            return False
        if criteria.author is not None and (
            metadata.author is None
            or _author_key(metadata.author) != _author_key(criteria.author)
        ):
            return False
        if criteria.date_from is not None or criteria.date_to is not None:
            value = parse_candidate_date(metadata.date)
            if value is None:
                return False
            if criteria.date_from is not None and value < as_utc(criteria.date_from):
                return False
            if criteria.date_to is not None and value > as_utc(criteria.date_to):
                return False
        return True

    @staticmethod
    def to_vector_store_filter(criteria: FilterCriteria) -> dict:
        """Build a Chroma-style ``where`` clause for pre-filtering in the store."""
        clauses: list[dict] = []
        if criteria.patient_id is not None:
            clauses.append({"patient_id": {"$eq": criteria.patient_id}})
        if criteria.artifact_types is not None:
            clauses.append({"artifact_type": {"$in": list(criteria.artifact_types)}})
        if criteria.date_from is not None:
            clauses.append({"date": {"$gte": as_utc(criteria.date_from).isoformat()}})
        if criteria.date_to is not None:
            clauses.append({"date": {"$lte": as_utc(criteria.date_to).isoformat()}})
        if criteria.author is not None:
            clauses.append({"author": {"$eq": criteria.author}})

        if not clauses:
            return {}
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}
