"""
Query Understanding Agent

Turns a free-text clinical question about one patient into a StructuredQuery.

Processing order:
1. Validate (empty query, empty patient ID, length cap)
2. Sanitize whitespace and control characters
3. Classify intent
4. Extract entities
5. Parse the temporal phrase
6. Derive filters: artifact types from the intent, date range from the
   temporal filter
7. Expand the query with synonyms of its medical entities

Structural input errors propagate to the caller. Everything else degrades to
defaults, so a valid query always produces a StructuredQuery.
"""

import logging
import time
import uuid
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.observability.metrics import record_parse
from src.query.entities import Entity, EntityExtractor, EntityType
from src.query.expander import QueryExpander
from src.query.intent import (
    DEFAULT_INTENT,
    IntentClassifier,
    IntentScore,
    QueryIntent,
)
from src.query.temporal import TemporalFilter, TemporalParser
from src.query.vocabulary import Vocabulary, get_vocabulary
from src.security.input_validation import InputValidator, QueryValidationError

logger = logging.getLogger(__name__)


# ============================================
# Models
# ============================================


class DateRange(BaseModel):
    """Inclusive date range; serialized with ``from``/``to`` keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date_from: datetime = Field(..., alias="from")
    date_to: datetime = Field(..., alias="to")

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class QueryFilters(BaseModel):
    model_config = ConfigDict(frozen=True)

    artifact_types: list[str] | None = None
    date_range: DateRange | None = None
    author: str | None = None


class StructuredQuery(BaseModel):
    """Parsed representation of one clinical question."""

    model_config = ConfigDict(frozen=True)

    query_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    original_query: str
    patient_id: str
    intent: QueryIntent = DEFAULT_INTENT
    intent_confidence: float = Field(0.0, ge=0.0, le=1.0)
    ambiguous_intents: list[IntentScore] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    temporal_filter: TemporalFilter | None = None
    filters: QueryFilters = Field(default_factory=QueryFilters)
    expanded_terms: list[str] = Field(default_factory=list)
    synonym_map: dict[str, list[str]] = Field(default_factory=dict)


class QueryParsingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    structured_query: StructuredQuery
    entity_count: dict[str, int]
    intent_scores: dict[str, float]
    matched_keywords: list[str]
    has_temporal: bool


@dataclass
class ParseOutcome:
    """Result of one item in a parse batch; exactly one of result/error is set."""

    index: int
    query: str
    patient_id: str
    result: StructuredQuery | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ============================================
# Agent
# ============================================


class QueryUnderstandingAgent:
    """Parses clinical questions into StructuredQuery objects."""

    def __init__(
        self,
        vocabulary: Vocabulary | None = None,
        validator: InputValidator | None = None,
    ):
        self._vocab = vocabulary or get_vocabulary()
        self.validator = validator or InputValidator()
        self.intent_classifier = IntentClassifier(self._vocab)
        self.entity_extractor = EntityExtractor(self._vocab)
        self.temporal_parser = TemporalParser()
        self.query_expander = QueryExpander(self._vocab)

    def parse(
        self,
        query: str,
        patient_id: str,
        reference_date: datetime | None = None,
    ) -> StructuredQuery:
        """Parse a query.

        Args:
            query: Free-text clinical question.
            patient_id: Patient the question is about.
            reference_date: "Now" for relative temporal phrases.

        Returns:
            StructuredQuery

        Raises:
            QueryValidationError: On empty query, empty patient ID, or a query
                over the length limit.
        """
        start_time = time.time()
        try:
            self.validator.validate(query, patient_id)
        except QueryValidationError:
            record_parse((time.time() - start_time) * 1000, success=False)
            raise

        text = self.validator.sanitize(query)
        classification = self.intent_classifier.classify(text)
        entities = self.entity_extractor.extract(text)
        temporal_filter = self.temporal_parser.parse(text, reference_date)
        filters = self._build_filters(classification.intent, temporal_filter)
        expansion = self.query_expander.expand_query(text, entities)

        structured_query = StructuredQuery(
            original_query=text,
            patient_id=patient_id.strip(),
            intent=classification.intent,
            intent_confidence=classification.confidence,
            ambiguous_intents=classification.alternatives,
            entities=entities,
            temporal_filter=temporal_filter,
            filters=filters,
            expanded_terms=expansion.expanded_terms,
            synonym_map=expansion.synonym_map,
        )

        latency_ms = (time.time() - start_time) * 1000
        record_parse(latency_ms)
        logger.debug("Parsed query in %.1fms: %s", latency_ms, self.get_summary(structured_query))
        return structured_query

    def parse_with_metadata(
        self,
        query: str,
        patient_id: str,
        reference_date: datetime | None = None,
    ) -> QueryParsingResult:
        structured_query = self.parse(query, patient_id, reference_date)
        classification = self.intent_classifier.classify(structured_query.original_query)
        counts = self.entity_extractor.count_by_type(structured_query.entities)

        return QueryParsingResult(
            structured_query=structured_query,
            entity_count={entity_type.value: n for entity_type, n in counts.items()},
            intent_scores={intent.value: s for intent, s in classification.scores.items()},
            matched_keywords=classification.matched_keywords,
            has_temporal=structured_query.temporal_filter is not None,
        )

    def parse_batch(
        self,
        items: list,
        max_workers: int | None = None,
        reference_date: datetime | None = None,
    ) -> list[ParseOutcome]:
        """Parse many queries; one failing item never aborts the batch.

        Args:
            items: ``(query, patient_id)`` pairs or mappings with ``query``
                and ``patient_id`` keys.
            max_workers: Parse on a thread pool of this size when > 1.
            reference_date: Shared "now" for relative temporal phrases.

        Returns:
            One ParseOutcome per item, in input order.
        """
        pairs = [self._unpack(item) for item in items]

        def run(index: int) -> ParseOutcome:
            query, patient_id = pairs[index]
            outcome = ParseOutcome(index=index, query=query, patient_id=patient_id)
            try:
                outcome.result = self.parse(query, patient_id, reference_date)
            except Exception as e:
                logger.warning("Batch item %d failed to parse: %s", index, e)
                outcome.error = e
            return outcome

        if max_workers and max_workers > 1 and len(pairs) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                return list(pool.map(run, range(len(pairs))))
        return [run(i) for i in range(len(pairs))]

    @staticmethod
    def _unpack(item) -> tuple[str, str]:
        if isinstance(item, Mapping):
            return item.get("query"), item.get("patient_id")
        query, patient_id = item
        return query, patient_id

    def _build_filters(
        self, intent: QueryIntent, temporal_filter: TemporalFilter | None
    ) -> QueryFilters:
        date_range = None
        if temporal_filter is not None:
            date_range = DateRange(
                date_from=temporal_filter.date_from, date_to=temporal_filter.date_to
            )
        return QueryFilters(
            artifact_types=self.get_artifact_types_for_intent(intent),
            date_range=date_range,
        )

    def get_artifact_types_for_intent(self, intent: QueryIntent) -> list[str] | None:
        types = self._vocab.intent_artifact_types.get(QueryIntent(intent).value)
        return list(types) if types else None

    def has_sufficient_context(self, structured_query: StructuredQuery) -> bool:
        """Whether the query carries enough signal for a narrow search."""
        return (
            structured_query.intent is not DEFAULT_INTENT
            or len(structured_query.entities) > 0
            or structured_query.temporal_filter is not None
        )

    def get_summary(self, structured_query: StructuredQuery) -> str:
        parts = [
            f"Intent: {structured_query.intent.value} "
            f"({structured_query.intent_confidence:.2f})"
        ]
        if structured_query.entities:
            parts.append(f"Entities: {len(structured_query.entities)}")
        if structured_query.temporal_filter is not None:
            parts.append(f"Temporal: {structured_query.temporal_filter.time_reference}")
        if structured_query.filters.artifact_types is not None:
            parts.append(f"Artifacts: {', '.join(structured_query.filters.artifact_types)}")
        if structured_query.synonym_map:
            parts.append(f"Expanded: {len(structured_query.expanded_terms) - 1}")
        return " | ".join(parts)

    def get_medications(self, structured_query: StructuredQuery) -> list[Entity]:
        return _entities_of(structured_query, EntityType.MEDICATION)

    def get_conditions(self, structured_query: StructuredQuery) -> list[Entity]:
        return _entities_of(structured_query, EntityType.CONDITION)

    def get_symptoms(self, structured_query: StructuredQuery) -> list[Entity]:
        return _entities_of(structured_query, EntityType.SYMPTOM)


def _entities_of(structured_query: StructuredQuery, entity_type: EntityType) -> list[Entity]:
    return [e for e in structured_query.entities if e.type is entity_type]
