"""
Query Understanding Module

Rule-based parsing of clinical questions: intent classification, entity
extraction, temporal phrase resolution and synonym expansion, combined by
QueryUnderstandingAgent into a StructuredQuery.
"""

from src.query.agent import (
    DateRange,
    ParseOutcome,
    QueryFilters,
    QueryParsingResult,
    QueryUnderstandingAgent,
    StructuredQuery,
)
from src.query.entities import Entity, EntityExtractor, EntityType
from src.query.expander import ExpandedQuery, QueryExpander, build_expanded_search_terms
from src.query.intent import IntentClassification, IntentClassifier, IntentScore, QueryIntent
from src.query.temporal import RelativeTime, TemporalFilter, TemporalParser
from src.query.vocabulary import Vocabulary, get_vocabulary

__all__ = [
    # Agent
    "QueryUnderstandingAgent",
    "StructuredQuery",
    "QueryFilters",
    "DateRange",
    "QueryParsingResult",
    "ParseOutcome",
    # Intent
    "IntentClassifier",
    "IntentClassification",
    "IntentScore",
    "QueryIntent",
    # Entities
    "EntityExtractor",
    "Entity",
    "EntityType",
    # Temporal
    "TemporalParser",
    "TemporalFilter",
    "RelativeTime",
    # Expansion
    "QueryExpander",
    "ExpandedQuery",
    "build_expanded_search_terms",
    # Vocabulary
    "Vocabulary",
    "get_vocabulary",
]
