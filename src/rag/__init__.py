"""
Retrieval Ranking Module

Post-retrieval processing of candidate chunks: metadata filtering,
exponential time decay, multi-factor scoring and diversity re-ranking.
"""

from src.rag.decay import TIME_DECAY_RATE, TimeDecayScorer
from src.rag.filters import FilterCriteria, FilterResult, MetadataFilter, MetadataIndex
from src.rag.models import (
    Candidate,
    CandidateMetadata,
    Chunk,
    ScoredCandidate,
    parse_candidate_date,
)
from src.rag.scorer import RetrievalScorer, ScoringWeights, get_default_weights

__all__ = [
    # Models
    "Chunk",
    "CandidateMetadata",
    "Candidate",
    "ScoredCandidate",
    "parse_candidate_date",
    # Filtering
    "MetadataFilter",
    "MetadataIndex",
    "FilterCriteria",
    "FilterResult",
    # Decay
    "TimeDecayScorer",
    "TIME_DECAY_RATE",
    # Scoring
    "RetrievalScorer",
    "ScoringWeights",
    "get_default_weights",
]
