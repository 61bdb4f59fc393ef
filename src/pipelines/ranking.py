"""
Query Ranking Pipeline

Encapsulates the parse-retrieve-filter-score flow as a callable unit:

1. Parse the question into a StructuredQuery
2. Ask the injected retriever for candidates, passing the filter criteria and
   the equivalent vector-store ``where`` clause
3. Post-filter the candidates on their metadata (index mode)
4. Score, rank and diversify

The retriever is any callable ``(criteria, where, structured_query)`` that
returns Candidate models or dicts. Validation errors propagate unchanged.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from src.query.agent import QueryUnderstandingAgent, StructuredQuery
from src.rag.filters import FilterCriteria, MetadataFilter
from src.rag.models import ScoredCandidate
from src.rag.scorer import RetrievalScorer, ScoringWeights

logger = logging.getLogger(__name__)

Retriever = Callable[[FilterCriteria, dict, StructuredQuery], list]


@dataclass
class PipelineResult:
    """Ranked evidence for one question."""

    structured_query: StructuredQuery
    candidates: list[ScoredCandidate]
    retrieved_count: int
    filtered_count: int
    processing_time_ms: float
    sufficient_context: bool = True
    steps: list[dict[str, Any]] = field(default_factory=list)

    @property
    def query_id(self) -> str:
        return self.structured_query.query_id


def _step(name: str, step_start: float, detail: str) -> dict[str, Any]:
    return {
        "name": name,
        "duration_ms": round((time.time() - step_start) * 1000, 1),
        "detail": detail,
    }


class RankingPipeline:
    """Parse, retrieve, filter and rank evidence for a clinical question."""

    def __init__(
        self,
        retriever: Retriever,
        agent: QueryUnderstandingAgent | None = None,
        metadata_filter: MetadataFilter | None = None,
        scorer: RetrievalScorer | None = None,
        weights: ScoringWeights | None = None,
    ):
        self.retriever = retriever
        self.agent = agent or QueryUnderstandingAgent()
        self.metadata_filter = metadata_filter or MetadataFilter()
        self.scorer = scorer or RetrievalScorer()
        self.weights = weights

    def run(
        self,
        question: str,
        patient_id: str,
        top_k: int = 5,
        diversify: bool = True,
        reference_date: datetime | None = None,
    ) -> PipelineResult:
        """Execute the full pipeline.

        Stages: parse -> retrieve -> filter -> score.
        """
        start_time = time.time()
        steps: list[dict[str, Any]] = []

        # --- Query understanding ---
        step_start = time.time()
        structured_query = self.agent.parse(question, patient_id, reference_date)
        sufficient = self.agent.has_sufficient_context(structured_query)
        steps.append(_step("parse", step_start, self.agent.get_summary(structured_query)))

        # --- Retrieval ---
        step_start = time.time()
        criteria = FilterCriteria.from_structured_query(structured_query)
        where = self.metadata_filter.to_vector_store_filter(criteria)
        retrieved = list(self.retriever(criteria, where, structured_query) or [])
        steps.append(_step("retrieve", step_start, f"{len(retrieved)} candidates"))

        # --- Metadata post-filter ---
        step_start = time.time()
        filtered = self.metadata_filter.filter(retrieved, criteria, use_index=True)
        if retrieved and not filtered:
            logger.warning(
                "Metadata filter removed all %d candidates for query %s",
                len(retrieved),
                structured_query.query_id,
            )
        steps.append(
            _step("filter", step_start, f"{len(filtered)} of {len(retrieved)} kept")
        )

        # --- Scoring ---
        step_start = time.time()
        ranked = self.scorer.score(
            filtered,
            structured_query,
            self.weights,
            reference_date=reference_date,
            diversify=diversify,
            top_k=top_k,
        )
        steps.append(_step("score", step_start, f"{len(ranked)} ranked"))

        elapsed = (time.time() - start_time) * 1000
        logger.info(
            "Ranked %d candidates for query %s in %.1fms (intent=%s)",
            len(ranked),
            structured_query.query_id,
            elapsed,
            structured_query.intent.value,
        )
        return PipelineResult(
            structured_query=structured_query,
            candidates=ranked,
            retrieved_count=len(retrieved),
            filtered_count=len(filtered),
            processing_time_ms=round(elapsed, 1),
            sufficient_context=sufficient,
            steps=steps,
        )
