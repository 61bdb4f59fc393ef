"""
Multi-factor Retrieval Scoring

Scores candidates an external retriever produced against a StructuredQuery:

    composite = w_keyword * keyword + w_recency * decay + w_type * type_pref
                + w_semantic * base_score

- keyword: BM25 over the candidate set, queried with the synonym-expanded
  terms, scaled by the maximum into [0, 1]
- decay: exponential time decay of the candidate's document date
- type_pref: 1.0 for a preferred artifact type, NON_PREFERRED_TYPE_SCORE for
  any other type, 0.0 when the query expresses no type preference
- base_score: the retriever's own score (weight 0 by default)

Composites are min-max normalized across the set, then ranked. Diversity mode
re-ranks greedily so the top results spread across distinct source artifacts.
"""

import logging
import os
import re
import time
from dataclasses import asdict, dataclass
from datetime import datetime

from rank_bm25 import BM25Plus

from src.observability.metrics import record_scoring
from src.query.temporal import as_utc
from src.query.vocabulary import Vocabulary, get_vocabulary
from src.rag.decay import TimeDecayScorer, round_days
from src.rag.models import Candidate, ScoredCandidate, to_candidates

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = float(os.environ.get("SCORER_KEYWORD_WEIGHT", "0.5"))
RECENCY_WEIGHT = float(os.environ.get("SCORER_RECENCY_WEIGHT", "0.3"))
TYPE_WEIGHT = float(os.environ.get("SCORER_TYPE_WEIGHT", "0.2"))
SEMANTIC_WEIGHT = float(os.environ.get("SCORER_SEMANTIC_WEIGHT", "0.0"))

DIVERSITY_PENALTY = float(os.environ.get("DIVERSITY_PENALTY", "0.5"))
NON_PREFERRED_TYPE_SCORE = float(os.environ.get("NON_PREFERRED_TYPE_SCORE", "0.5"))

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True)
class ScoringWeights:
    keyword: float = KEYWORD_WEIGHT
    recency: float = RECENCY_WEIGHT
    type_preference: float = TYPE_WEIGHT
    semantic: float = SEMANTIC_WEIGHT

    def total(self) -> float:
        return self.keyword + self.recency + self.type_preference + self.semantic


def get_default_weights() -> ScoringWeights:
    return ScoringWeights()


class RetrievalScorer:
    """Scores, normalizes, ranks and optionally diversifies candidates."""

    def __init__(
        self,
        vocabulary: Vocabulary | None = None,
        decay_scorer: TimeDecayScorer | None = None,
        diversity_penalty: float = DIVERSITY_PENALTY,
    ):
        self._stop_words = (vocabulary or get_vocabulary()).stop_words
        self.decay_scorer = decay_scorer or TimeDecayScorer()
        self.diversity_penalty = diversity_penalty

    def score(
        self,
        candidates,
        structured_query,
        weights: ScoringWeights | None = None,
        *,
        reference_date: datetime | None = None,
        diversify: bool = False,
        top_k: int | None = None,
    ) -> list[ScoredCandidate]:
        """Score and rank candidates for a structured query.

        Args:
            candidates: Candidate models or dicts from the retriever.
            structured_query: Parsed query (StructuredQuery).
            weights: Factor weights; used as given, never re-normalized.
            reference_date: "Now" for time decay.
            diversify: Spread the ranking across distinct artifacts.
            top_k: Keep only the best ``top_k`` results.

        Returns:
            ScoredCandidates, best first, ranked 1..N.
        """
        start_time = time.time()
        items = to_candidates(candidates)
        if not items:
            record_scoring(0, (time.time() - start_time) * 1000)
            return []

        weights = weights or get_default_weights()
        if abs(weights.total() - 1.0) > 1e-6:
            logger.warning("Scoring weights sum to %.3f, not 1.0", weights.total())
        reference = as_utc(reference_date)

        keyword_scores = self.keyword_scores(items, self._query_terms(structured_query))
        preferred = structured_query.filters.artifact_types

        scored = []
        for candidate, keyword in zip(items, keyword_scores, strict=True):
            days_ago = self.decay_scorer.calculate_days_ago(candidate.metadata.date, reference)
            if days_ago is None:
                logger.warning(
                    "Candidate %s has unparseable date %r; recency 0",
                    candidate.chunk_id,
                    candidate.metadata.date,
                )
                decay = 0.0
            else:
                decay = self.decay_scorer.calculate_decay_factor(days_ago)
            type_pref = self.type_preference(candidate, preferred)
            composite = (
                weights.keyword * keyword
                + weights.recency * decay
                + weights.type_preference * type_pref
                + weights.semantic * candidate.score
            )
            scored.append(
                ScoredCandidate(
                    chunk=candidate.chunk,
                    metadata=candidate.metadata,
                    score=composite,
                    original_score=candidate.score,
                    time_decay_factor=decay,
                    days_ago=None if days_ago is None else round_days(days_ago),
                    keyword_score=keyword,
                    type_preference=type_pref,
                )
            )

        scored = self._normalize(scored)
        scored.sort(key=lambda c: c.score, reverse=True)

        if diversify:
            ranked = self._diversify(scored, top_k)
        else:
            ranked = scored[:top_k] if top_k is not None else scored
        ranked = [c.model_copy(update={"rank": i}) for i, c in enumerate(ranked, start=1)]

        latency_ms = (time.time() - start_time) * 1000
        record_scoring(len(items), latency_ms)
        logger.debug(
            "Scored %d candidates in %.1fms (diversify=%s, returned %d)",
            len(items),
            latency_ms,
            diversify,
            len(ranked),
        )
        return ranked

    # ============================================
    # Factors
    # ============================================

    def tokenize(self, text: str) -> list[str]:
        return [
            token
            for token in _TOKEN_PATTERN.findall(text.lower())
            if token not in self._stop_words
        ]

    def _query_terms(self, structured_query) -> list[str]:
        texts = structured_query.expanded_terms or [structured_query.original_query]
        return list(dict.fromkeys(t for text in texts for t in self.tokenize(text)))

    def keyword_scores(self, candidates: list[Candidate], query_tokens: list[str]) -> list[float]:
        """BM25 relevance of each candidate, scaled into [0, 1] by the maximum."""
        corpus = [self.tokenize(c.chunk.text) for c in candidates]
        if not query_tokens or not any(corpus):
            return [0.0] * len(candidates)

        # delta=0 keeps documents without any query term at exactly 0
        index = BM25Plus(corpus, delta=0)
        raw = [max(float(s), 0.0) for s in index.get_scores(query_tokens)]
        top = max(raw)
        if top <= 0:
            return [0.0] * len(candidates)
        return [s / top for s in raw]

    @staticmethod
    def type_preference(candidate: Candidate, preferred: list[str] | None) -> float:
        if not preferred:
            return 0.0
        if candidate.metadata.artifact_type in preferred:
            return 1.0
        return NON_PREFERRED_TYPE_SCORE

    @staticmethod
    def _normalize(scored: list[ScoredCandidate]) -> list[ScoredCandidate]:
        """Min-max normalize composites; a flat set normalizes to 1.0."""
        values = [c.score for c in scored]
        low, high = min(values), max(values)
        span = high - low
        if span <= 0:
            return [c.model_copy(update={"score": 1.0}) for c in scored]
        return [c.model_copy(update={"score": (c.score - low) / span}) for c in scored]

    def _diversify(
        self, ranked: list[ScoredCandidate], top_k: int | None
    ) -> list[ScoredCandidate]:
        """Greedy selection that prefers artifacts not yet chosen.

        Each pick multiplies the score of every remaining candidate from the
        same artifact by the diversity penalty.
        """
        limit = len(ranked) if top_k is None else min(top_k, len(ranked))
        remaining = list(range(len(ranked)))
        penalties = [1.0] * len(ranked)
        seen: set[str] = set()
        selected: list[ScoredCandidate] = []

        while remaining and len(selected) < limit:
            # max() keeps the earliest of equal keys, i.e. the better original rank
            best = max(
                remaining,
                key=lambda i: (
                    ranked[i].artifact_key not in seen,
                    ranked[i].score * penalties[i],
                ),
            )
            remaining.remove(best)
            artifact = ranked[best].artifact_key
            selected.append(
                ranked[best].model_copy(
                    update={
                        "score": ranked[best].score * penalties[best],
                        "diversity_penalty": penalties[best],
                    }
                )
            )
            seen.add(artifact)
            for i in remaining:
                if ranked[i].artifact_key == artifact:
                    penalties[i] *= self.diversity_penalty

        return selected

    # ============================================
    # Introspection
    # ============================================

    @staticmethod
    def score_breakdown(
        candidate: ScoredCandidate, weights: ScoringWeights | None = None
    ) -> dict[str, float]:
        """Weighted contribution of each factor before normalization."""
        weights = weights or get_default_weights()
        return {
            "keyword": weights.keyword * candidate.keyword_score,
            "recency": weights.recency * candidate.time_decay_factor,
            "type_preference": weights.type_preference * candidate.type_preference,
            "semantic": weights.semantic * candidate.original_score,
            "diversity_penalty": candidate.diversity_penalty,
            "final": candidate.score,
        }

    def explain_ranking(
        self, scored: list[ScoredCandidate], weights: ScoringWeights | None = None
    ) -> str:
        weights = weights or get_default_weights()
        lines = [f"Ranking ({len(scored)} candidates), weights {asdict(weights)}"]
        for candidate in scored:
            days = "n/a" if candidate.days_ago is None else f"{candidate.days_ago}d"
            lines.append(
                f"#{candidate.rank} {candidate.chunk_id} score={candidate.score:.3f} "
                f"keyword={candidate.keyword_score:.3f} "
                f"decay={candidate.time_decay_factor:.3f} ({days}) "
                f"type={candidate.type_preference:.1f} "
                f"penalty={candidate.diversity_penalty:.2f}"
            )
        return "\n".join(lines)

    @staticmethod
    def diversity_stats(scored: list[ScoredCandidate]) -> dict[str, float]:
        counts: dict[str, int] = {}
        for candidate in scored:
            counts[candidate.artifact_key] = counts.get(candidate.artifact_key, 0) + 1
        total = len(scored)
        return {
            "total": total,
            "unique_artifacts": len(counts),
            "max_per_artifact": max(counts.values(), default=0),
            "diversity_ratio": len(counts) / total if total else 0.0,
        }
