"""
Exponential Time Decay for Retrieval Candidates

    decay_factor = exp(-TIME_DECAY_RATE * days_ago)

With the default rate of 0.01 a note loses about half its weight after 70
days. Candidates dated in the future are not boosted (factor 1.0), and
candidates with a missing or unparseable date are treated as maximally stale
(factor 0.0).
"""

import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime

from src.query.temporal import as_utc
from src.rag.models import Candidate, ScoredCandidate, parse_candidate_date, to_candidates

logger = logging.getLogger(__name__)

TIME_DECAY_RATE = float(os.environ.get("TIME_DECAY_RATE", "0.01"))

DECAY_MILESTONE_DAYS = (0, 7, 30, 90, 180, 365)

SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class DecayPoint:
    days_ago: int
    decay_factor: float
    penalty_pct: float


@dataclass(frozen=True)
class DecayAnalysis:
    date: str
    days_ago: int | None
    decay_factor: float
    penalty_pct: float


def round_days(days_ago: float) -> int:
    """Round an age to whole days; halves round up."""
    return math.floor(days_ago + 0.5)


class TimeDecayScorer:
    """Re-weights candidate scores by the age of their source document."""

    def __init__(self, decay_rate: float = TIME_DECAY_RATE):
        self.decay_rate = decay_rate

    def calculate_decay_factor(self, days_ago: float) -> float:
        if days_ago < 0:
            return 1.0
        return math.exp(-self.decay_rate * days_ago)

    def calculate_days_ago(
        self, date_value, reference_date: datetime | None = None
    ) -> float | None:
        """Unrounded age in days, or None when the date cannot be parsed."""
        parsed = parse_candidate_date(date_value)
        if parsed is None:
            return None
        reference = as_utc(reference_date)
        return (reference - parsed).total_seconds() / SECONDS_PER_DAY

    def decay_factor_for_date(
        self, date_value, reference_date: datetime | None = None
    ) -> float:
        days_ago = self.calculate_days_ago(date_value, reference_date)
        if days_ago is None:
            return 0.0
        return self.calculate_decay_factor(days_ago)

    def apply_time_decay(
        self, candidates, reference_date: datetime | None = None
    ) -> list[ScoredCandidate]:
        """Decay every candidate's score and re-rank.

        Args:
            candidates: Candidate models or dicts.
            reference_date: "Now"; defaults to the current UTC time.

        Returns:
            ScoredCandidates sorted by decayed score (stable, descending)
            with ranks 1..N.
        """
        items = to_candidates(candidates)
        if not items:
            return []
        reference = as_utc(reference_date)

        decayed = [self._decay_one(candidate, reference) for candidate in items]
        decayed.sort(key=lambda c: c.score, reverse=True)
        return [c.model_copy(update={"rank": i}) for i, c in enumerate(decayed, start=1)]

    def _decay_one(self, candidate: Candidate, reference: datetime) -> ScoredCandidate:
        days_ago = self.calculate_days_ago(candidate.metadata.date, reference)
        if days_ago is None:
            logger.warning(
                "Candidate %s has unparseable date %r; decay factor 0",
                candidate.chunk_id,
                candidate.metadata.date,
            )
            factor, reported_days = 0.0, None
        else:
            factor, reported_days = self.calculate_decay_factor(days_ago), round_days(days_ago)

        return ScoredCandidate(
            chunk=candidate.chunk,
            metadata=candidate.metadata,
            score=candidate.score * factor,
            original_score=candidate.score,
            time_decay_factor=factor,
            days_ago=reported_days,
        )

    def batch_apply_time_decay(
        self,
        candidate_lists: list,
        reference_date: datetime | None = None,
        max_workers: int | None = None,
    ) -> list[list[ScoredCandidate]]:
        """Apply decay to several lists; output order matches input order."""
        reference = as_utc(reference_date)
        if max_workers and max_workers > 1 and len(candidate_lists) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                return list(
                    pool.map(lambda c: self.apply_time_decay(c, reference), candidate_lists)
                )
        return [self.apply_time_decay(c, reference) for c in candidate_lists]

    # ============================================
    # Analysis helpers
    # ============================================

    def analyze_decay(
        self, date_value, reference_date: datetime | None = None
    ) -> DecayAnalysis:
        days_ago = self.calculate_days_ago(date_value, reference_date)
        factor = 0.0 if days_ago is None else self.calculate_decay_factor(days_ago)
        return DecayAnalysis(
            date=str(date_value),
            days_ago=None if days_ago is None else round_days(days_ago),
            decay_factor=factor,
            penalty_pct=(1 - factor) * 100,
        )

    def get_decay_curve(self, max_days: int = 365, step: int = 10) -> list[DecayPoint]:
        return [self._point(days) for days in range(0, max_days + 1, step)]

    def get_decay_milestones(self) -> list[DecayPoint]:
        return [self._point(days) for days in DECAY_MILESTONE_DAYS]

    def _point(self, days: int) -> DecayPoint:
        factor = self.calculate_decay_factor(days)
        return DecayPoint(days_ago=days, decay_factor=factor, penalty_pct=(1 - factor) * 100)

    @staticmethod
    def find_most_affected(
        decayed: list[ScoredCandidate], threshold_pct: float = 50.0
    ) -> list[ScoredCandidate]:
        """Candidates whose decay penalty is at least ``threshold_pct`` percent."""
        return [c for c in decayed if (1 - c.time_decay_factor) * 100 >= threshold_pct]
