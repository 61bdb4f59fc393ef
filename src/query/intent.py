"""
Intent Classification for Clinical Queries

Deterministic, rule-based classifier. Every intent owns weighted keyword
groups and weighted phrase patterns; the raw score of an intent is the sum of
the weights of everything it matched, and confidence is that score's share of
the total across intents. Queries matching nothing fall back to UNKNOWN with
confidence 0.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum

from src.query.vocabulary import Vocabulary, get_vocabulary

logger = logging.getLogger(__name__)

# Relative gap to the top score under which another intent counts as ambiguous
AMBIGUITY_MARGIN = float(os.environ.get("INTENT_AMBIGUITY_MARGIN", "0.15"))


class QueryIntent(str, Enum):
    """Kinds of information a clinical question asks for."""

    RETRIEVE_MEDICATIONS = "retrieve_medications"
    RETRIEVE_CARE_PLANS = "retrieve_care_plans"
    RETRIEVE_NOTES = "retrieve_notes"
    RETRIEVE_ALL = "retrieve_all"
    SUMMARY = "summary"
    COMPARISON = "comparison"
    UNKNOWN = "unknown"


DEFAULT_INTENT = QueryIntent.UNKNOWN


@dataclass(frozen=True)
class IntentScore:
    intent: QueryIntent
    confidence: float


@dataclass(frozen=True)
class IntentClassification:
    """Result of classifying one query."""

    intent: QueryIntent
    confidence: float
    alternatives: list[IntentScore] = field(default_factory=list)
    scores: dict[QueryIntent, float] = field(default_factory=dict)
    matched_keywords: list[str] = field(default_factory=list)

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.alternatives)


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)


class IntentClassifier:
    """Maps query text to a QueryIntent with a confidence in [0, 1]."""

    def __init__(
        self,
        vocabulary: Vocabulary | None = None,
        ambiguity_margin: float = AMBIGUITY_MARGIN,
    ):
        vocab = vocabulary or get_vocabulary()
        self._ambiguity_margin = ambiguity_margin
        # Scored intents in declaration order; this order breaks ties.
        self._intents = [i for i in QueryIntent if i is not DEFAULT_INTENT]
        self._keyword_rules: dict[QueryIntent, list[tuple[str, re.Pattern, float]]] = {
            intent: [] for intent in self._intents
        }
        for intent_name, groups in vocab.intent_keywords.items():
            intent = QueryIntent(intent_name)
            for keywords, weight in groups:
                for keyword in keywords:
                    self._keyword_rules[intent].append(
                        (keyword, _keyword_pattern(keyword), weight)
                    )
        self._phrase_rules: list[tuple[re.Pattern, QueryIntent, float]] = [
            (re.compile(pattern, re.IGNORECASE), QueryIntent(intent), weight)
            for pattern, intent, weight in vocab.intent_phrase_patterns
        ]

    def classify(self, text: str) -> IntentClassification:
        """Classify a query.

        Args:
            text: Raw or sanitized query text.

        Returns:
            IntentClassification with the winning intent, its confidence,
            any near-tie alternatives, and the raw per-intent scores.
        """
        if not text or not text.strip():
            return IntentClassification(intent=DEFAULT_INTENT, confidence=0.0)

        normalized = text.lower().strip()
        raw = self._raw_scores(normalized)
        total = sum(raw.values())

        if total <= 0:
            logger.debug("No intent keywords matched: %r", normalized[:100])
            return IntentClassification(
                intent=DEFAULT_INTENT,
                confidence=0.0,
                scores={intent: 0.0 for intent in self._intents},
            )

        # max() keeps the first of equal scores, i.e. declaration order
        top = max(self._intents, key=lambda i: raw[i])
        top_score = raw[top]

        alternatives = [
            IntentScore(intent=intent, confidence=raw[intent] / total)
            for intent in self._intents
            if intent is not top
            and raw[intent] > 0
            and (top_score - raw[intent]) / top_score < self._ambiguity_margin
        ]
        alternatives.sort(key=lambda s: s.confidence, reverse=True)

        return IntentClassification(
            intent=top,
            confidence=top_score / total,
            alternatives=alternatives,
            scores={intent: raw[intent] / total for intent in self._intents},
            matched_keywords=self.get_matched_keywords(normalized, top),
        )

    def classify_batch(self, texts: list[str]) -> list[IntentClassification]:
        return [self.classify(text) for text in texts]

    def _raw_scores(self, normalized: str) -> dict[QueryIntent, float]:
        raw = {intent: 0.0 for intent in self._intents}
        for intent, rules in self._keyword_rules.items():
            for _keyword, pattern, weight in rules:
                if pattern.search(normalized):
                    raw[intent] += weight
        for pattern, intent, weight in self._phrase_rules:
            if pattern.search(normalized):
                raw[intent] += weight
        return raw

    def get_matched_keywords(self, text: str, intent: QueryIntent) -> list[str]:
        """List the keywords of ``intent`` present in ``text``."""
        rules = self._keyword_rules.get(intent, [])
        return [keyword for keyword, pattern, _ in rules if pattern.search(text)]

    def get_intent_keywords(self) -> dict[QueryIntent, list[str]]:
        return {
            intent: [keyword for keyword, _, _ in rules]
            for intent, rules in self._keyword_rules.items()
        }
