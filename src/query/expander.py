"""
Synonym-based Query Expansion

Expands a query with alternate phrasings from the static medical synonym
dictionary. Only medical entities (medications, conditions, symptoms) are
expanded; every synonym yields one query variant in which the entity text is
replaced, case-insensitively and on word boundaries, by that synonym.
"""

import logging
import re
from dataclasses import dataclass, field

from src.query.entities import Entity, EntityType
from src.query.vocabulary import Vocabulary, get_vocabulary

logger = logging.getLogger(__name__)

MEDICAL_ENTITY_TYPES = frozenset(
    {EntityType.MEDICATION, EntityType.CONDITION, EntityType.SYMPTOM}
)


@dataclass(frozen=True)
class ExpandedQuery:
    original: str
    expanded_terms: list[str] = field(default_factory=list)
    synonym_map: dict[str, list[str]] = field(default_factory=dict)


def _word_pattern(term: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)", re.IGNORECASE)


def build_expanded_search_terms(term: str, synonyms: list[str]) -> list[str]:
    """Boosted search terms: the original term weighted ``^2``, then its synonyms."""
    return [f"{term}^2", *synonyms]


class QueryExpander:
    """Expands queries with synonyms of the medical entities they mention."""

    def __init__(self, vocabulary: Vocabulary | None = None):
        self._vocab = vocabulary or get_vocabulary()
        self._synonyms = self._vocab.synonyms
        self._key_patterns = {key: _word_pattern(key) for key in self._synonyms}

    def expand_query(self, query: str, entities: list[Entity]) -> ExpandedQuery:
        """Expand ``query`` using the medical entities found in it.

        Args:
            query: Sanitized query text.
            entities: Entities extracted from ``query``.

        Returns:
            ExpandedQuery whose ``expanded_terms`` starts with ``query``.
            Unknown terms leave the result at ``[query]`` with an empty map.
        """
        expanded_terms = [query]
        seen = {query}
        synonym_map: dict[str, list[str]] = {}

        for entity in entities:
            if entity.type not in MEDICAL_ENTITY_TYPES:
                continue

            key = entity.text.lower()
            synonyms = self._lookup(key, entity.normalized_value)
            if not synonyms:
                continue
            synonym_map.setdefault(key, [])

            pattern = _word_pattern(entity.text)
            for synonym in synonyms:
                if synonym.lower() == key:
                    continue
                if synonym not in synonym_map[key]:
                    synonym_map[key].append(synonym)
                # Lambda replacement keeps backslashes in synonyms literal
                variant = pattern.sub(lambda _m, s=synonym: s, query)
                if variant not in seen:
                    seen.add(variant)
                    expanded_terms.append(variant)

        logger.debug(
            "Expanded %r into %d variants (%d terms with synonyms)",
            query[:100],
            len(expanded_terms) - 1,
            len(synonym_map),
        )
        return ExpandedQuery(
            original=query, expanded_terms=expanded_terms, synonym_map=synonym_map
        )

    def expand_batch(
        self, items: list[tuple[str, list[Entity]]]
    ) -> list[ExpandedQuery]:
        return [self.expand_query(query, entities) for query, entities in items]

    def _lookup(self, key: str, normalized_value: str | None) -> list[str]:
        if key in self._synonyms:
            return list(self._synonyms[key])
        if normalized_value and normalized_value in self._synonyms:
            return list(self._synonyms[normalized_value])

        # Multi-word terms fall back to any dictionary key they contain
        if " " in key:
            found: list[str] = []
            for dict_key, pattern in self._key_patterns.items():
                if dict_key != key and pattern.search(key):
                    found.extend(s for s in self._synonyms[dict_key] if s not in found)
            return found
        return []

    def get_medical_synonyms(self, term: str) -> list[str]:
        """Synonyms for a single term, or an empty list if it is unknown."""
        return list(self._synonyms.get(term.lower().strip(), ()))

    def has_synonyms(self, term: str) -> bool:
        return term.lower().strip() in self._synonyms

    def get_all_medical_terms(self) -> list[str]:
        return sorted(self._synonyms)

    build_expanded_search_terms = staticmethod(build_expanded_search_terms)
