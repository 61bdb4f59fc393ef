"""
Retrieval Candidate Models

Candidates are chunks an external retriever has already produced. They enter
as models or plain dicts (validated with ``Candidate.model_validate``) and
leave the scorers as ranked ``ScoredCandidate`` objects.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class Chunk(BaseModel):
    chunk_id: str = Field(..., description="Unique chunk identifier")
    text: str = Field(..., description="The text content of the chunk")
    artifact_id: str | None = Field(None, description="Source artifact (document) ID")


class CandidateMetadata(BaseModel):
    """Chunk metadata; unknown keys are kept as extra fields."""

    model_config = ConfigDict(extra="allow")

    date: str | datetime | None = None
    artifact_type: str | None = None
    author: str | None = None
    patient_id: str | None = None
    artifact_id: str | None = None


class Candidate(BaseModel):
    chunk: Chunk
    metadata: CandidateMetadata = Field(default_factory=CandidateMetadata)
    score: float = 0.0

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id

    @property
    def artifact_key(self) -> str:
        """Artifact identity used for diversity: chunk, then metadata, then chunk ID."""
        return self.chunk.artifact_id or self.metadata.artifact_id or self.chunk.chunk_id


class ScoredCandidate(Candidate):
    """A candidate after scoring, with every factor that produced its score."""

    original_score: float = 0.0
    time_decay_factor: float = 1.0
    days_ago: int | None = None
    rank: int = 0
    keyword_score: float = 0.0
    type_preference: float = 0.0
    diversity_penalty: float = 1.0


def to_candidate(value: Candidate | dict[str, Any]) -> Candidate:
    if isinstance(value, Candidate):
        return value
    return Candidate.model_validate(value)


def to_candidates(values) -> list[Candidate]:
    return [to_candidate(v) for v in values]


def parse_candidate_date(value: str | datetime | None) -> datetime | None:
    """Parse a metadata date into an aware UTC datetime.

    Returns None for missing or unparseable values. Naive values are read
    as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            try:
                parsed = date_parser.parse(text)
            except (ValueError, OverflowError):
                logger.warning("Unparseable candidate date: %r", text)
                return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
