"""
EMR Query Ranking Test Configuration

Pytest fixtures and configuration for the test suite.
"""

from collections.abc import Generator
from datetime import datetime, timezone

import pytest

from src.observability.metrics import reset_metrics
from src.query.agent import QueryFilters, QueryUnderstandingAgent, StructuredQuery

# ============================================
# Global Fixtures
# ============================================


@pytest.fixture(autouse=True)
def clean_metrics() -> Generator[None, None, None]:
    """Clear in-process metric counters around each test."""
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def reference_date() -> datetime:
    """Fixed "now": Saturday 2024-06-15 12:00 UTC."""
    return datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def agent() -> QueryUnderstandingAgent:
    return QueryUnderstandingAgent()


# ============================================
# Sample Data Fixtures
# ============================================


def make_candidate(
    chunk_id: str,
    text: str = "Routine follow-up visit.",
    *,
    artifact_id: str | None = None,
    date: str | None = "2024-06-01T00:00:00Z",
    artifact_type: str | None = "progress_note",
    author: str | None = None,
    patient_id: str | None = "patient-1",
    score: float = 0.5,
) -> dict:
    """Candidate dict in the shape a retriever returns."""
    return {
        "chunk": {"chunk_id": chunk_id, "text": text, "artifact_id": artifact_id},
        "metadata": {
            "date": date,
            "artifact_type": artifact_type,
            "author": author,
            "patient_id": patient_id,
        },
        "score": score,
    }


@pytest.fixture
def sample_candidates() -> list[dict]:
    """Mixed candidates for one chart plus one from another patient."""
    return [
        make_candidate(
            "c1",
            "Metformin 500 mg twice daily for diabetes.",
            artifact_id="a1",
            date="2024-06-01",
            artifact_type="medication_order",
            author="Dr. Smith",
        ),
        make_candidate(
            "c2",
            "Progress note: patient reports fatigue.",
            artifact_id="a2",
            date="2024-01-10",
            artifact_type="progress_note",
            author="Nurse Joy",
        ),
        make_candidate(
            "c3",
            "Lisinopril 10 mg daily for hypertension.",
            artifact_id="a3",
            date="2024-05-20",
            artifact_type="medication_order",
            author="Dr. Smith",
            patient_id="patient-2",
        ),
        make_candidate(
            "c4",
            "Prescription renewed for metformin.",
            artifact_id="a4",
            date="unknown",
            artifact_type="prescription",
            author="dr. smith",
        ),
        make_candidate(
            "c5",
            "Started metformin after diabetes diagnosis.",
            artifact_id="a1",
            date="2023-12-31T23:00:00Z",
            artifact_type="medication_order",
        ),
    ]


@pytest.fixture
def hypertension_query() -> StructuredQuery:
    return StructuredQuery(
        original_query="hypertension medications",
        patient_id="patient-1",
        filters=QueryFilters(artifact_types=["medication_order", "prescription"]),
        expanded_terms=["hypertension medications"],
    )


@pytest.fixture
def candidate_factory():
    """Build candidate dicts with overridable fields."""
    return make_candidate


# ============================================
# Pytest Configuration
# ============================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
