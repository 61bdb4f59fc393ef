"""
Tests for Metadata Filtering

Tests cover:
- Each clause on its own and AND-combined
- Linear and indexed modes returning the same set
- Vector-store where-clause generation
- Criteria validation and statistics
"""

from datetime import datetime, timezone

import pytest

from src.query.agent import QueryUnderstandingAgent
from src.rag.filters import FilterCriteria, MetadataFilter
from src.security.input_validation import InvalidDateRangeError


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def ids(candidates) -> list[str]:
    return [c.chunk_id for c in candidates]


@pytest.fixture
def metadata_filter():
    return MetadataFilter()


CRITERIA = [
    FilterCriteria(),
    FilterCriteria(patient_id="patient-1"),
    FilterCriteria(artifact_types=["medication_order", "prescription"]),
    FilterCriteria(date_from=utc(2024, 1, 1), date_to=utc(2024, 6, 30)),
    FilterCriteria(date_from=utc(2024, 5, 1)),
    FilterCriteria(date_to=utc(2024, 1, 31)),
    FilterCriteria(author="DR. SMITH"),
    FilterCriteria(
        patient_id="patient-1",
        artifact_types=["medication_order"],
        date_from=utc(2023, 12, 1),
        date_to=utc(2024, 12, 31),
    ),
    FilterCriteria(patient_id="nobody"),
    FilterCriteria(date_from=utc(500, 1, 1), date_to=utc(2024, 1, 1)),
]


class TestFilterClauses:
    """Tests for individual and combined clauses."""

    @pytest.mark.unit
    def test_patient(self, metadata_filter, sample_candidates):
        result = metadata_filter.filter(sample_candidates, FilterCriteria(patient_id="patient-1"))
        assert ids(result) == ["c1", "c2", "c4", "c5"]

    @pytest.mark.unit
    def test_patient_and_types(self, metadata_filter, sample_candidates):
        criteria = FilterCriteria(
            patient_id="patient-1", artifact_types=["medication_order", "prescription"]
        )
        assert ids(metadata_filter.filter(sample_candidates, criteria)) == ["c1", "c4", "c5"]

    @pytest.mark.unit
    def test_inclusive_date_range_skips_unparseable(self, metadata_filter, sample_candidates):
        criteria = FilterCriteria(date_from=utc(2024, 1, 1), date_to=utc(2024, 6, 30))
        assert ids(metadata_filter.filter(sample_candidates, criteria)) == ["c1", "c2", "c3"]

    @pytest.mark.unit
    def test_date_bounds_are_inclusive(self, metadata_filter, sample_candidates):
        criteria = FilterCriteria(date_from=utc(2024, 6, 1), date_to=utc(2024, 6, 1))
        assert ids(metadata_filter.filter(sample_candidates, criteria)) == ["c1"]

    @pytest.mark.unit
    def test_author_case_insensitive(self, metadata_filter, sample_candidates):
        result = metadata_filter.filter(sample_candidates, FilterCriteria(author="DR. SMITH"))
        assert ids(result) == ["c1", "c3", "c4"]

    @pytest.mark.unit
    def test_empty_criteria_keeps_everything(self, metadata_filter, sample_candidates):
        assert len(metadata_filter.filter(sample_candidates, FilterCriteria())) == 5

    @pytest.mark.unit
    def test_empty_input(self, metadata_filter):
        assert metadata_filter.filter([], FilterCriteria(patient_id="patient-1")) == []

    @pytest.mark.unit
    def test_inverted_range_raises(self, metadata_filter, sample_candidates):
        criteria = FilterCriteria(date_from=utc(2024, 6, 1), date_to=utc(2024, 1, 1))
        with pytest.raises(InvalidDateRangeError):
            metadata_filter.filter(sample_candidates, criteria)


class TestIndexedMode:
    """Tests for MetadataIndex-backed filtering."""

    @pytest.mark.unit
    @pytest.mark.parametrize("criteria", CRITERIA)
    def test_index_matches_linear(self, metadata_filter, sample_candidates, criteria):
        linear = metadata_filter.filter(sample_candidates, criteria)
        indexed = metadata_filter.filter(sample_candidates, criteria, use_index=True)
        assert ids(indexed) == ids(linear)

    @pytest.mark.unit
    def test_index_matches_linear_for_early_years(self, metadata_filter, candidate_factory):
        candidates = [candidate_factory("c1", date="1990-05-01")]
        criteria = FilterCriteria(date_from=utc(500, 1, 1), date_to=utc(2024, 1, 1))
        linear = metadata_filter.filter(candidates, criteria)
        indexed = metadata_filter.filter(candidates, criteria, use_index=True)
        assert ids(linear) == ids(indexed) == ["c1"]

    @pytest.mark.unit
    def test_month_keys_are_zero_padded(self, metadata_filter, candidate_factory):
        index = metadata_filter.build_index([candidate_factory("c1", date="0987-03-04")])
        assert set(index.by_month) == {"0987-03"}

    @pytest.mark.unit
    def test_index_buckets(self, metadata_filter, sample_candidates):
        index = metadata_filter.build_index(sample_candidates)
        stats = index.stats()
        assert stats["total_candidates"] == 5
        assert stats["unique_patients"] == 2
        assert stats["unique_authors"] == 2
        assert stats["undated"] == 1
        assert set(index.by_month) == {"2024-06", "2024-01", "2024-05", "2023-12"}

    @pytest.mark.unit
    def test_batch_filter(self, metadata_filter, sample_candidates):
        results = metadata_filter.batch_filter(
            sample_candidates,
            [FilterCriteria(patient_id="patient-2"), FilterCriteria(author="nurse joy")],
            use_index=True,
        )
        assert [ids(r) for r in results] == [["c3"], ["c2"]]


class TestVectorStoreFilter:
    """Tests for the declarative where clause."""

    @pytest.mark.unit
    def test_no_clauses(self, metadata_filter):
        assert metadata_filter.to_vector_store_filter(FilterCriteria()) == {}

    @pytest.mark.unit
    def test_single_clause_unwrapped(self, metadata_filter):
        where = metadata_filter.to_vector_store_filter(FilterCriteria(patient_id="patient-1"))
        assert where == {"patient_id": {"$eq": "patient-1"}}

    @pytest.mark.unit
    def test_all_clauses_combined(self, metadata_filter):
        criteria = FilterCriteria(
            patient_id="patient-1",
            artifact_types=["medication_order"],
            date_from=utc(2024, 1, 1),
            date_to=utc(2024, 3, 31),
            author="Dr. Smith",
        )
        where = metadata_filter.to_vector_store_filter(criteria)
        assert where == {
            "$and": [
                {"patient_id": {"$eq": "patient-1"}},
                {"artifact_type": {"$in": ["medication_order"]}},
                {"date": {"$gte": "2024-01-01T00:00:00+00:00"}},
                {"date": {"$lte": "2024-03-31T00:00:00+00:00"}},
                {"author": {"$eq": "Dr. Smith"}},
            ]
        }


class TestCriteriaHelpers:
    """Tests for criteria construction and statistics."""

    @pytest.mark.unit
    def test_from_structured_query(self, reference_date):
        structured = QueryUnderstandingAgent().parse(
            "medications in the last 30 days", "patient-1", reference_date
        )
        criteria = FilterCriteria.from_structured_query(structured)
        assert criteria.patient_id == "patient-1"
        assert criteria.artifact_types == ["medication_order", "prescription"]
        assert criteria.date_to == reference_date
        assert criteria.author is None

    @pytest.mark.unit
    def test_filter_with_stats(self, metadata_filter, sample_candidates):
        criteria = FilterCriteria(patient_id="patient-1", author="dr. smith")
        result = metadata_filter.filter_with_stats(sample_candidates, criteria)
        assert result.total_before == 5
        assert result.total_after == 2
        assert result.filters_applied == ["patient_id", "author"]
        assert ids(result.candidates) == ["c1", "c4"]
