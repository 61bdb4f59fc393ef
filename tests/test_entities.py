"""
Tests for Clinical Entity Extraction

Tests cover:
- Lexicon passes (medications, conditions, symptoms)
- Dosage and frequency patterns
- Absolute and relative dates
- Person titles
- Same-type de-duplication, ordering and span validation
"""

import pytest

from src.query.entities import Entity, EntityExtractor, EntityType
from src.security.input_validation import ErrorCode, InvalidSpanError


@pytest.fixture
def extractor():
    return EntityExtractor()


class TestLexiconEntities:
    """Tests for dictionary-based entity passes."""

    @pytest.mark.unit
    def test_medication_dosage_frequency_and_condition(self, extractor):
        text = "Is she still taking metformin 500 mg bid for diabetes?"
        entities = extractor.extract(text)

        assert [(e.type, e.text) for e in entities] == [
            (EntityType.MEDICATION, "metformin"),
            (EntityType.MEDICATION, "500 mg"),
            (EntityType.MEDICATION, "bid"),
            (EntityType.CONDITION, "diabetes"),
        ]
        assert entities[1].normalized_value == "500 mg"
        assert entities[2].normalized_value == "twice daily"

    @pytest.mark.unit
    def test_spans_index_original_text(self, extractor):
        text = "History of Hypertension"
        (entity,) = extractor.extract(text)
        start, end = entity.span
        assert text[start:end] == "Hypertension"
        assert entity.normalized_value == "hypertension"

    @pytest.mark.unit
    def test_abbreviation_normalized(self, extractor):
        (entity,) = extractor.extract("Any change in HTN control?")
        assert entity.type is EntityType.CONDITION
        assert entity.text == "HTN"
        assert entity.normalized_value == "hypertension"

    @pytest.mark.unit
    def test_longest_symptom_wins(self, extractor):
        entities = extractor.extract_by_type("chest pain since Monday", EntityType.SYMPTOM)
        assert [e.text for e in entities] == ["chest pain"]

    @pytest.mark.unit
    def test_brand_name_is_medication(self, extractor):
        assert extractor.has_entity_type("Refill the Lipitor", EntityType.MEDICATION)

    @pytest.mark.unit
    def test_different_types_may_overlap(self, extractor):
        entities = extractor.extract("migraine")
        assert [e.type for e in entities] == [EntityType.CONDITION, EntityType.SYMPTOM]
        assert entities[0].span == entities[1].span


class TestDateAndPersonEntities:
    """Tests for pattern-based entity passes."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "text",
        ["Labs on 2024-03-15", "Labs on 03/15/2024", "Labs on March 15, 2024"],
    )
    def test_absolute_dates_normalize_to_iso(self, extractor, text):
        (entity,) = extractor.extract_by_type(text, EntityType.DATE)
        assert entity.normalized_value == "2024-03-15"

    @pytest.mark.unit
    def test_day_month_year_keeps_longest_span(self, extractor):
        dates = extractor.extract_by_type("Seen on 15 March 2024", EntityType.DATE)
        assert [d.text for d in dates] == ["15 March 2024"]
        assert dates[0].normalized_value == "2024-03-15"

    @pytest.mark.unit
    def test_relative_date_has_no_normalized_value(self, extractor):
        (entity,) = extractor.extract_by_type("notes from the last 3 months", EntityType.DATE)
        assert entity.text == "last 3 months"
        assert entity.normalized_value is None

    @pytest.mark.unit
    def test_person_with_title(self, extractor):
        (person,) = extractor.extract_by_type("Notes from Dr. Smith last week", EntityType.PERSON)
        assert person.text == "Dr. Smith"
        assert person.normalized_value == "Smith"

    @pytest.mark.unit
    def test_person_requires_capitalized_name(self, extractor):
        assert not extractor.has_entity_type("ask the doctor about it", EntityType.PERSON)


class TestEntityInvariants:
    """Tests for ordering, de-duplication and validation."""

    @pytest.mark.unit
    def test_sorted_by_start(self, extractor):
        entities = extractor.extract(
            "Dr. Patel changed lisinopril for hypertension on 2024-02-01"
        )
        starts = [e.start for e in entities]
        assert starts == sorted(starts)

    @pytest.mark.unit
    def test_no_same_type_overlap(self, extractor):
        entities = extractor.extract(
            "type 2 diabetes with diabetic neuropathy and chest pain and pain"
        )
        for entity_type in EntityType:
            same = [e for e in entities if e.type is entity_type]
            for i, a in enumerate(same):
                for b in same[i + 1 :]:
                    assert not a.overlaps(b)

    @pytest.mark.unit
    def test_empty_text(self, extractor):
        assert extractor.extract("") == []

    @pytest.mark.unit
    def test_count_by_type(self, extractor):
        counts = extractor.count_by_type(extractor.extract("aspirin and ibuprofen for pain"))
        assert counts[EntityType.MEDICATION] == 2
        assert counts[EntityType.SYMPTOM] == 1
        assert counts[EntityType.PERSON] == 0

    @pytest.mark.unit
    @pytest.mark.parametrize("span", [(-1, 3), (4, 4), (5, 2)])
    def test_invalid_span_rejected(self, span):
        with pytest.raises(InvalidSpanError) as exc_info:
            Entity(type=EntityType.MEDICATION, text="x", span=span)
        assert exc_info.value.code is ErrorCode.INVALID_SPAN
