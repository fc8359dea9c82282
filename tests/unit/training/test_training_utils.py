"""Unit tests for training helpers."""

import pytest

from cre_docs.services.training import (
    calculate_confidence_score,
    estimate_training_time,
    generate_changes_summary,
    quality_score_to_stars,
    stars_to_quality_score,
    validate_extraction_data,
)


class TestCalculateConfidenceScore:
    """Test suite for the unverified confidence heuristic."""

    def test_empty_extraction(self):
        assert calculate_confidence_score({}) == pytest.approx(0.5)

    def test_metadata_and_small_data(self):
        extraction = {
            "metadata": {"propertyName": "Harbor Point", "propertyAddress": "12 Pier Rd", "notes": "", "x": None},
            "data": {"a": 1},
        }
        # two populated metadata fields, data under 100 chars
        assert calculate_confidence_score(extraction) == pytest.approx(0.54)

    def test_large_payload_is_capped(self, rent_roll_extraction):
        rent_roll_extraction["metadata"].update({f"field{i}": "x" for i in range(12)})
        rent_roll_extraction["data"]["notes"] = "n" * 2000
        assert calculate_confidence_score(rent_roll_extraction) == pytest.approx(0.95)


class TestValidateExtractionData:
    def test_valid(self, rent_roll_extraction):
        assert validate_extraction_data(rent_roll_extraction) == (True, [])

    def test_null(self):
        assert validate_extraction_data(None) == (False, ["Extraction data is null or undefined"])

    def test_not_an_object(self):
        assert validate_extraction_data(["a"]) == (False, ["Extraction data must be an object"])

    def test_missing_fields(self):
        valid, errors = validate_extraction_data({"documentType": "rent_roll"})
        assert valid is False
        assert errors == ["Missing metadata object", "Missing data object"]


class TestGenerateChangesSummary:
    def test_no_changes(self, rent_roll_extraction):
        assert (
            generate_changes_summary(rent_roll_extraction, dict(rent_roll_extraction))
            == "No significant changes detected"
        )

    def test_all_changes(self, rent_roll_extraction):
        after = {
            "documentType": "operating_budget",
            "metadata": {"propertyName": "Other"},
            "data": {},
        }
        summary = generate_changes_summary(rent_roll_extraction, after)
        assert summary == (
            "Document type changed from rent_roll to operating_budget, "
            "Metadata modified, Data content modified"
        )

    def test_key_order_is_ignored(self):
        before = {"data": {"a": 1, "b": 2}}
        after = {"data": {"b": 2, "a": 1}}
        assert generate_changes_summary(before, after) == "No significant changes detected"


class TestStars:
    @pytest.mark.parametrize("score,stars", [(0.0, 0), (0.5, 3), (0.62, 3), (1.0, 5)])
    def test_score_to_stars(self, score, stars):
        assert quality_score_to_stars(score) == stars

    def test_stars_to_score(self):
        assert stars_to_quality_score(4) == pytest.approx(0.8)


class TestEstimateTrainingTime:
    @pytest.mark.parametrize(
        "count,expected",
        [(10, "~5 minutes"), (15, "~8 minutes"), (150, "~1h 15m"), (240, "~2h 0m")],
    )
    def test_estimate(self, count, expected):
        assert estimate_training_time(count) == expected
