"""Unit tests for LearningService."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from cre_docs.core.exceptions import DatabaseError
from cre_docs.services.feedback import LearningService

BASE_PROMPT = "Extract the rent roll."


def _document(index: int, notes: str = "Dates must be ISO formatted"):
    return SimpleNamespace(
        id=f"doc-{index}",
        verification_notes=notes,
        raw_extraction={"data": {"leaseEndDate": "06/30/27"}},
        verified_extraction={"data": {"leaseEndDate": "2027-06-30"}},
    )


@pytest.fixture
def learning_service(mock_session):
    service = LearningService(mock_session)
    service.document_repo = AsyncMock()
    service.metrics_repo = AsyncMock()
    return service


class TestLearningService:
    """Test suite for learning aggregation and prompt enhancement."""

    @pytest.mark.asyncio
    async def test_no_verifications_returns_base_prompt(self, learning_service):
        learning_service.document_repo.get_annotated_documents.return_value = []

        prompt = await learning_service.build_enhanced_system_prompt("rent_roll", BASE_PROMPT)

        assert prompt == BASE_PROMPT

    @pytest.mark.asyncio
    async def test_enhanced_prompt_extends_base(self, learning_service):
        learning_service.document_repo.get_annotated_documents.return_value = [
            _document(index) for index in range(3)
        ]

        prompt = await learning_service.build_enhanced_system_prompt("rent_roll", BASE_PROMPT)

        assert prompt.startswith(BASE_PROMPT)
        assert "**IMPORTANT LEARNINGS FROM VERIFICATIONS:**" in prompt
        assert "1. Pay special attention to date formats. Common issues: data.leaseEndDate" in prompt
        assert "- data.leaseEndDate: date format error (occurred 3 times)" in prompt

    @pytest.mark.asyncio
    async def test_two_occurrences_add_no_suggestion(self, learning_service):
        learning_service.document_repo.get_annotated_documents.return_value = [
            _document(index, notes="Looked fine overall") for index in range(2)
        ]

        learnings = await learning_service.aggregate_document_type_learnings("rent_roll")

        assert learnings.total_verifications == 2
        assert learnings.improvement_suggestions == []
        assert learnings.common_errors[0].frequency == 2

    @pytest.mark.asyncio
    async def test_database_failure_yields_empty_learnings(self, learning_service):
        learning_service.document_repo.get_annotated_documents.side_effect = DatabaseError(
            "connection lost"
        )

        learnings = await learning_service.aggregate_document_type_learnings("rent_roll")
        prompt = await learning_service.build_enhanced_system_prompt("rent_roll", BASE_PROMPT)

        assert learnings.total_verifications == 0
        assert prompt == BASE_PROMPT

    @pytest.mark.asyncio
    async def test_store_learning_insights_keeps_top_ten(self, learning_service):
        raw = {f"field{index}": 1 for index in range(15)}
        verified = {f"field{index}": 2 for index in range(15)}
        learning_service.document_repo.get_annotated_documents.return_value = [
            SimpleNamespace(id="doc", verification_notes="n", raw_extraction=raw, verified_extraction=verified)
        ]

        await learning_service.refresh_learnings("rent_roll")

        document_type, insights = learning_service.metrics_repo.store_learning_insights.call_args.args
        assert document_type == "rent_roll"
        assert insights["total_verifications"] == 1
        assert len(insights["common_errors"]) == 10
        assert "last_updated" in insights

    @pytest.mark.asyncio
    async def test_get_learnings_includes_stored_insights(self, learning_service):
        learning_service.document_repo.get_annotated_documents.return_value = []
        learning_service.metrics_repo.get_by_document_type.return_value = SimpleNamespace(
            learning_insights={"total_verifications": 7}
        )

        result = await learning_service.get_learnings("rent_roll")

        assert result["document_type"] == "rent_roll"
        assert result["stored_insights"] == {"total_verifications": 7}
