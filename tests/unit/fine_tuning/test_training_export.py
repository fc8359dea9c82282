"""Unit tests for JSONL training exports."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from cre_docs.core.exceptions import StorageError, ValidationError
from cre_docs.services.fine_tuning import TrainingExportService, validate_jsonl_format


def _example() -> dict:
    return {
        "messages": [
            {"role": "system", "content": "You extract rent rolls."},
            {"role": "user", "content": "Extract this."},
            {"role": "assistant", "content": "{}"},
        ]
    }


def _document(**values) -> SimpleNamespace:
    defaults = {
        "id": uuid4(),
        "document_type": "rent_roll",
        "file_path": "rent_roll/harbor.png",
        "file_name": "harbor.png",
        "file_type": "image/png",
        "raw_extraction": {"documentType": "rent_roll", "data": {"tenants": []}},
        "verified_extraction": None,
        "dataset_split": "train",
        "quality_score": None,
    }
    defaults.update(values)
    return SimpleNamespace(**defaults)


@pytest.fixture
def catalog() -> MagicMock:
    catalog = MagicMock()
    catalog.training_system_prompt.return_value = "SYSTEM"
    catalog.training_instruction.return_value = "INSTRUCTION"
    return catalog


@pytest.fixture
def storage(png_bytes) -> AsyncMock:
    storage = AsyncMock()
    storage.download_file.return_value = png_bytes
    storage.upload_file.return_value = {"path": "rent_roll/file.jsonl", "url": "https://cdn/file.jsonl"}
    return storage


@pytest.fixture
def export_service(mock_session, storage, catalog) -> TrainingExportService:
    service = TrainingExportService(mock_session, storage=storage, catalog=catalog)
    service.document_repo = AsyncMock()
    service.metrics_repo = AsyncMock()
    return service


class TestValidateJsonlFormat:
    """Test suite for JSONL validation."""

    def test_valid_file(self):
        content = "\n".join(json.dumps(_example()) for _ in range(3)) + "\n"
        valid, errors = validate_jsonl_format(content)
        assert valid is True
        assert errors == []

    def test_invalid_json_line(self):
        content = json.dumps(_example()) + "\n{not json"
        valid, errors = validate_jsonl_format(content)
        assert valid is False
        assert errors[0].startswith("Line 2: Invalid JSON")

    def test_missing_messages(self):
        valid, errors = validate_jsonl_format(json.dumps({"prompt": "x"}))
        assert valid is False
        assert errors == ["Line 1: Missing or invalid 'messages' array"]

    def test_bad_role_and_empty_content(self):
        example = {"messages": [{"role": "tool", "content": ""}]}
        valid, errors = validate_jsonl_format(json.dumps(example))
        assert valid is False
        assert "Line 1, Message 1: Invalid role" in errors
        assert "Line 1, Message 1: Missing content" in errors


class TestCreateTrainingExample:
    """Test suite for building chat-format examples."""

    @pytest.mark.asyncio
    async def test_prefers_verified_extraction(self, export_service):
        verified = {"documentType": "rent_roll", "data": {"tenants": [{"tenantName": "A"}]}}
        example = await export_service.create_training_example(
            _document(verified_extraction=verified)
        )

        system, user, assistant = example["messages"]
        assert system == {"role": "system", "content": "SYSTEM"}
        assert user["content"][0] == {"type": "text", "text": "INSTRUCTION"}
        image = user["content"][1]
        assert image["type"] == "image_url"
        assert image["image_url"]["detail"] == "high"
        assert image["image_url"]["url"].startswith("data:image/png;base64,")
        assert json.loads(assistant["content"]) == verified

    @pytest.mark.asyncio
    async def test_falls_back_to_raw_extraction(self, export_service):
        document = _document()
        example = await export_service.create_training_example(document)
        assert json.loads(example["messages"][2]["content"]) == document.raw_extraction

    @pytest.mark.asyncio
    async def test_no_extraction(self, export_service):
        with pytest.raises(ValidationError):
            await export_service.create_training_example(_document(raw_extraction=None))


class TestExportTrainingData:
    """Test suite for full exports."""

    @pytest.mark.asyncio
    async def test_unreadable_document_is_skipped(self, export_service, storage, png_bytes):
        export_service.document_repo.get_training_set.side_effect = [
            [_document(), _document(file_path="missing.png")],
            [],
        ]
        storage.download_file.side_effect = [png_bytes, StorageError("not found")]

        result = await export_service.export_training_data("rent_roll")

        assert result.train.examples == 1
        assert result.train.skipped == 1
        assert result.validation.examples == 0
        assert result.validation.content is None
        valid, _ = validate_jsonl_format(result.train.content.decode("utf-8"))
        assert valid is True
        storage.upload_file.assert_awaited_once()
        export_service.metrics_repo.mark_exported.assert_awaited_once_with("rent_roll")

    @pytest.mark.asyncio
    async def test_stats(self, export_service):
        export_service.document_repo.get_training_set.return_value = [
            _document(quality_score=4.0),
            _document(quality_score=5.0, dataset_split="validation"),
            _document(),
        ]

        stats = await export_service.get_training_data_stats("rent_roll")

        assert stats["total_verified"] == 3
        assert stats["train_ready"] == 2
        assert stats["validation_ready"] == 1
        assert stats["average_quality_score"] == 4.5
        assert stats["meets_minimum"] is False
