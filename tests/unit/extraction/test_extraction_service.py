"""Unit tests for ExtractionService strategy routing."""

import base64
import json
from unittest.mock import AsyncMock

import pytest

from cre_docs.core.exceptions import (
    DocumentTooLargeForNativeProcessing,
    InvalidExtractionResponse,
    InvalidMultiPageBundle,
    UnsupportedFileType,
)
from cre_docs.schemas.documents import DocumentFile, DocumentType
from cre_docs.services.extraction import (
    ExtractionService,
    estimate_pdf_page_count,
    parse_multi_page_bundle,
)

PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="


def _pdf(pages: int) -> DocumentFile:
    return DocumentFile(name="rent_roll.pdf", mime_type="application/pdf", content=b"%" * (pages * 102400))


def _bundle(pages: int) -> DocumentFile:
    payload = {
        "type": "multi-page",
        "pages": [
            {"imageBase64": PNG_B64, "mimeType": "image/png", "pageNumber": index + 1}
            for index in range(pages)
        ],
    }
    return DocumentFile(
        name="rent_roll_multipage.json",
        mime_type="application/json",
        content=json.dumps(payload).encode(),
    )


@pytest.fixture
def extraction_reply(model_reply, rent_roll_extraction):
    return model_reply(rent_roll_extraction)


class TestPageEstimate:
    """Test suite for the PDF page heuristic."""

    def test_estimates(self):
        assert estimate_pdf_page_count(0) == 1
        assert estimate_pdf_page_count(102400) == 1
        assert estimate_pdf_page_count(102401) == 2
        assert estimate_pdf_page_count(819200) == 8


class TestExtractionService:
    """Test suite for document extraction."""

    @pytest.mark.asyncio
    async def test_small_pdf_uses_native_processing(self, extraction_reply):
        service = ExtractionService(extraction_reply)

        result = await service.extract_document_data(_pdf(3), DocumentType.RENT_ROLL)

        assert result["documentType"] == "rent_roll"
        extraction_reply.create_message.assert_awaited_once()
        content = extraction_reply.create_message.call_args.kwargs["content"]
        assert content[0]["type"] == "document"
        assert content[0]["source"]["media_type"] == "application/pdf"

    @pytest.mark.asyncio
    async def test_large_pdf_is_refused_before_any_model_call(self, extraction_reply):
        service = ExtractionService(extraction_reply)

        with pytest.raises(DocumentTooLargeForNativeProcessing) as exc_info:
            await service.extract_document_data(_pdf(8), "rent_roll")

        assert exc_info.value.estimated_pages == 8
        assert "client side" in exc_info.value.message
        extraction_reply.create_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_multi_page_bundle_sends_all_pages_in_order(self, extraction_reply):
        service = ExtractionService(extraction_reply)

        await service.extract_document_data(_bundle(12), DocumentType.RENT_ROLL)

        extraction_reply.create_message.assert_awaited_once()
        content = extraction_reply.create_message.call_args.kwargs["content"]
        assert [block["type"] for block in content] == ["image"] * 12 + ["text"]
        assert "You are viewing 12 pages" in content[-1]["text"]

    @pytest.mark.asyncio
    async def test_single_image(self, extraction_reply):
        image = DocumentFile(name="page.png", mime_type="image/png", content=base64.b64decode(PNG_B64))

        await ExtractionService(extraction_reply).extract_document_data(image, "rent_roll")

        content = extraction_reply.create_message.call_args.kwargs["content"]
        assert [block["type"] for block in content] == ["image", "text"]
        assert "MULTI-PAGE" not in content[-1]["text"]

    @pytest.mark.asyncio
    async def test_unsupported_type(self, extraction_reply):
        text_file = DocumentFile(name="notes.txt", mime_type="text/plain", content=b"hello")

        with pytest.raises(UnsupportedFileType):
            await ExtractionService(extraction_reply).extract_document_data(text_file, "rent_roll")
        extraction_reply.create_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_without_data_is_rejected(self, model_reply):
        client = model_reply({"documentType": "rent_roll", "metadata": {}})

        with pytest.raises(InvalidExtractionResponse):
            await ExtractionService(client).extract_document_data(_pdf(1), "rent_roll")

    @pytest.mark.asyncio
    async def test_prompt_is_enhanced_with_learnings(self, extraction_reply):
        learning_service = AsyncMock()
        learning_service.build_enhanced_system_prompt.return_value = "ENHANCED PROMPT"
        service = ExtractionService(extraction_reply, learning_service=learning_service)

        await service.extract_document_data(_pdf(2), DocumentType.RENT_ROLL)

        learning_service.build_enhanced_system_prompt.assert_awaited_once()
        assert learning_service.build_enhanced_system_prompt.call_args.args[0] == "rent_roll"
        content = extraction_reply.create_message.call_args.kwargs["content"]
        assert content[-1]["text"] == "ENHANCED PROMPT"

    @pytest.mark.asyncio
    async def test_prebuilt_prompt_skips_learnings(self, extraction_reply):
        learning_service = AsyncMock()
        service = ExtractionService(extraction_reply, learning_service=learning_service)

        await service.extract_document_data(_pdf(2), "rent_roll", prompt="PREBUILT PROMPT")

        learning_service.build_enhanced_system_prompt.assert_not_awaited()
        content = extraction_reply.create_message.call_args.kwargs["content"]
        assert content[-1]["text"] == "PREBUILT PROMPT"


class TestMultiPageBundle:
    """Test suite for multi-page bundle decoding."""

    def test_decodes_pages(self):
        pages = parse_multi_page_bundle(_bundle(3).content)
        assert [page.page_number for page in pages] == [1, 2, 3]
        assert pages[0].media_type == "image/png"

    @pytest.mark.parametrize(
        "content",
        [b"not json", b'{"type": "single", "pages": []}', b'{"type": "multi-page", "pages": []}'],
    )
    def test_invalid_bundles(self, content):
        with pytest.raises(InvalidMultiPageBundle):
            parse_multi_page_bundle(content)
