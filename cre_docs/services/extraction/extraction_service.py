"""Extraction of structured data from CRE documents.

The processing strategy is chosen from the shape of the input:

* multi-page JSON bundle of client-side rasterized pages -> all pages in one request
* PDF with an estimated page count within the native limit -> native document block
* PDF above the limit -> ``DocumentTooLargeForNativeProcessing`` before any model call
* single raster image -> one image block
* anything else -> ``UnsupportedFileType``
"""

import base64
import math
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from cre_docs.core.anthropic_client import AnthropicClient, image_block, pdf_block, text_block
from cre_docs.core.config import settings
from cre_docs.core.exceptions import InvalidExtractionResponse, InvalidMultiPageBundle
from cre_docs.core.exceptions import DocumentTooLargeForNativeProcessing, UnsupportedFileType
from cre_docs.prompts.catalog import PromptCatalog, get_prompt_catalog
from cre_docs.schemas.documents import DocumentFile, DocumentType, MultiPageBundle, PageImage
from cre_docs.services.base_service import BaseService
from cre_docs.utils.json_parser import parse_json
from cre_docs.utils.logging import get_logger

if TYPE_CHECKING:
    from cre_docs.services.feedback.learning_service import LearningService

LOGGER = get_logger(__name__)


def estimate_pdf_page_count(size_bytes: int, bytes_per_page: Optional[int] = None) -> int:
    """Rough page estimate from file size (~100KB per page)."""
    per_page = bytes_per_page or settings.processing.bytes_per_page_estimate
    return max(1, math.ceil(size_bytes / per_page))


def parse_multi_page_bundle(content: bytes) -> List[PageImage]:
    """Decode a multi-page bundle into ordered page images.

    Raises:
        InvalidMultiPageBundle: If the payload is not a ``multi-page`` object with pages.
    """
    try:
        bundle = MultiPageBundle.model_validate_json(content)
    except PydanticValidationError as e:
        LOGGER.error("Failed to parse multi-page data", extra={"errors": e.error_count()})
        raise InvalidMultiPageBundle("Invalid multi-page document format", e) from e
    return bundle.to_page_images()


class ExtractionService(BaseService):
    """Route a document through a processing strategy and extract its data."""

    def __init__(
        self,
        client: AnthropicClient,
        catalog: Optional[PromptCatalog] = None,
        learning_service: Optional["LearningService"] = None,
    ):
        super().__init__()
        self.client = client
        self.catalog = catalog or get_prompt_catalog()
        self.learning_service = learning_service

    async def extract_document_data(
        self,
        file: DocumentFile,
        document_type: Union[DocumentType, str],
        prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Extract structured data from an uploaded file.

        Args:
            file: Uploaded file with name, MIME type and bytes
            document_type: Classified document type
            prompt: Prebuilt extraction prompt; built with
                ``build_system_prompt`` when omitted

        Returns:
            Parsed extraction with ``documentType``, ``metadata`` and ``data``

        Raises:
            DocumentTooLargeForNativeProcessing: PDF above the native page limit
            UnsupportedFileType: No strategy for the MIME type
            InvalidMultiPageBundle: Malformed multi-page JSON
            InvalidExtractionResponse: Reply without ``documentType`` or ``data``
        """
        return await self.execute(file, DocumentType(document_type), prompt)

    async def extract_from_images(
        self, images: List[PageImage], document_type: Union[DocumentType, str]
    ) -> Dict[str, Any]:
        """Extract from page images that are already decoded."""
        document_type = DocumentType(document_type)
        prompt = await self.build_system_prompt(document_type)
        return await self._extract_images(images, document_type, prompt)

    async def run(
        self, file: DocumentFile, document_type: DocumentType, prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        LOGGER.info(
            f"Starting data extraction for {document_type.value}",
            extra={"file_name": file.name, "mime_type": file.mime_type, "size_kb": round(file.size / 1024, 2)},
        )

        if file.is_multi_page_bundle:
            images = parse_multi_page_bundle(file.content)
            LOGGER.info(f"Multi-page document detected: {len(images)} pages")
            prompt = prompt or await self.build_system_prompt(document_type)
            return await self._extract_images(images, document_type, prompt)

        if file.mime_type == "application/pdf":
            estimated_pages = estimate_pdf_page_count(file.size)
            page_limit = settings.processing.native_pdf_page_limit
            LOGGER.info(f"PDF detected. Estimated pages: {estimated_pages}")
            if estimated_pages > page_limit:
                raise DocumentTooLargeForNativeProcessing(estimated_pages, page_limit)
            prompt = prompt or await self.build_system_prompt(document_type)
            return await self._extract_native_pdf(file.content, document_type, prompt)

        if file.mime_type.startswith("image/"):
            images = [PageImage.from_bytes(file.content, file.mime_type, page_number=1)]
            prompt = prompt or await self.build_system_prompt(document_type)
            return await self._extract_images(images, document_type, prompt)

        raise UnsupportedFileType(file.mime_type)

    async def build_system_prompt(self, document_type: Union[DocumentType, str]) -> str:
        """Extraction prompt for a type, enhanced with stored learnings when available.

        Reads the database through the learning service.
        """
        document_type = DocumentType(document_type)
        prompt = self.catalog.extraction_prompt(document_type)
        if self.learning_service is None:
            return prompt
        return await self.learning_service.build_enhanced_system_prompt(document_type.value, prompt)

    async def _extract_images(
        self, images: List[PageImage], document_type: DocumentType, prompt: str
    ) -> Dict[str, Any]:
        content: List[dict] = [image_block(image) for image in images]
        content.append(text_block(self.catalog.multi_page_prompt(prompt, len(images))))

        LOGGER.info(f"Sending {len(images)} image(s) for extraction")
        return await self._invoke(
            content, self.catalog.image_extraction_system, document_type, pages=len(images)
        )

    async def _extract_native_pdf(
        self, pdf_bytes: bytes, document_type: DocumentType, prompt: str
    ) -> Dict[str, Any]:
        pdf_base64 = base64.b64encode(pdf_bytes).decode("ascii")
        content = [pdf_block(pdf_base64), text_block(prompt)]

        LOGGER.info(f"Using native PDF processing for {document_type.value}")
        return await self._invoke(content, self.catalog.native_pdf_system, document_type, pages=None)

    async def _invoke(
        self,
        content: List[dict],
        system: str,
        document_type: DocumentType,
        pages: Optional[int],
    ) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            response = await self.client.create_message(
                content=content,
                system=system,
                max_tokens=settings.anthropic.extraction_max_tokens,
                temperature=settings.anthropic.temperature,
            )
        except Exception:
            LOGGER.error(
                f"Extraction call failed after {time.perf_counter() - started:.1f}s",
                exc_info=True,
                extra={"document_type": document_type.value, "pages": pages},
            )
            raise

        LOGGER.info(
            f"Extraction call completed in {time.perf_counter() - started:.1f}s",
            extra={
                "document_type": document_type.value,
                "pages": pages,
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
            },
        )

        extracted = parse_json(response.text)
        return self._validate_extraction(extracted)

    @staticmethod
    def _validate_extraction(extracted: Any) -> Dict[str, Any]:
        if not isinstance(extracted, dict) or not extracted.get("documentType") or not extracted.get("data"):
            raise InvalidExtractionResponse(
                "Invalid extraction response structure - missing documentType or data"
            )
        LOGGER.info(f"Extraction successful for document type: {extracted['documentType']}")
        return extracted
