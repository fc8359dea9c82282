"""Document classification against the eight CRE categories."""

import time
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from cre_docs.core.anthropic_client import AnthropicClient, image_block, text_block
from cre_docs.core.config import settings
from cre_docs.core.exceptions import InvalidClassificationResponse, ValidationError
from cre_docs.prompts.catalog import PromptCatalog, get_prompt_catalog
from cre_docs.schemas.documents import Classification, PageImage
from cre_docs.services.base_service import BaseService
from cre_docs.utils.json_parser import parse_json
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ClassificationService(BaseService):
    """Classify page images into a document type.

    Stateless: one model call per request, no retries above the transport
    layer. A reply without a usable type/confidence/reasoning triple fails
    with ``InvalidClassificationResponse``.
    """

    def __init__(self, client: AnthropicClient, catalog: Optional[PromptCatalog] = None):
        super().__init__()
        self.client = client
        self.catalog = catalog or get_prompt_catalog()

    async def classify_document(self, images: Sequence[PageImage]) -> Classification:
        """Classify a document from its page images, in page order."""
        return await self.execute(images)

    def validate(self, images: Sequence[PageImage]) -> None:
        if not images:
            raise ValidationError("At least one page image is required for classification")

    async def run(self, images: Sequence[PageImage]) -> Classification:
        LOGGER.info(f"Starting document classification for {len(images)} page(s)")

        content: List[dict] = [image_block(image) for image in images]
        content.append(text_block(self.catalog.classification_prompt))

        started = time.perf_counter()
        response = await self.client.create_message(
            content=content,
            system=self.catalog.classification_system,
            max_tokens=settings.anthropic.classification_max_tokens,
            temperature=settings.anthropic.temperature,
        )
        LOGGER.info(
            f"Classification response received in {time.perf_counter() - started:.2f}s",
            extra={
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
            },
        )

        return self._to_classification(parse_json(response.text))

    @staticmethod
    def _to_classification(payload: Any) -> Classification:
        if not isinstance(payload, dict):
            raise InvalidClassificationResponse(
                "Invalid classification response structure - expected a JSON object"
            )
        if (
            not payload.get("type")
            or payload.get("confidence") is None
            or not payload.get("reasoning")
        ):
            raise InvalidClassificationResponse(
                "Invalid classification response structure - missing required fields"
            )
        try:
            classification = Classification.model_validate(payload)
        except PydanticValidationError as e:
            raise InvalidClassificationResponse(
                f"Invalid classification response: {e.errors()[0].get('msg', str(e))}", e
            ) from e

        LOGGER.info(
            f"Classified as {classification.type.value}",
            extra={"confidence": classification.confidence},
        )
        return classification
