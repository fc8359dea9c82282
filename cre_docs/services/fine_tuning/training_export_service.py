"""Export of verified training documents as chat-format JSONL files."""

import base64
import json
import mimetypes
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.core.config import settings
from cre_docs.core.exceptions import AppError, ValidationError
from cre_docs.database.models import TrainingDocument
from cre_docs.prompts.catalog import PromptCatalog, get_prompt_catalog
from cre_docs.repositories.training_document_repository import TrainingDocumentRepository
from cre_docs.repositories.training_metrics_repository import TrainingMetricsRepository
from cre_docs.schemas.documents import DatasetSplit
from cre_docs.services.extraction.extraction_service import parse_multi_page_bundle
from cre_docs.services.storage_service import StorageService
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

VALID_ROLES = ("system", "user", "assistant")


@dataclass
class SplitExport:
    """One exported JSONL file."""

    split: str
    examples: int = 0
    skipped: int = 0
    path: Optional[str] = None
    url: Optional[str] = None
    content: Optional[bytes] = field(default=None, repr=False)


@dataclass
class ExportResult:
    document_type: str
    train: SplitExport
    validation: SplitExport

    @property
    def train_examples(self) -> int:
        return self.train.examples

    @property
    def validation_examples(self) -> int:
        return self.validation.examples

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_type": self.document_type,
            "train_file_path": self.train.path,
            "train_file_url": self.train.url,
            "validation_file_path": self.validation.path,
            "validation_file_url": self.validation.url,
            "train_examples": self.train.examples,
            "validation_examples": self.validation.examples,
            "skipped_documents": self.train.skipped + self.validation.skipped,
        }


def validate_jsonl_format(jsonl: str) -> Tuple[bool, List[str]]:
    """Check that every non-blank line is a chat example with valid messages.

    Returns:
        Tuple of (valid, errors)
    """
    errors: List[str] = []
    lines = [line for line in jsonl.split("\n") if line.strip()]

    for index, line in enumerate(lines, start=1):
        try:
            example = json.loads(line)
        except json.JSONDecodeError as e:
            errors.append(f"Line {index}: Invalid JSON - {e}")
            continue

        messages = example.get("messages") if isinstance(example, dict) else None
        if not isinstance(messages, list):
            errors.append(f"Line {index}: Missing or invalid 'messages' array")
            continue

        for msg_index, message in enumerate(messages, start=1):
            if not isinstance(message, dict) or message.get("role") not in VALID_ROLES:
                errors.append(f"Line {index}, Message {msg_index}: Invalid role")
            if not isinstance(message, dict) or not message.get("content"):
                errors.append(f"Line {index}, Message {msg_index}: Missing content")

    return not errors, errors


class TrainingExportService:
    """Builds fine-tuning examples from verified documents and stores them.

    Each example is a system prompt, a user turn with the extraction
    instruction and the document image(s) at high detail, and an assistant
    turn holding the verified extraction (or the raw one when no verified
    version exists).
    """

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        catalog: Optional[PromptCatalog] = None,
    ):
        self.session = session
        self.document_repo = TrainingDocumentRepository(session)
        self.metrics_repo = TrainingMetricsRepository(session)
        self.storage = storage or StorageService()
        self.catalog = catalog or get_prompt_catalog()

    def _mime_type(self, document: TrainingDocument) -> str:
        if document.file_type:
            return document.file_type
        guessed, _ = mimetypes.guess_type(document.file_name or document.file_path)
        return guessed or "image/png"

    async def _image_urls(self, document: TrainingDocument) -> List[str]:
        content = await self.storage.download_file(
            settings.supabase.documents_bucket, document.file_path
        )
        mime_type = self._mime_type(document)
        if mime_type == "application/json":
            return [page.to_data_url() for page in parse_multi_page_bundle(content)]
        encoded = base64.b64encode(content).decode("ascii")
        return [f"data:{mime_type};base64,{encoded}"]

    async def create_training_example(self, document: TrainingDocument) -> Dict[str, Any]:
        """Build one chat-format example.

        Raises:
            ValidationError: If the document has no extraction at all
            StorageError: If the document file cannot be downloaded
        """
        extraction = document.verified_extraction or document.raw_extraction
        if not extraction:
            raise ValidationError(f"No extraction data available for document {document.id}")

        user_content: List[Dict[str, Any]] = [
            {"type": "text", "text": self.catalog.training_instruction(document.document_type)}
        ]
        for url in await self._image_urls(document):
            user_content.append({"type": "image_url", "image_url": {"url": url, "detail": "high"}})

        return {
            "messages": [
                {
                    "role": "system",
                    "content": self.catalog.training_system_prompt(document.document_type),
                },
                {"role": "user", "content": user_content},
                {"role": "assistant", "content": json.dumps(extraction, indent=2)},
            ]
        }

    async def _export_split(self, document_type: str, split: DatasetSplit) -> SplitExport:
        documents = await self.document_repo.get_training_set(document_type, split.value)
        export = SplitExport(split=split.value)
        if not documents:
            return export

        lines: List[str] = []
        for document in documents:
            try:
                example = await self.create_training_example(document)
            except AppError as e:
                # One unreadable document must not sink the whole export
                export.skipped += 1
                LOGGER.error(
                    f"Failed to create {split.value} example for doc {document.id}: {e.message}"
                )
                continue
            lines.append(json.dumps(example))

        export.examples = len(lines)
        if not lines:
            return export

        content = "\n".join(lines).encode("utf-8")
        filename = f"{document_type}_{split.value}_{int(time.time() * 1000)}.jsonl"
        uploaded = await self.storage.upload_file(
            content,
            bucket=settings.supabase.exports_bucket,
            path=f"{document_type}/{filename}",
            content_type="application/jsonl",
        )
        export.path = uploaded["path"]
        export.url = uploaded["url"]
        export.content = content
        LOGGER.info(f"{split.value.capitalize()} file uploaded: {export.url}")
        return export

    async def export_training_data(self, document_type: str) -> ExportResult:
        """Write and upload the train and validation JSONL files for a type."""
        LOGGER.info(f"Exporting training data for document type: {document_type}")

        train = await self._export_split(document_type, DatasetSplit.TRAIN)
        validation = await self._export_split(document_type, DatasetSplit.VALIDATION)
        await self.metrics_repo.mark_exported(document_type)

        LOGGER.info(
            f"Export finished for {document_type}",
            extra={"train_examples": train.examples, "validation_examples": validation.examples},
        )
        return ExportResult(document_type=document_type, train=train, validation=validation)

    async def get_training_data_stats(self, document_type: str) -> Dict[str, Any]:
        documents = await self.document_repo.get_training_set(document_type)
        train = [doc for doc in documents if doc.dataset_split == DatasetSplit.TRAIN.value]
        validation = [
            doc for doc in documents if doc.dataset_split == DatasetSplit.VALIDATION.value
        ]
        scores = [doc.quality_score for doc in documents if doc.quality_score is not None]

        return {
            "document_type": document_type,
            "total_verified": len(documents),
            "train_ready": len(train),
            "validation_ready": len(validation),
            "average_quality_score": sum(scores) / len(scores) if scores else 0,
            "meets_minimum": len(documents) >= settings.processing.min_training_examples,
        }
