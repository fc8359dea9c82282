"""Training pipeline: upload, batch extraction, human verification and splits."""

import asyncio
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.core.config import settings
from cre_docs.core.exceptions import AppError, ValidationError
from cre_docs.database.models import TrainingDocument, VerificationEdit
from cre_docs.repositories.training_document_repository import TrainingDocumentRepository
from cre_docs.repositories.training_metrics_repository import TrainingMetricsRepository
from cre_docs.repositories.verification_edit_repository import VerificationEditRepository
from cre_docs.schemas.documents import (
    DatasetSplit,
    DocumentFile,
    DocumentType,
    ProcessingStatus,
    VerificationAction,
    VerificationStatus,
)
from cre_docs.services.extraction.extraction_service import ExtractionService
from cre_docs.services.feedback.feedback_analyzer import (
    analyze_extraction_differences,
    parse_verification_notes,
)
from cre_docs.services.feedback.learning_service import LearningService
from cre_docs.services.fine_tuning.fine_tuning_service import FineTuningService
from cre_docs.services.normalization.data_normalizer import transform_extracted_data
from cre_docs.services.storage_service import StorageService
from cre_docs.services.training.training_utils import (
    calculate_confidence_score,
    generate_changes_summary,
    validate_extraction_data,
)
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class BatchItemResult:
    document_id: str
    success: bool
    error: Optional[str] = None


@dataclass
class BatchResult:
    processed: int = 0
    failed: int = 0
    results: List[BatchItemResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.processed > 0


@dataclass
class VerificationResult:
    document: TrainingDocument
    message: str
    fine_tuning_triggered: bool = False
    fine_tuning_job_id: Optional[str] = None
    feedback_categories: List[str] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TrainingService:
    """Orchestrates the verification store.

    Batch processing is bounded by ``BATCH_CONCURRENCY`` (1 keeps it
    sequential). Model calls may overlap up to that bound. Every use of the
    shared session, including the learnings read behind the extraction
    prompt, happens under ``_db_lock``.
    """

    def __init__(
        self,
        session: AsyncSession,
        extraction_service: ExtractionService,
        storage: Optional[StorageService] = None,
        learning_service: Optional[LearningService] = None,
        fine_tuning_service: Optional[FineTuningService] = None,
        batch_concurrency: Optional[int] = None,
    ):
        self.session = session
        self.document_repo = TrainingDocumentRepository(session)
        self.edit_repo = VerificationEditRepository(session)
        self.metrics_repo = TrainingMetricsRepository(session)
        self.extraction_service = extraction_service
        self.storage = storage or StorageService()
        self.learning_service = learning_service or LearningService(session)
        self._fine_tuning_service = fine_tuning_service
        self.batch_concurrency = max(1, batch_concurrency or settings.processing.batch_concurrency)
        self._db_lock = asyncio.Lock()

    @property
    def fine_tuning_service(self) -> FineTuningService:
        if self._fine_tuning_service is None:
            self._fine_tuning_service = FineTuningService(self.session)
        return self._fine_tuning_service

    async def upload_training_documents(
        self,
        files: List[DocumentFile],
        document_type: str,
        created_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store files and create pending training records.

        Per-file failures are collected; the rest of the batch continues.

        Raises:
            ValidationError: If no files were given or the type is unknown
        """
        if not files:
            raise ValidationError("No files provided")
        if not DocumentType.is_valid(document_type):
            raise ValidationError(f"Invalid document type: {document_type}")

        documents: List[TrainingDocument] = []
        errors: List[Dict[str, str]] = []

        for file in files:
            document_id = uuid.uuid4()
            path = f"{document_type}/{document_id}_{file.name}"
            try:
                stored = await self.storage.upload_file(
                    file.content,
                    bucket=settings.supabase.documents_bucket,
                    path=path,
                    content_type=file.mime_type,
                )
                document = await self.document_repo.create_document(
                    file_path=stored["path"],
                    file_name=file.name,
                    document_type=document_type,
                    file_url=stored["url"],
                    file_size=file.size,
                    file_type=file.mime_type,
                    created_by=created_by,
                    document_id=document_id,
                )
                documents.append(document)
            except AppError as e:
                LOGGER.error(f"Failed to upload {file.name}: {e.message}")
                errors.append({"file_name": file.name, "error": e.message})

        LOGGER.info(
            f"Uploaded {len(documents)} of {len(files)} training documents",
            extra={"document_type": document_type, "failed": len(errors)},
        )
        return {"documents": documents, "errors": errors}

    async def _process_document(self, document_id: UUID) -> None:
        async with self._db_lock:
            document = await self.document_repo.get_or_raise(document_id)
            await self.document_repo.update(
                document_id, processing_status=ProcessingStatus.PROCESSING.value
            )
            file_path = document.file_path
            file_name = document.file_name
            mime_type = document.file_type or "application/pdf"
            document_type = document.document_type
            # The learnings read shares this session
            prompt = await self.extraction_service.build_system_prompt(document_type)

        content = await self.storage.download_file(settings.supabase.documents_bucket, file_path)
        file = DocumentFile(name=file_name, mime_type=mime_type, content=content)

        extracted = await self.extraction_service.extract_document_data(
            file, document_type, prompt=prompt
        )
        payload = transform_extracted_data(extracted).to_payload()

        async with self._db_lock:
            await self.document_repo.update(
                document_id,
                raw_extraction=payload,
                extraction_confidence=calculate_confidence_score(payload),
                processing_status=ProcessingStatus.COMPLETED.value,
                processed_date=_now(),
                error_message=None,
            )

    async def _mark_failed(self, document_id: UUID, message: str) -> None:
        async with self._db_lock:
            document = await self.document_repo.get_by_id(document_id)
            if document is None:
                return
            await self.document_repo.update(
                document_id,
                processing_status=ProcessingStatus.FAILED.value,
                error_message=message,
                retry_count=(document.retry_count or 0) + 1,
            )

    async def process_batch(self, document_ids: List[UUID]) -> BatchResult:
        """Run extraction for each document, continuing past failures."""
        LOGGER.info(
            f"Processing {len(document_ids)} documents",
            extra={"concurrency": self.batch_concurrency},
        )
        semaphore = asyncio.Semaphore(self.batch_concurrency)

        async def process_one(document_id: UUID) -> BatchItemResult:
            async with semaphore:
                try:
                    await self._process_document(document_id)
                except AppError as e:
                    LOGGER.error(f"Failed to process {document_id}: {e.message}")
                    try:
                        await self._mark_failed(document_id, e.message)
                    except AppError as update_error:
                        LOGGER.error(f"Failed to update error status: {update_error.message}")
                    return BatchItemResult(str(document_id), False, e.message)

                LOGGER.info(f"Successfully processed document: {document_id}")
                return BatchItemResult(str(document_id), True)

        # gather keeps the input order
        items = await asyncio.gather(*(process_one(document_id) for document_id in document_ids))

        result = BatchResult(results=list(items))
        result.processed = sum(1 for item in items if item.success)
        result.failed = len(items) - result.processed
        LOGGER.info(f"Batch processing completed: {result.processed} success, {result.failed} failed")
        return result

    async def get_document(self, document_id: UUID) -> Tuple[TrainingDocument, List[VerificationEdit]]:
        document = await self.document_repo.get_or_raise(document_id)
        history = await self.edit_repo.list_for_document(document_id)
        return document, history

    async def _refresh_learnings_if_due(
        self, document: TrainingDocument, verified_extraction: Dict[str, Any]
    ) -> None:
        if not document.raw_extraction:
            return
        _, patterns = analyze_extraction_differences(document.raw_extraction, verified_extraction)
        if not patterns:
            return

        LOGGER.info(f"Identified {len(patterns)} error patterns for learning")
        verified_count = await self.document_repo.count_verified(document.document_type)
        if verified_count % settings.processing.learning_refresh_interval == 0:
            await self.learning_service.refresh_learnings(document.document_type)
            LOGGER.info(f"Updated learning insights for {document.document_type}")

    async def verify_document(
        self,
        document_id: UUID,
        verified_extraction: Dict[str, Any],
        quality_score: float,
        verification_notes: Optional[str] = None,
        verified_by: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> VerificationResult:
        """Store a reviewer-corrected extraction.

        The write is conditional on ``expected_version`` (the version the
        reviewer loaded); without one, the version read here is used. Once
        the write lands, failures in the audit entry or the learnings refresh
        are logged, and a fine-tuning failure is reported in the message.
        None of them fail the verification.

        Raises:
            ValidationError: Bad quality score or extraction structure
            DocumentNotFoundError: Unknown document
            ConcurrentModificationError: The document changed since it was read
        """
        if quality_score is None or not 0 <= quality_score <= 1:
            raise ValidationError("Quality score must be between 0 and 1")
        valid, errors = validate_extraction_data(verified_extraction)
        if not valid:
            raise ValidationError(f"Invalid extraction data: {', '.join(errors)}")

        current = await self.document_repo.get_or_raise(document_id)
        raw_extraction = current.raw_extraction
        reviewer = verified_by or "system"

        document = await self.document_repo.update_with_version(
            document_id,
            expected_version if expected_version is not None else current.version,
            verified_extraction=verified_extraction,
            verification_status=VerificationStatus.VERIFIED.value,
            is_verified=True,
            verified_by=reviewer,
            verified_date=_now(),
            verification_notes=verification_notes,
            quality_score=quality_score,
        )

        changes = (
            generate_changes_summary(raw_extraction, verified_extraction)
            if raw_extraction
            else "Initial verification"
        )
        categories = parse_verification_notes(verification_notes).categories
        if categories:
            LOGGER.info(f"Parsed feedback categories: {categories}")

        # The verification is already committed; follow-up writes only log
        try:
            await self.edit_repo.record_edit(
                training_document_id=document_id,
                editor_id=reviewer,
                verification_action=VerificationAction.VERIFY.value,
                before_data=raw_extraction,
                after_data=verified_extraction,
                changes_made=changes,
                notes=verification_notes,
            )
        except AppError as e:
            LOGGER.error(f"Failed to record verification edit: {e.message}", exc_info=True)

        try:
            await self._refresh_learnings_if_due(document, verified_extraction)
        except AppError as e:
            LOGGER.error(f"Failed to refresh learning insights: {e.message}", exc_info=True)

        result = VerificationResult(
            document=document,
            message="Document verified successfully",
            feedback_categories=categories,
        )
        try:
            trigger = await self.fine_tuning_service.check_fine_tuning_trigger(document.document_type)
            if trigger.should_trigger:
                LOGGER.info(f"Auto-triggering fine-tuning: {trigger.reason}")
                job = await self.fine_tuning_service.start_fine_tuning_job(
                    document_type=document.document_type,
                    triggered_by="auto",
                    notes=f"Auto-triggered at {trigger.current_count} verified documents",
                )
                result.fine_tuning_triggered = True
                result.fine_tuning_job_id = str(job.id)
                result.message = (
                    f"Document verified successfully. "
                    f"Fine-tuning job started automatically (Job ID: {job.id})"
                )
            else:
                LOGGER.info(f"Fine-tuning not triggered: {trigger.reason}")
        except AppError as e:
            LOGGER.error(f"Fine-tuning trigger error: {e.message}", exc_info=True)
            result.message = (
                "Document verified successfully. "
                "Note: Auto fine-tuning check failed but verification succeeded"
            )

        LOGGER.info(f"Document verified successfully: {document_id}")
        return result

    async def reject_document(
        self,
        document_id: UUID,
        reason: str,
        rejected_by: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> TrainingDocument:
        """Exclude a document from training while keeping its history."""
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required")

        current = await self.document_repo.get_or_raise(document_id)
        reviewer = rejected_by or "system"
        document = await self.document_repo.update_with_version(
            document_id,
            expected_version if expected_version is not None else current.version,
            verification_status=VerificationStatus.REJECTED.value,
            is_verified=False,
            include_in_training=False,
            verified_by=reviewer,
            verified_date=_now(),
            verification_notes=reason,
        )
        await self.edit_repo.record_edit(
            training_document_id=document_id,
            editor_id=reviewer,
            verification_action=VerificationAction.REJECT.value,
            before_data=current.verified_extraction or current.raw_extraction,
            changes_made="Document rejected",
            notes=reason,
        )
        LOGGER.info(f"Document rejected: {document_id}")
        return document

    async def query_documents(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[TrainingDocument], int]:
        return await self.document_repo.query_documents(filters, limit=limit, offset=offset)

    async def auto_assign_dataset_split(
        self,
        document_type: Optional[str] = None,
        train_percentage: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Randomly split verified documents into train and validation.

        ``floor(n * p / 100)`` documents go to train, the rest to validation.
        """
        percentage = (
            train_percentage if train_percentage is not None
            else settings.processing.default_train_percentage
        )
        if not 0 <= percentage <= 100:
            raise ValidationError("Train percentage must be between 0 and 100")

        types = [document_type] if document_type else [t.value for t in DocumentType.primary_types()]
        results = []
        for doc_type in types:
            documents = await self.document_repo.get_training_set(doc_type)
            if not documents:
                LOGGER.info(f"No verified documents found for {doc_type}")
                continue

            ids = [doc.id for doc in documents]
            random.shuffle(ids)
            train_count = (len(ids) * percentage) // 100

            await self.document_repo.assign_split(ids[:train_count], DatasetSplit.TRAIN.value)
            await self.document_repo.assign_split(ids[train_count:], DatasetSplit.VALIDATION.value)

            LOGGER.info(
                f"Split assigned for {doc_type}: {train_count} train, "
                f"{len(ids) - train_count} validation"
            )
            results.append(
                {
                    "document_type": doc_type,
                    "train_count": train_count,
                    "validation_count": len(ids) - train_count,
                }
            )
        return results

    async def get_training_metrics(self) -> List[Dict[str, Any]]:
        """Per-type counts joined with stored learning insights."""
        statistics = await self.document_repo.get_type_statistics()
        metrics = []
        for row in statistics:
            stored = await self.metrics_repo.get_by_document_type(row["document_type"])
            verified = row["verified_documents"]
            metrics.append(
                {
                    **row,
                    "average_quality_score": float(row["average_quality_score"] or 0),
                    "ready_for_training": verified >= settings.processing.min_training_examples,
                    "learning_insights": stored.learning_insights if stored else None,
                    "last_export_date": stored.last_export_date if stored else None,
                    "last_training_date": stored.last_training_date if stored else None,
                    "training_runs": stored.training_runs if stored else 0,
                }
            )
        return metrics
