"""Aggregation and persistence of verification learnings per document type."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.core.exceptions import DatabaseError
from cre_docs.prompts.catalog import PromptCatalog
from cre_docs.repositories.training_document_repository import TrainingDocumentRepository
from cre_docs.repositories.training_metrics_repository import TrainingMetricsRepository
from cre_docs.services.feedback.feedback_analyzer import (
    DocumentTypeLearnings,
    build_enhanced_prompt_section,
    build_learnings,
)
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

STORED_ERROR_LIMIT = 10


class LearningService:
    """Turns the verified corpus of a document type into prompt learnings.

    Learnings are recomputed from the stored documents on every call; nothing
    is maintained incrementally, so concurrent readers need no locking.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.document_repo = TrainingDocumentRepository(session)
        self.metrics_repo = TrainingMetricsRepository(session)

    async def aggregate_document_type_learnings(self, document_type: str) -> DocumentTypeLearnings:
        """Aggregate error patterns and reviewer notes for one document type.

        A database failure yields empty learnings rather than an error, so
        extraction keeps working with the base prompt.
        """
        LOGGER.info(f"Aggregating learnings for: {document_type}")
        try:
            documents = await self.document_repo.get_annotated_documents(document_type)
        except DatabaseError as e:
            LOGGER.error(
                f"Failed to fetch documents for learning aggregation: {e.message}",
                extra={"document_type": document_type},
            )
            return DocumentTypeLearnings(document_type=document_type)

        snapshots = [
            {
                "id": str(doc.id),
                "verification_notes": doc.verification_notes,
                "raw_extraction": doc.raw_extraction,
                "verified_extraction": doc.verified_extraction,
            }
            for doc in documents
        ]
        learnings = build_learnings(document_type, snapshots)

        LOGGER.info(
            f"Aggregated learnings for {document_type}",
            extra={
                "verifications": learnings.total_verifications,
                "patterns": len(learnings.common_errors),
                "suggestions": len(learnings.improvement_suggestions),
            },
        )
        return learnings

    async def store_learning_insights(
        self, document_type: str, learnings: DocumentTypeLearnings
    ) -> None:
        """Upsert the condensed learnings into ``training_metrics``."""
        insights = {
            "total_verifications": learnings.total_verifications,
            "common_errors": [
                error.to_dict() for error in learnings.common_errors[:STORED_ERROR_LIMIT]
            ],
            "improvement_suggestions": learnings.improvement_suggestions,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }
        await self.metrics_repo.store_learning_insights(document_type, insights)
        LOGGER.info(f"Stored learning insights for {document_type}")

    async def refresh_learnings(self, document_type: str) -> DocumentTypeLearnings:
        learnings = await self.aggregate_document_type_learnings(document_type)
        await self.store_learning_insights(document_type, learnings)
        return learnings

    async def get_learnings(self, document_type: str) -> Dict[str, Any]:
        """Fresh learnings plus whatever was last stored for the type."""
        learnings = await self.aggregate_document_type_learnings(document_type)
        metrics = await self.metrics_repo.get_by_document_type(document_type)
        stored: Optional[Dict[str, Any]] = metrics.learning_insights if metrics else None
        return {**learnings.to_dict(), "stored_insights": stored}

    async def build_enhanced_system_prompt(self, document_type: str, base_prompt: str) -> str:
        """Base prompt plus a learnings section, or the base prompt unchanged.

        The base prompt is never modified; a new string is returned.
        """
        learnings = await self.aggregate_document_type_learnings(document_type)
        if learnings.total_verifications == 0:
            return base_prompt

        section = build_enhanced_prompt_section(
            learnings.improvement_suggestions, learnings.common_errors
        )
        return PromptCatalog.augment(base_prompt, section)
