"""Repository for training documents and their verification state."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.core.exceptions import ConcurrentModificationError, DocumentNotFoundError
from cre_docs.database.models import TrainingDocument
from cre_docs.repositories.base_repository import BaseRepository
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TrainingDocumentRepository(BaseRepository[TrainingDocument]):
    """Repository for managing TrainingDocument records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TrainingDocument)

    async def create_document(
        self,
        file_path: str,
        file_name: str,
        document_type: str,
        file_url: Optional[str] = None,
        file_size: Optional[int] = None,
        file_type: Optional[str] = None,
        created_by: Optional[str] = None,
        document_id: Optional[UUID] = None,
    ) -> TrainingDocument:
        """Create a new document record in the pending state."""
        return await self.create(
            id=document_id or uuid.uuid4(),
            file_path=file_path,
            file_name=file_name,
            file_url=file_url,
            file_size=file_size,
            file_type=file_type,
            document_type=document_type,
            processing_status="pending",
            verification_status="unverified",
            created_by=created_by,
            upload_date=datetime.now(timezone.utc),
        )

    async def query_documents(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[TrainingDocument], int]:
        """Filtered, paginated listing ordered by newest upload first.

        Returns:
            Tuple of (documents, total matching count)
        """
        documents = await self.get_all(
            skip=offset,
            limit=limit,
            filters=filters,
            order_by=TrainingDocument.upload_date.desc(),
        )
        total = await self.count(filters)
        return documents, total

    async def get_or_raise(self, document_id: UUID) -> TrainingDocument:
        document = await self.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Training document not found: {document_id}")
        return document

    async def update_with_version(
        self,
        document_id: UUID,
        expected_version: int,
        **values: Any,
    ) -> TrainingDocument:
        """Conditionally update a document if its version still matches.

        The version is bumped in the same statement, so two reviewers holding
        the same version cannot both succeed.

        Raises:
            DocumentNotFoundError: If the document does not exist
            ConcurrentModificationError: If the stored version moved on
        """
        stmt = (
            update(TrainingDocument)
            .where(
                TrainingDocument.id == document_id,
                TrainingDocument.version == expected_version,
            )
            .values(**values, version=TrainingDocument.version + 1)
            .returning(TrainingDocument)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            document = result.scalar_one_or_none()
            if document is None:
                await self.session.rollback()
                current = await self.get_by_id(document_id)
                if current is None:
                    raise DocumentNotFoundError(f"Training document not found: {document_id}")
                raise ConcurrentModificationError(
                    f"Training document {document_id} was modified by someone else "
                    f"(expected version {expected_version}, found {current.version}). "
                    f"Reload the document and reapply your changes."
                )
            await self.session.commit()
            await self.session.refresh(document)
            return document
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail(f"updating {document_id} in", e) from e

    async def get_verified_documents(
        self, document_type: str, limit: int = 1000
    ) -> List[TrainingDocument]:
        """Verified documents of a type that carry a verified extraction."""
        try:
            query = (
                select(TrainingDocument)
                .where(
                    TrainingDocument.document_type == document_type,
                    TrainingDocument.is_verified.is_(True),
                    TrainingDocument.verified_extraction.is_not(None),
                )
                .order_by(TrainingDocument.verified_date.desc())
                .limit(limit)
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._fail("listing verified", e) from e

    async def count_verified(self, document_type: str) -> int:
        return await self.count({"document_type": document_type, "is_verified": True})

    async def get_training_set(
        self, document_type: str, dataset_split: Optional[str] = None
    ) -> List[TrainingDocument]:
        """Verified documents flagged for training, optionally for one split."""
        filters: Dict[str, Any] = {
            "document_type": document_type,
            "is_verified": True,
            "include_in_training": True,
            "dataset_split": dataset_split,
        }
        return await self.get_all(
            limit=10000, filters=filters, order_by=TrainingDocument.verified_date.asc()
        )

    async def assign_split(self, document_ids: Iterable[UUID], dataset_split: str) -> int:
        """Bulk-assign a dataset split. Returns the number of rows touched."""
        ids = list(document_ids)
        if not ids:
            return 0
        try:
            result = await self.session.execute(
                update(TrainingDocument)
                .where(TrainingDocument.id.in_(ids))
                .values(dataset_split=dataset_split)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            return result.rowcount or 0
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail("assigning split for", e) from e

    async def get_type_statistics(self) -> List[Dict[str, Any]]:
        """Per document type counts used by the metrics view."""
        doc = TrainingDocument
        try:
            query = (
                select(
                    doc.document_type,
                    func.count().label("total_documents"),
                    func.count().filter(doc.is_verified.is_(True)).label("verified_documents"),
                    func.count()
                    .filter(doc.verification_status == "rejected")
                    .label("rejected_documents"),
                    func.count()
                    .filter(doc.is_verified.is_(True), doc.dataset_split == "train")
                    .label("train_documents"),
                    func.count()
                    .filter(doc.is_verified.is_(True), doc.dataset_split == "validation")
                    .label("validation_documents"),
                    func.avg(doc.quality_score).label("average_quality_score"),
                )
                .group_by(doc.document_type)
                .order_by(doc.document_type)
            )
            result = await self.session.execute(query)
            return [dict(row._mapping) for row in result.all()]
        except SQLAlchemyError as e:
            raise self._fail("aggregating", e) from e

    async def get_annotated_documents(self, document_type: str) -> List[TrainingDocument]:
        """Verified documents of a type that carry reviewer notes."""
        try:
            query = select(TrainingDocument).where(
                TrainingDocument.document_type == document_type,
                TrainingDocument.is_verified.is_(True),
                TrainingDocument.verification_notes.is_not(None),
            )
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._fail("listing annotated", e) from e
