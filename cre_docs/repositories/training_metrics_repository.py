"""Repository for per document type learning insights."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.database.models import TrainingMetrics
from cre_docs.repositories.base_repository import BaseRepository


class TrainingMetricsRepository(BaseRepository[TrainingMetrics]):
    """One row per document type, created on first write."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TrainingMetrics)

    async def get_by_document_type(self, document_type: str) -> Optional[TrainingMetrics]:
        try:
            result = await self.session.execute(
                select(TrainingMetrics).where(TrainingMetrics.document_type == document_type)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail(f"retrieving {document_type} from", e) from e

    async def upsert(self, document_type: str, **values: Any) -> None:
        """Insert or update the metrics row for a document type."""
        stmt = insert(TrainingMetrics).values(document_type=document_type, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[TrainingMetrics.document_type],
            set_={**values, "updated_at": datetime.now(timezone.utc)},
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail(f"upserting {document_type} in", e) from e

    async def store_learning_insights(self, document_type: str, insights: Dict[str, Any]) -> None:
        await self.upsert(document_type, learning_insights=insights)

    async def mark_exported(self, document_type: str) -> None:
        await self.upsert(document_type, last_export_date=datetime.now(timezone.utc))

    async def record_training_run(self, document_type: str) -> None:
        existing = await self.get_by_document_type(document_type)
        runs = (existing.training_runs if existing else 0) + 1
        await self.upsert(
            document_type,
            training_runs=runs,
            last_training_date=datetime.now(timezone.utc),
        )
