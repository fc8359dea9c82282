"""Repository for auto-training triggers."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.database.models import TrainingTrigger
from cre_docs.repositories.base_repository import BaseRepository


class TrainingTriggerRepository(BaseRepository[TrainingTrigger]):
    """One trigger row per document type."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TrainingTrigger)

    async def get_by_document_type(self, document_type: str) -> Optional[TrainingTrigger]:
        try:
            result = await self.session.execute(
                select(TrainingTrigger).where(TrainingTrigger.document_type == document_type)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail(f"retrieving {document_type} from", e) from e
