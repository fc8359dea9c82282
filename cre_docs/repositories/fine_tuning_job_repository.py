"""Repository for fine-tuning jobs."""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.database.models import FineTuningJob
from cre_docs.repositories.base_repository import BaseRepository

ACTIVE_JOB_STATUSES = ("pending", "uploading", "running")


class FineTuningJobRepository(BaseRepository[FineTuningJob]):
    """Repository for managing FineTuningJob records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, FineTuningJob)

    async def list_jobs(self, document_type: Optional[str] = None, limit: int = 100) -> List[FineTuningJob]:
        """Jobs, newest first."""
        return await self.get_all(
            limit=limit,
            filters={"document_type": document_type},
            order_by=FineTuningJob.created_at.desc(),
        )

    async def list_active_jobs(self) -> List[FineTuningJob]:
        return await self.get_all(
            limit=500,
            filters={"status": list(ACTIVE_JOB_STATUSES)},
            order_by=FineTuningJob.created_at.desc(),
        )
