"""Repository for deployable model versions."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.database.models import ModelVersion
from cre_docs.repositories.base_repository import BaseRepository


class ModelVersionRepository(BaseRepository[ModelVersion]):
    """Model versions per document type.

    At most one version per document type is ``active``. Activation
    deactivates the current active version and promotes the target inside one
    transaction; a partial unique index rejects anything that slips past.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, ModelVersion)

    async def get_active(self, document_type: str) -> Optional[ModelVersion]:
        try:
            result = await self.session.execute(
                select(ModelVersion).where(
                    ModelVersion.document_type == document_type,
                    ModelVersion.deployment_status == "active",
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail(f"retrieving active {document_type} from", e) from e

    async def list_versions(self, document_type: Optional[str] = None) -> List[ModelVersion]:
        return await self.get_all(
            limit=500,
            filters={"document_type": document_type},
            order_by=ModelVersion.version_number.desc(),
        )

    async def _next_version_number(self, document_type: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(ModelVersion.version_number), 0)).where(
                ModelVersion.document_type == document_type
            )
        )
        return int(result.scalar_one()) + 1

    async def _deactivate_others(self, document_type: str, keep_id: Optional[UUID] = None) -> None:
        stmt = update(ModelVersion).where(
            ModelVersion.document_type == document_type,
            ModelVersion.deployment_status == "active",
        )
        if keep_id is not None:
            stmt = stmt.where(ModelVersion.id != keep_id)
        await self.session.execute(
            stmt.values(deployment_status="inactive").execution_options(synchronize_session=False)
        )

    async def create_version(
        self,
        document_type: str,
        model_id: str,
        fine_tuning_job_id: Optional[UUID] = None,
        deployment_status: str = "active",
        traffic_percentage: int = 100,
        notes: Optional[str] = None,
        model_type: str = "fine_tuned",
    ) -> ModelVersion:
        """Create the next version for a document type in a single transaction.

        When ``deployment_status`` is ``active`` the previously active version
        is deactivated before the new row is flushed.
        """
        try:
            version_number = await self._next_version_number(document_type)
            if deployment_status == "active":
                await self._deactivate_others(document_type)

            instance = ModelVersion(
                document_type=document_type,
                version_number=version_number,
                model_id=model_id,
                model_type=model_type,
                fine_tuning_job_id=fine_tuning_job_id,
                deployment_status=deployment_status,
                deployed_at=datetime.now(timezone.utc),
                traffic_percentage=traffic_percentage,
                notes=notes,
            )
            self.session.add(instance)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail(f"creating {document_type} version in", e) from e

    async def activate(self, version_id: UUID) -> Optional[ModelVersion]:
        """Promote an existing version, superseding the active one atomically."""
        try:
            instance = await self.get_by_id(version_id)
            if instance is None:
                return None
            await self._deactivate_others(instance.document_type, keep_id=instance.id)
            instance.deployment_status = "active"
            instance.deployed_at = datetime.now(timezone.utc)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise self._fail(f"activating {version_id} in", e) from e
