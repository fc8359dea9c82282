"""Repository for the verification audit trail."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.database.models import VerificationEdit
from cre_docs.repositories.base_repository import BaseRepository


class VerificationEditRepository(BaseRepository[VerificationEdit]):
    """Append-only log of reviewer actions."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, VerificationEdit)

    async def record_edit(
        self,
        training_document_id: UUID,
        editor_id: str,
        verification_action: str,
        before_data: Optional[Dict[str, Any]] = None,
        after_data: Optional[Dict[str, Any]] = None,
        changes_made: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> VerificationEdit:
        return await self.create(
            training_document_id=training_document_id,
            editor_id=editor_id,
            verification_action=verification_action,
            before_data=before_data,
            after_data=after_data,
            changes_made=changes_made,
            notes=notes,
        )

    async def list_for_document(self, training_document_id: UUID) -> List[VerificationEdit]:
        return await self.get_all(
            filters={"training_document_id": training_document_id},
            order_by=VerificationEdit.edit_timestamp.desc(),
        )
