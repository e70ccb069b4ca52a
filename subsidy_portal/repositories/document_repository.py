from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from subsidy_portal.database.models import StoredDocument
from subsidy_portal.repositories.base_repository import BaseRepository
from subsidy_portal.schemas.documents import AICheckStatus, UploadStatus
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentRepository(BaseRepository[StoredDocument]):
    """Repository for StoredDocument metadata rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, StoredDocument)

    async def create_document(
        self,
        owner_ref: UUID,
        document_key: str,
        storage_path: str,
        byte_size: int,
        original_file_name: str,
        mime_type: str = "application/pdf",
    ) -> StoredDocument:
        """Insert the row for a freshly stored blob."""
        now = datetime.now(timezone.utc)
        return await self.create(
            owner_ref=owner_ref,
            document_key=document_key,
            storage_path=storage_path,
            byte_size=byte_size,
            original_file_name=original_file_name,
            mime_type=mime_type,
            upload_status=UploadStatus.COMPLETED.value,
            ai_check_status=AICheckStatus.NOT_CHECKED.value,
            ai_check_result=None,
            created_at=now,
            updated_at=now,
        )

    async def get_by_owner_and_key(self, owner_ref: UUID, document_key: str) -> Optional[StoredDocument]:
        """The document currently occupying an owner's slot, if any."""
        result = await self.session.execute(
            select(StoredDocument).where(
                StoredDocument.owner_ref == owner_ref,
                StoredDocument.document_key == document_key,
            )
        )
        return result.scalar_one_or_none()

    async def list_by_owner(self, owner_ref: UUID) -> List[StoredDocument]:
        """All documents of an owner, newest first."""
        result = await self.session.execute(
            select(StoredDocument)
            .where(StoredDocument.owner_ref == owner_ref)
            .order_by(StoredDocument.created_at.desc())
        )
        return list(result.scalars().all())

    async def replace_blob(
        self,
        document_id: UUID,
        storage_path: str,
        byte_size: int,
        original_file_name: str,
        mime_type: str,
    ) -> Optional[StoredDocument]:
        """Point an existing row at a new blob and clear its check result."""
        return await self.update(
            document_id,
            storage_path=storage_path,
            byte_size=byte_size,
            original_file_name=original_file_name,
            mime_type=mime_type,
            upload_status=UploadStatus.COMPLETED.value,
            ai_check_status=AICheckStatus.NOT_CHECKED.value,
            ai_check_result=None,
            ai_check_score=None,
            ai_checked_at=None,
            created_at=datetime.now(timezone.utc),
        )

    async def save_check_result(
        self,
        document_id: UUID,
        expected_storage_path: str,
        result: Dict[str, Any],
        score: int,
        checked_at: datetime,
    ) -> bool:
        """Overwrite the check result if the row still points at the analysed blob.

        Concurrent checks of the same blob are last-write-wins. Returns False
        when the document was deleted or replaced while it was being analysed.
        """
        statement = (
            update(StoredDocument)
            .where(
                StoredDocument.id == document_id,
                StoredDocument.storage_path == expected_storage_path,
            )
            .values(
                ai_check_status=AICheckStatus.CHECKED.value,
                ai_check_result=result,
                ai_check_score=score,
                ai_checked_at=checked_at,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch")
        )
        outcome = await self.session.execute(statement)
        await self.session.commit()
        return outcome.rowcount > 0
