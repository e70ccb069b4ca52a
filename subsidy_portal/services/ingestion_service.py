"""Ingestion coordinator.

Drives one upload attempt through the storage write and the metadata write,
compensating with a blob delete when the metadata write fails. Once the
storage write has started the attempt runs to completion even if the caller
goes away.
"""

import asyncio
import mimetypes
import re
from pathlib import PurePath
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from subsidy_portal.core.config import settings
from subsidy_portal.core.exceptions import (
    DocumentNotFoundError,
    InvalidStatusTransition,
    MetadataPersistFailed,
    PayloadTooLarge,
    StorageUnavailable,
    ValidationError,
)
from subsidy_portal.database.models import StoredDocument
from subsidy_portal.repositories.document_repository import DocumentRepository
from subsidy_portal.schemas.documents import UploadStatus
from subsidy_portal.services.base_service import BaseService
from subsidy_portal.services.storage_service import StorageService
from subsidy_portal.services.transcoder import ensure_within_limit
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)

ProgressCallback = Callable[[UploadStatus], None]

# Slot names become one segment of the object path
DOCUMENT_KEY_PATTERN = re.compile(r"[A-Za-z0-9_-]+")

_ALLOWED_TRANSITIONS = {
    UploadStatus.PENDING: {UploadStatus.UPLOADING, UploadStatus.ERROR},
    UploadStatus.UPLOADING: {UploadStatus.COMPLETED, UploadStatus.ERROR},
    UploadStatus.COMPLETED: {UploadStatus.UPLOADING},
    UploadStatus.ERROR: set(),
}


def check_transition(current: UploadStatus, new: UploadStatus, replace: bool = False) -> None:
    """Raise InvalidStatusTransition unless ``current -> new`` is allowed.

    ``completed -> uploading`` is only reachable through an explicit replace;
    ``error`` is terminal, a failed attempt is never retried in place.
    """
    allowed = new in _ALLOWED_TRANSITIONS[current]
    if current == UploadStatus.COMPLETED and not replace:
        allowed = False
    if not allowed:
        raise InvalidStatusTransition(f"Upload status cannot change from {current.value} to {new.value}")


class UploadStatusTracker:
    """Upload status of a single attempt, reported to an optional callback."""

    def __init__(self, on_change: Optional[ProgressCallback] = None):
        self.status = UploadStatus.PENDING
        self.history: List[UploadStatus] = [self.status]
        self._on_change = on_change

    def resume(self, status: UploadStatus) -> None:
        """Continue from the status of the row being replaced."""
        self.status = status

    def transition(self, new: UploadStatus, replace: bool = False) -> None:
        check_transition(self.status, new, replace=replace)
        self.status = new
        self.history.append(new)
        if self._on_change is not None:
            try:
                self._on_change(new)
            except Exception:
                LOGGER.warning(f"Progress callback failed for status {new.value}", exc_info=True)


def _extension_for(file_name: str) -> str:
    return PurePath(file_name).suffix.lstrip(".").lower() or "bin"


def _mime_type_for(file_name: str, declared: Optional[str]) -> str:
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or declared or "application/octet-stream"


class IngestionService(BaseService):
    """Upload, replace, list, download and delete stored documents."""

    def __init__(
        self,
        repository: DocumentRepository,
        storage: StorageService,
        max_upload_bytes: Optional[int] = None,
        signed_url_ttl_seconds: Optional[int] = None,
    ):
        super().__init__(repository)
        self.storage = storage
        self.max_upload_bytes = max_upload_bytes or settings.ingestion.max_upload_bytes
        self.signed_url_ttl_seconds = signed_url_ttl_seconds or settings.ingestion.signed_url_ttl_seconds

    async def run(self, *args, **kwargs):
        action = kwargs.pop("action")
        handlers = {
            "upload": self._upload_logic,
            "list": self._list_documents_logic,
            "get": self._get_document_logic,
            "delete": self._delete_document_logic,
            "download_url": self._download_url_logic,
        }
        if action not in handlers:
            raise ValidationError(f"Unknown action: {action}")
        return await handlers[action](**kwargs)

    def validate(self, *args, **kwargs):
        if kwargs.get("action") != "upload":
            return
        document_key = kwargs.get("document_key") or ""
        if not document_key.strip():
            raise ValidationError("document_key is required")
        if not DOCUMENT_KEY_PATTERN.fullmatch(document_key):
            raise ValidationError(
                f"Invalid document_key {document_key!r}: use letters, digits, underscores and hyphens only"
            )
        if not (kwargs.get("file_name") or "").strip():
            raise ValidationError("File has no filename")
        if not kwargs.get("data"):
            raise ValidationError("File is empty")

    # Public API

    async def upload(
        self,
        owner_ref: UUID,
        document_key: str,
        file_name: str,
        data: bytes,
        mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StoredDocument:
        """Store a file in an owner's slot, replacing any previous file.

        Raises:
            PayloadTooLarge: If the file exceeds the upload ceiling
            StorageUnavailable: If the blob write fails (no row is created)
            MetadataPersistFailed: If the row write fails (the new blob is removed)
        """
        return await self.execute(
            action="upload",
            owner_ref=owner_ref,
            document_key=document_key,
            file_name=file_name,
            data=data,
            mime_type=mime_type,
            on_progress=on_progress,
        )

    async def list_documents(self, owner_ref: UUID) -> List[StoredDocument]:
        return await self.execute(action="list", owner_ref=owner_ref)

    async def get_document(self, document_id: UUID) -> StoredDocument:
        return await self.execute(action="get", document_id=document_id)

    async def delete_document(self, document_id: UUID) -> None:
        """Delete the row, then its blob."""
        await self.execute(action="delete", document_id=document_id)

    async def get_download_url(self, document_id: UUID, ttl: Optional[int] = None) -> Tuple[str, int]:
        """Signed URL for a completed document and its lifetime in seconds."""
        return await self.execute(action="download_url", document_id=document_id, ttl=ttl)

    # Upload

    async def _upload_logic(
        self,
        owner_ref: UUID,
        document_key: str,
        file_name: str,
        data: bytes,
        mime_type: Optional[str],
        on_progress: Optional[ProgressCallback],
    ) -> StoredDocument:
        tracker = UploadStatusTracker(on_change=on_progress)
        try:
            ensure_within_limit(len(data), self.max_upload_bytes, "upload")
        except PayloadTooLarge:
            tracker.transition(UploadStatus.ERROR)
            raise

        existing = await self.repository.get_by_owner_and_key(owner_ref, document_key)
        if existing is not None:
            tracker.resume(UploadStatus(existing.upload_status))
        tracker.transition(UploadStatus.UPLOADING, replace=existing is not None)

        LOGGER.info(
            f"Upload started: owner={owner_ref}, key={document_key}, "
            f"bytes={len(data)}, replace={existing is not None}"
        )

        # Shielded so a cancelled request cannot stop between write and compensation
        return await asyncio.shield(
            self._store_and_persist(
                tracker,
                owner_ref=owner_ref,
                document_key=document_key,
                file_name=file_name,
                data=data,
                mime_type=_mime_type_for(file_name, mime_type),
                existing=existing,
            )
        )

    async def _store_and_persist(
        self,
        tracker: UploadStatusTracker,
        owner_ref: UUID,
        document_key: str,
        file_name: str,
        data: bytes,
        mime_type: str,
        existing: Optional[StoredDocument],
    ) -> StoredDocument:
        previous_path = existing.storage_path if existing is not None else None

        try:
            path = await self.storage.write(owner_ref, document_key, data, _extension_for(file_name), mime_type)
        except StorageUnavailable:
            tracker.transition(UploadStatus.ERROR)
            LOGGER.error(
                f"Upload failed at storage write: owner={owner_ref}, key={document_key}",
                exc_info=True,
                extra={"owner_ref": str(owner_ref), "document_key": document_key},
            )
            raise

        try:
            if existing is not None:
                document = await self.repository.replace_blob(
                    existing.id,
                    storage_path=path,
                    byte_size=len(data),
                    original_file_name=file_name,
                    mime_type=mime_type,
                )
                if document is None:
                    raise DocumentNotFoundError(f"Document {existing.id} disappeared during replace")
            else:
                document = await self.repository.create_document(
                    owner_ref=owner_ref,
                    document_key=document_key,
                    storage_path=path,
                    byte_size=len(data),
                    original_file_name=file_name,
                    mime_type=mime_type,
                )
        except Exception as e:
            LOGGER.error(
                f"Metadata write failed for {path}, removing the new blob",
                exc_info=True,
                extra={"owner_ref": str(owner_ref), "document_key": document_key, "path": path},
            )
            await self._rollback()
            await self._compensate(path)
            tracker.transition(UploadStatus.ERROR)
            raise MetadataPersistFailed(
                f"Could not record the uploaded file {file_name}: {e}", original_error=e
            ) from e

        # The old blob goes only after the row points at the new one
        if previous_path and previous_path != path:
            await self._delete_replaced_blob(previous_path)

        tracker.transition(UploadStatus.COMPLETED)
        LOGGER.info(
            f"Upload completed: document_id={document.id}, path={path}",
            extra={"owner_ref": str(owner_ref), "document_key": document_key, "path": path},
        )

        await self._verify_visibility(owner_ref, document_key, document.id, path)
        return document

    async def _rollback(self) -> None:
        try:
            await self.repository.rollback()
        except SQLAlchemyError:
            LOGGER.error("Session rollback failed after metadata write failure", exc_info=True)

    async def _compensate(self, path: str) -> None:
        try:
            await self.storage.delete(path)
            LOGGER.info(f"Compensation removed blob {path}")
        except StorageUnavailable:
            LOGGER.error(
                f"Compensation failed, blob {path} is orphaned",
                exc_info=True,
                extra={"path": path},
            )

    async def _delete_replaced_blob(self, path: str) -> None:
        try:
            await self.storage.delete(path)
        except StorageUnavailable:
            LOGGER.warning(f"Replaced blob {path} could not be deleted and is orphaned", exc_info=True)

    async def _verify_visibility(self, owner_ref: UUID, document_key: str, document_id: UUID, path: str) -> None:
        """Re-read the slot; a miss is logged, never retried."""
        try:
            visible = await self.repository.get_by_owner_and_key(owner_ref, document_key)
        except SQLAlchemyError:
            LOGGER.warning(
                f"Visibility check could not read owner={owner_ref}, key={document_key}", exc_info=True
            )
            return

        if visible is None or visible.id != document_id or visible.storage_path != path:
            LOGGER.warning(
                f"Uploaded document {document_id} is not visible by owner and key yet",
                extra={
                    "owner_ref": str(owner_ref),
                    "document_key": document_key,
                    "path": path,
                    "visible_id": str(visible.id) if visible is not None else None,
                },
            )

    # Queries and removal

    async def _list_documents_logic(self, owner_ref: UUID) -> List[StoredDocument]:
        return await self.repository.list_by_owner(owner_ref)

    async def _get_document_logic(self, document_id: UUID) -> StoredDocument:
        document = await self.repository.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return document

    async def _delete_document_logic(self, document_id: UUID) -> None:
        document = await self._get_document_logic(document_id)
        path = document.storage_path

        await self.repository.delete(document_id)
        try:
            await self.storage.delete(path)
        except StorageUnavailable:
            LOGGER.warning(
                f"Document {document_id} deleted but blob {path} could not be removed and is orphaned",
                exc_info=True,
                extra={"document_id": str(document_id), "path": path},
            )
        LOGGER.info(f"Deleted document {document_id}")

    async def _download_url_logic(self, document_id: UUID, ttl: Optional[int]) -> Tuple[str, int]:
        document = await self._get_document_logic(document_id)
        if document.upload_status != UploadStatus.COMPLETED.value:
            raise ValidationError(f"Document {document_id} has no completed upload")

        expires_in = ttl or self.signed_url_ttl_seconds
        url = await self.storage.signed_download_url(document.storage_path, expires_in)
        return url, expires_in
