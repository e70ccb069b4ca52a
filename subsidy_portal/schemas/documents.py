"""Request and response models for document ingestion and checks."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from subsidy_portal.schemas.analysis import AnalysisResult
from subsidy_portal.schemas.prompts import AnalysisSettingsOverride


class UploadStatus(str, Enum):
    """Upload dimension of a document's lifecycle."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


class AICheckStatus(str, Enum):
    """Check dimension of a document's lifecycle."""

    NOT_CHECKED = "not_checked"
    CHECKED = "checked"


class StoredDocumentResponse(BaseModel):
    """Serialized StoredDocument."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_ref: UUID
    document_key: str
    storage_path: str
    mime_type: str
    byte_size: int
    original_file_name: str
    upload_status: UploadStatus
    ai_check_status: AICheckStatus
    ai_check_result: Optional[AnalysisResult] = None
    ai_check_score: Optional[int] = None
    ai_checked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ErrorPayload(BaseModel):
    """Machine-readable code plus a human-readable detail."""

    model_config = ConfigDict(extra="allow")

    code: str = Field(..., description="Stable error code")
    detail: str = Field(..., description="Human-readable error detail")


class UploadResponse(BaseModel):
    """Outcome of an upload request."""

    success: bool
    document: Optional[StoredDocumentResponse] = None
    error: Optional[ErrorPayload] = None


class DocumentListResponse(BaseModel):
    """Documents of one owner."""

    total: int
    documents: List[StoredDocumentResponse]


class DownloadUrlResponse(BaseModel):
    """Signed download URL for a stored document."""

    document_id: UUID
    signed_url: str
    expires_in: int


class CheckRequest(BaseModel):
    """Body of a compliance-check request."""

    subsidy_type: Optional[str] = Field(None, description="Defaults to the configured subsidy type")
    settings_override: Optional[AnalysisSettingsOverride] = None


class CheckResponse(BaseModel):
    """Outcome of a compliance-check request."""

    success: bool
    analysis: Optional[AnalysisResult] = None
    document_name: Optional[str] = None
    checked_at: Optional[datetime] = None
    error: Optional[ErrorPayload] = None
