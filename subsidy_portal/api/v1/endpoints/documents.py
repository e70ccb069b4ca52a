from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile, status

from subsidy_portal.core.exceptions import PayloadTooLarge
from subsidy_portal.dependencies import get_compliance_check_service, get_ingestion_service
from subsidy_portal.schemas.documents import (
    CheckRequest,
    CheckResponse,
    DocumentListResponse,
    DownloadUrlResponse,
    StoredDocumentResponse,
    UploadResponse,
)
from subsidy_portal.services.compliance_check_service import ComplianceCheckService
from subsidy_portal.services.ingestion_service import IngestionService
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document into an owner's slot",
    operation_id="upload_document",
)
async def upload_document(
    owner_ref: UUID = Form(..., description="Application that owns the document"),
    document_key: str = Form(..., description="Document slot, e.g. employment_rules"),
    file: UploadFile = File(..., description="The document (PDF or image)"),
    ingestion_service: Annotated[IngestionService, Depends(get_ingestion_service)] = None,
) -> UploadResponse:
    """
    Upload a document.

    Uploading into a slot that already holds a file replaces it and clears
    any earlier compliance-check result.
    """
    # Reject before buffering the body when the size is already known
    if file.size is not None and file.size > ingestion_service.max_upload_bytes:
        raise PayloadTooLarge(ingestion_service.max_upload_bytes, file.size)

    data = await file.read()
    document = await ingestion_service.upload(
        owner_ref,
        document_key,
        file.filename or "",
        data,
        mime_type=file.content_type,
    )
    return UploadResponse(success=True, document=StoredDocumentResponse.model_validate(document))


@router.get(
    "",
    response_model=DocumentListResponse,
    summary="List documents of an owner",
    operation_id="list_documents",
)
async def list_documents(
    owner_ref: UUID = Query(..., description="Application that owns the documents"),
    ingestion_service: Annotated[IngestionService, Depends(get_ingestion_service)] = None,
) -> DocumentListResponse:
    documents = await ingestion_service.list_documents(owner_ref)
    return DocumentListResponse(
        total=len(documents),
        documents=[StoredDocumentResponse.model_validate(document) for document in documents],
    )


@router.get(
    "/{document_id}",
    response_model=StoredDocumentResponse,
    summary="Get document details",
    operation_id="get_document",
)
async def get_document(
    document_id: UUID,
    ingestion_service: Annotated[IngestionService, Depends(get_ingestion_service)] = None,
) -> StoredDocumentResponse:
    """Retrieve document metadata by ID."""
    document = await ingestion_service.get_document(document_id)
    return StoredDocumentResponse.model_validate(document)


@router.delete(
    "/{document_id}",
    summary="Delete document",
    operation_id="delete_document",
)
async def delete_document(
    document_id: UUID,
    ingestion_service: Annotated[IngestionService, Depends(get_ingestion_service)] = None,
):
    """Delete the document row and its stored file."""
    await ingestion_service.delete_document(document_id)
    return {"success": True, "message": "Document deleted"}


@router.get(
    "/{document_id}/download-url",
    response_model=DownloadUrlResponse,
    summary="Get a signed download URL",
    operation_id="get_document_download_url",
)
async def get_download_url(
    document_id: UUID,
    ttl: Optional[int] = Query(None, gt=0, description="URL lifetime in seconds"),
    ingestion_service: Annotated[IngestionService, Depends(get_ingestion_service)] = None,
) -> DownloadUrlResponse:
    signed_url, expires_in = await ingestion_service.get_download_url(document_id, ttl)
    return DownloadUrlResponse(document_id=document_id, signed_url=signed_url, expires_in=expires_in)


@router.post(
    "/{document_id}/ai-check",
    response_model=CheckResponse,
    summary="Run an AI compliance check",
    operation_id="check_document",
)
async def check_document(
    document_id: UUID,
    request: Optional[CheckRequest] = Body(None),
    check_service: Annotated[ComplianceCheckService, Depends(get_compliance_check_service)] = None,
) -> CheckResponse:
    """
    Analyse a stored document against its subsidy requirements.

    Every call runs a fresh check and replaces the stored result. A failed
    model call is reported as-is; the caller may retry.
    """
    request = request or CheckRequest()
    outcome = await check_service.check(
        document_id,
        subsidy_type=request.subsidy_type,
        settings_override=request.settings_override,
    )
    return CheckResponse(
        success=True,
        analysis=outcome.analysis,
        document_name=outcome.document_name,
        checked_at=outcome.checked_at,
    )
