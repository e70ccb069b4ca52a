"""Centralized dependency injection for the FastAPI application.

Factories for repositories and services. Process-wide collaborators (prompt
store, LLM client) are cached; everything bound to a database session is
created per request.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from subsidy_portal.core.config import settings
from subsidy_portal.core.database import get_async_session
from subsidy_portal.core.llm_client import BaseLLMClient, create_llm_client
from subsidy_portal.repositories.document_repository import DocumentRepository
from subsidy_portal.services.compliance_check_service import ComplianceCheckService
from subsidy_portal.services.inference_service import ModelInvocationClient
from subsidy_portal.services.ingestion_service import IngestionService
from subsidy_portal.services.prompt_compiler import PromptCompiler
from subsidy_portal.services.prompt_store import InMemoryPromptConfigStore, load_prompt_config
from subsidy_portal.services.result_normalizer import ResultNormalizer
from subsidy_portal.services.storage_service import StorageService
from subsidy_portal.services.transcoder import BinaryTranscoder


@lru_cache
def get_prompt_store() -> InMemoryPromptConfigStore:
    """Prompt configuration store shared by all requests."""
    return load_prompt_config(settings.ingestion.prompt_config_path)


@lru_cache
def get_llm_client() -> BaseLLMClient:
    """Client for the configured LLM provider."""
    return create_llm_client(settings.llm)


def get_storage_service() -> StorageService:
    return StorageService()


def get_transcoder() -> BinaryTranscoder:
    return BinaryTranscoder(max_bytes=settings.ingestion.max_upload_bytes)


async def get_document_repository(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> DocumentRepository:
    """Get document repository instance.

    Args:
        db_session: Database session from dependency injection

    Returns:
        DocumentRepository: Repository for stored document rows
    """
    return DocumentRepository(db_session)


def get_prompt_compiler(
    store: Annotated[InMemoryPromptConfigStore, Depends(get_prompt_store)]
) -> PromptCompiler:
    return PromptCompiler(store)


async def get_ingestion_service(
    repository: Annotated[DocumentRepository, Depends(get_document_repository)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
) -> IngestionService:
    """Get ingestion service instance."""
    return IngestionService(
        repository,
        storage,
        max_upload_bytes=settings.ingestion.max_upload_bytes,
        signed_url_ttl_seconds=settings.ingestion.signed_url_ttl_seconds,
    )


async def get_compliance_check_service(
    repository: Annotated[DocumentRepository, Depends(get_document_repository)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
    compiler: Annotated[PromptCompiler, Depends(get_prompt_compiler)],
    llm_client: Annotated[BaseLLMClient, Depends(get_llm_client)],
    transcoder: Annotated[BinaryTranscoder, Depends(get_transcoder)],
) -> ComplianceCheckService:
    """Get compliance check service instance."""
    invocation_client = ModelInvocationClient(
        storage,
        llm_client,
        transcoder=transcoder,
        max_inference_bytes=settings.ingestion.max_inference_bytes,
    )
    return ComplianceCheckService(
        repository,
        compiler,
        invocation_client,
        normalizer=ResultNormalizer(strict=settings.ingestion.strict_result_parsing),
        default_subsidy_type=settings.ingestion.default_subsidy_type,
        max_upload_bytes=settings.ingestion.max_upload_bytes,
    )
