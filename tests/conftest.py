"""Pytest configuration and shared fixtures."""

import json
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from subsidy_portal.core.config import DEFAULT_PROMPT_CONFIG_PATH
from subsidy_portal.core.exceptions import StorageUnavailable
from subsidy_portal.core.llm_client import EncodedAttachment, LLMProvider
from subsidy_portal.database.models import StoredDocument
from subsidy_portal.dependencies import (
    get_compliance_check_service,
    get_ingestion_service,
    get_prompt_store,
)
from subsidy_portal.main import app
from subsidy_portal.schemas.documents import AICheckStatus, UploadStatus
from subsidy_portal.services.compliance_check_service import ComplianceCheckService
from subsidy_portal.services.inference_service import ModelInvocationClient
from subsidy_portal.services.ingestion_service import IngestionService
from subsidy_portal.services.prompt_compiler import PromptCompiler
from subsidy_portal.services.prompt_store import InMemoryPromptConfigStore, load_prompt_config
from subsidy_portal.services.result_normalizer import ResultNormalizer
from subsidy_portal.services.storage_service import build_storage_path

MB = 1024 * 1024

VALID_ANALYSIS = {
    "score": 85,
    "summary": "The employment rules cover most requirements.",
    "issues": [
        {
            "severity": "high",
            "title": "No conversion procedure",
            "description": "The rules do not describe how fixed-term workers become regular employees.",
            "location": "Chapter 2",
        }
    ],
    "suggestions": [
        {"title": "Add a conversion article", "description": "Describe eligibility and timing."}
    ],
}


class FakeStorage:
    """In-memory storage gateway with failure switches."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.fail_write = False
        self.fail_read = False
        self.fail_delete = False
        self._clock_ms = 1_700_000_000_000

    async def write(self, owner_ref, document_key, data, ext, content_type="application/octet-stream"):
        if self.fail_write:
            raise StorageUnavailable("Storage upload error: simulated outage")
        self._clock_ms += 1
        path = build_storage_path(str(owner_ref), document_key, self._clock_ms, ext)
        if path in self.blobs:
            raise StorageUnavailable(f"Object already exists at {path}", path=path)
        self.blobs[path] = bytes(data)
        return path

    async def read(self, path):
        if self.fail_read or path not in self.blobs:
            raise StorageUnavailable(f"Download failed (404): {path}", path=path)
        return self.blobs[path]

    async def delete(self, path):
        if self.fail_delete:
            raise StorageUnavailable(f"Storage delete error: {path}", path=path)
        self.blobs.pop(path, None)
        self.deleted.append(path)

    async def signed_download_url(self, path, ttl=3600):
        return f"https://storage.test/signed/{path}?expires_in={ttl}"


class FakeDocumentRepository:
    """In-memory stand-in for DocumentRepository."""

    def __init__(self):
        self.rows: Dict[uuid.UUID, StoredDocument] = {}
        self.fail_create = False
        self.fail_replace = False
        self.rollbacks = 0
        self.hide_from_lookup = False

    def _now(self):
        return datetime.now(timezone.utc)

    async def get_by_id(self, id):
        return self.rows.get(id)

    async def get_by_owner_and_key(self, owner_ref, document_key):
        if self.hide_from_lookup:
            return None
        for row in self.rows.values():
            if row.owner_ref == owner_ref and row.document_key == document_key:
                return row
        return None

    async def list_by_owner(self, owner_ref):
        rows = [row for row in self.rows.values() if row.owner_ref == owner_ref]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    async def create_document(self, owner_ref, document_key, storage_path, byte_size, original_file_name, mime_type):
        if self.fail_create:
            raise SQLAlchemyError("insert into stored_documents failed")
        for row in self.rows.values():
            if row.owner_ref == owner_ref and row.document_key == document_key:
                raise SQLAlchemyError("duplicate key value violates uq_stored_documents_owner_key")
        now = self._now()
        document = StoredDocument(
            id=uuid.uuid4(),
            owner_ref=owner_ref,
            document_key=document_key,
            storage_path=storage_path,
            byte_size=byte_size,
            original_file_name=original_file_name,
            mime_type=mime_type,
            upload_status=UploadStatus.COMPLETED.value,
            ai_check_status=AICheckStatus.NOT_CHECKED.value,
            ai_check_result=None,
            ai_check_score=None,
            ai_checked_at=None,
            created_at=now,
            updated_at=now,
        )
        self.rows[document.id] = document
        return document

    async def replace_blob(self, document_id, storage_path, byte_size, original_file_name, mime_type):
        if self.fail_replace:
            raise SQLAlchemyError("update of stored_documents failed")
        document = self.rows.get(document_id)
        if document is None:
            return None
        document.storage_path = storage_path
        document.byte_size = byte_size
        document.original_file_name = original_file_name
        document.mime_type = mime_type
        document.upload_status = UploadStatus.COMPLETED.value
        document.ai_check_status = AICheckStatus.NOT_CHECKED.value
        document.ai_check_result = None
        document.ai_check_score = None
        document.ai_checked_at = None
        document.created_at = self._now()
        document.updated_at = self._now()
        return document

    async def save_check_result(self, document_id, expected_storage_path, result, score, checked_at):
        document = self.rows.get(document_id)
        if document is None or document.storage_path != expected_storage_path:
            return False
        document.ai_check_status = AICheckStatus.CHECKED.value
        document.ai_check_result = result
        document.ai_check_score = score
        document.ai_checked_at = checked_at
        document.updated_at = self._now()
        return True

    async def delete(self, id):
        return self.rows.pop(id, None) is not None

    async def rollback(self):
        self.rollbacks += 1


class FakeLLMClient:
    """Records prompts and answers with queued texts."""

    provider = LLMProvider.GEMINI
    model = "fake-vision-model"

    def __init__(self, responses: Optional[List[str]] = None):
        self.responses = list(responses or [json.dumps(VALID_ANALYSIS)])
        self.calls: List[tuple] = []
        self.before_answer = None

    async def generate(self, prompt: str, attachment: EncodedAttachment) -> str:
        self.calls.append((prompt, attachment))
        if self.before_answer is not None:
            await self.before_answer()
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_repository() -> FakeDocumentRepository:
    return FakeDocumentRepository()


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def prompt_store() -> InMemoryPromptConfigStore:
    """Fresh store seeded from the bundled prompt configuration."""
    return load_prompt_config(DEFAULT_PROMPT_CONFIG_PATH)


@pytest.fixture
def owner_ref() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def ingestion_service(fake_repository, fake_storage) -> IngestionService:
    return IngestionService(
        fake_repository,
        fake_storage,
        max_upload_bytes=20 * MB,
        signed_url_ttl_seconds=3600,
    )


@pytest.fixture
def check_service(fake_repository, fake_storage, fake_llm, prompt_store) -> ComplianceCheckService:
    return ComplianceCheckService(
        fake_repository,
        PromptCompiler(prompt_store),
        ModelInvocationClient(fake_storage, fake_llm, max_inference_bytes=15 * MB),
        normalizer=ResultNormalizer(strict=False),
        default_subsidy_type="career_up",
        max_upload_bytes=20 * MB,
    )


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def test_client(ingestion_service, check_service, prompt_store) -> TestClient:
    """FastAPI test client wired to the in-memory fakes.

    Returns:
        TestClient: FastAPI test client instance
    """
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion_service
    app.dependency_overrides[get_compliance_check_service] = lambda: check_service
    app.dependency_overrides[get_prompt_store] = lambda: prompt_store
    return TestClient(app)
