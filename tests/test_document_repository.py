"""Tests for DocumentRepository against a mocked session."""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from subsidy_portal.database.models import StoredDocument
from subsidy_portal.repositories.document_repository import DocumentRepository


def mock_session(rowcount: int = 1) -> MagicMock:
    session = MagicMock()
    session.execute = AsyncMock(return_value=MagicMock(rowcount=rowcount))
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.mark.asyncio
async def test_create_document_starts_completed_and_unchecked():
    session = mock_session()
    repository = DocumentRepository(session)

    document = await repository.create_document(
        owner_ref=uuid.uuid4(),
        document_key="employment_rules",
        storage_path="o/employment_rules/1.pdf",
        byte_size=10,
        original_file_name="rules.pdf",
    )

    assert isinstance(document, StoredDocument)
    assert document.upload_status == "completed"
    assert document.ai_check_status == "not_checked"
    assert document.ai_check_result is None
    session.add.assert_called_once_with(document)
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_check_result_compares_storage_path():
    session = mock_session(rowcount=1)
    repository = DocumentRepository(session)

    saved = await repository.save_check_result(
        uuid.uuid4(),
        expected_storage_path="o/k/1.pdf",
        result={"score": 90, "summary": "ok"},
        score=90,
        checked_at=datetime.now(timezone.utc),
    )

    statement = session.execute.await_args.args[0]
    assert saved is True
    assert "stored_documents.storage_path = " in str(statement)
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_check_result_reports_stale_path():
    repository = DocumentRepository(mock_session(rowcount=0))

    saved = await repository.save_check_result(
        uuid.uuid4(),
        expected_storage_path="o/k/old.pdf",
        result={"score": 90, "summary": "ok"},
        score=90,
        checked_at=datetime.now(timezone.utc),
    )

    assert saved is False


@pytest.mark.asyncio
async def test_rollback_delegates_to_session():
    session = mock_session()

    await DocumentRepository(session).rollback()

    session.rollback.assert_awaited_once()
