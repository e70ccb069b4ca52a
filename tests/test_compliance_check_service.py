"""Tests for compliance checks and the end-to-end document flow."""

import asyncio
import json
import logging
import uuid

import pytest

from subsidy_portal.core.exceptions import (
    DocumentNotFoundError,
    InferenceUnavailable,
    PayloadTooLarge,
    TemplateNotFound,
    ValidationError,
)
from subsidy_portal.schemas.analysis import AnalysisResult
from subsidy_portal.schemas.documents import AICheckStatus, UploadStatus
from subsidy_portal.schemas.prompts import AnalysisSettingsOverride, StrictnessLevel

MB = 1024 * 1024
PDF = b"%PDF-1.7\n" + b"1" * 4096


@pytest.mark.asyncio
async def test_check_stores_result(ingestion_service, check_service, fake_repository, owner_ref):
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)

    outcome = await check_service.check(document.id)

    row = fake_repository.rows[document.id]
    assert outcome.persisted is True
    assert outcome.analysis.score == 85
    assert outcome.document_name == "Employment rules"
    assert row.ai_check_status == AICheckStatus.CHECKED.value
    assert row.ai_check_score == 85
    assert row.ai_checked_at == outcome.checked_at
    assert AnalysisResult.model_validate(row.ai_check_result) == outcome.analysis


@pytest.mark.asyncio
async def test_prompt_uses_default_subsidy_and_override(
    ingestion_service, check_service, fake_llm, owner_ref
):
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)

    await check_service.check(
        document.id,
        settings_override=AnalysisSettingsOverride(
            strictness_level=StrictnessLevel.VERY_STRICT, compliance_threshold=95
        ),
    )

    prompt, attachment = fake_llm.calls[0]
    assert "rules.pdf" in prompt
    assert "Compliance threshold: 95%" in prompt
    assert "Career Up" in prompt
    assert attachment.byte_size == len(PDF)


@pytest.mark.asyncio
async def test_recheck_overwrites_previous_result(
    ingestion_service, check_service, fake_repository, fake_llm, owner_ref
):
    fake_llm.responses = [
        json.dumps({"score": 40, "summary": "First"}),
        json.dumps({"score": 90, "summary": "Second"}),
    ]
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)

    await check_service.check(document.id)
    await check_service.check(document.id)

    row = fake_repository.rows[document.id]
    assert len(fake_repository.rows) == 1
    assert row.ai_check_status == AICheckStatus.CHECKED.value
    assert row.ai_check_result["summary"] == "Second"
    assert row.ai_check_score == 90


@pytest.mark.asyncio
async def test_malformed_answer_is_stored_as_degraded_result(
    ingestion_service, check_service, fake_repository, fake_llm, owner_ref
):
    fake_llm.responses = ["The document looks fine to me."]
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)

    outcome = await check_service.check(document.id)

    assert outcome.analysis.score == 70
    assert fake_repository.rows[document.id].ai_check_result["raw_response"] == "The document looks fine to me."


@pytest.mark.asyncio
async def test_missing_document(check_service):
    with pytest.raises(DocumentNotFoundError):
        await check_service.check(uuid.uuid4())


@pytest.mark.asyncio
async def test_incomplete_upload_cannot_be_checked(ingestion_service, check_service, fake_repository, owner_ref):
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)
    fake_repository.rows[document.id].upload_status = UploadStatus.UPLOADING.value

    with pytest.raises(ValidationError):
        await check_service.check(document.id)


@pytest.mark.asyncio
async def test_unknown_template_is_a_hard_failure(ingestion_service, check_service, fake_llm, owner_ref):
    document = await ingestion_service.upload(owner_ref, "bank_statement", "bank.pdf", PDF)

    with pytest.raises(TemplateNotFound):
        await check_service.check(document.id)

    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_stored_file_between_ceilings_fails_pre_inference_check(
    ingestion_service, check_service, fake_llm, owner_ref
):
    document = await ingestion_service.upload(owner_ref, "employment_rules", "big.pdf", b"x" * (16 * MB))
    assert document.upload_status == UploadStatus.COMPLETED.value

    with pytest.raises(PayloadTooLarge) as exc_info:
        await check_service.check(document.id)

    assert exc_info.value.limit_bytes == 15 * MB
    assert "15MB" in exc_info.value.message
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_recorded_size_above_hard_ceiling_is_rejected_before_download(
    ingestion_service, check_service, fake_repository, fake_storage, owner_ref
):
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)
    fake_repository.rows[document.id].byte_size = 21 * MB
    fake_storage.fail_read = True

    with pytest.raises(PayloadTooLarge) as exc_info:
        await check_service.check(document.id)

    assert exc_info.value.limit_bytes == 20 * MB
    assert exc_info.value.stage == "compliance check"
    assert "the compliance check limit is 20MB" in exc_info.value.message


@pytest.mark.asyncio
async def test_inference_failure_leaves_row_unchanged(
    ingestion_service, check_service, fake_repository, fake_llm, owner_ref
):
    async def fail():
        raise InferenceUnavailable("Inference service timed out after 60 seconds")

    fake_llm.before_answer = fail
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)

    with pytest.raises(InferenceUnavailable):
        await check_service.check(document.id)

    assert len(fake_llm.calls) == 1
    assert fake_repository.rows[document.id].ai_check_status == AICheckStatus.NOT_CHECKED.value


@pytest.mark.asyncio
async def test_concurrent_checks_last_write_wins(
    ingestion_service, check_service, fake_repository, fake_llm, owner_ref
):
    document = await ingestion_service.upload(owner_ref, "employment_rules", "rules.pdf", PDF)
    fake_llm.responses = [
        json.dumps({"score": 10, "summary": "A"}),
        json.dumps({"score": 20, "summary": "B"}),
    ]

    outcomes = await asyncio.gather(check_service.check(document.id), check_service.check(document.id))

    row = fake_repository.rows[document.id]
    assert all(outcome.persisted for outcome in outcomes)
    assert row.ai_check_status == AICheckStatus.CHECKED.value
    assert row.ai_check_result["summary"] in {"A", "B"}
    assert len(fake_repository.rows) == 1


@pytest.mark.asyncio
async def test_replace_during_check_does_not_store_stale_result(
    ingestion_service, check_service, fake_repository, fake_llm, owner_ref, caplog
):
    document = await ingestion_service.upload(owner_ref, "employment_rules", "v1.pdf", PDF)

    async def replace_while_model_runs():
        await ingestion_service.upload(owner_ref, "employment_rules", "v2.pdf", PDF + b"v2")

    fake_llm.before_answer = replace_while_model_runs

    with caplog.at_level(logging.WARNING, logger="subsidy_portal.services.compliance_check_service"):
        outcome = await check_service.check(document.id)

    row = fake_repository.rows[document.id]
    assert outcome.persisted is False
    assert outcome.analysis.score == 85
    assert row.original_file_name == "v2.pdf"
    assert row.ai_check_status == AICheckStatus.NOT_CHECKED.value
    assert row.ai_check_result is None
    assert any("result not stored" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_end_to_end_upload_check_replace(
    ingestion_service, check_service, fake_repository, fake_storage, fake_llm, owner_ref
):
    two_mb_pdf = b"%PDF-1.7\n" + b"\x00" * (2 * MB - 9)

    document = await ingestion_service.upload(
        owner_ref, "employment_rules", "employment_rules.pdf", two_mb_pdf, "application/pdf"
    )
    assert document.upload_status == UploadStatus.COMPLETED.value
    first_path = document.storage_path

    outcome = await check_service.check(document.id)
    assert fake_repository.rows[document.id].ai_check_status == AICheckStatus.CHECKED.value
    assert 0 <= outcome.analysis.score <= 100
    expected = AnalysisResult(**json.loads(fake_llm.responses[0]))
    assert outcome.analysis == expected

    replaced = await ingestion_service.upload(
        owner_ref, "employment_rules", "employment_rules_v2.pdf", two_mb_pdf + b"\n", "application/pdf"
    )
    assert replaced.id == document.id
    assert replaced.storage_path != first_path
    assert replaced.ai_check_status == AICheckStatus.NOT_CHECKED.value
    assert replaced.ai_check_result is None
    assert first_path not in fake_storage.blobs
