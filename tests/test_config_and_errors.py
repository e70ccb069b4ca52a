"""Tests for settings and the error taxonomy."""

from subsidy_portal.core.config import IngestionSettings, Settings
from subsidy_portal.core.exceptions import (
    AppError,
    InferenceUnavailable,
    MetadataPersistFailed,
    PayloadTooLarge,
    StorageUnavailable,
    TemplateNotFound,
    format_megabytes,
)

MB = 1024 * 1024


def test_ingestion_defaults(monkeypatch):
    for name in ("MAX_UPLOAD_BYTES", "MAX_INFERENCE_BYTES", "STRICT_RESULT_PARSING", "DEFAULT_SUBSIDY_TYPE"):
        monkeypatch.delenv(name, raising=False)

    ingestion = IngestionSettings()

    assert ingestion.max_upload_bytes == 20 * MB
    assert ingestion.max_inference_bytes == 15 * MB
    assert ingestion.strict_result_parsing is False
    assert ingestion.default_subsidy_type == "career_up"
    assert ingestion.prompt_config_path.endswith("prompt_templates.yaml")


def test_ingestion_settings_from_environment(monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "1024")
    monkeypatch.setenv("STRICT_RESULT_PARSING", "true")

    ingestion = Settings().ingestion

    assert ingestion.max_upload_bytes == 1024
    assert ingestion.strict_result_parsing is True


def test_format_megabytes():
    assert format_megabytes(20 * MB) == "20MB"
    assert format_megabytes(int(15.5 * MB)) == "15.5MB"


def test_payload_too_large_payload():
    payload = PayloadTooLarge(limit_bytes=15 * MB, actual_bytes=16 * MB, stage="AI analysis").to_payload()

    assert payload == {
        "code": "PAYLOAD_TOO_LARGE",
        "detail": payload["detail"],
        "stage": "AI analysis",
        "limit_bytes": 15 * MB,
        "limit_mb": "15MB",
        "actual_bytes": 16 * MB,
        "actual_mb": "16MB",
    }
    assert "15MB" in payload["detail"] and "16MB" in payload["detail"]


def test_every_error_keeps_its_cause():
    cause = ConnectionError("reset")
    errors = [
        StorageUnavailable("write failed", path="o/k/1.pdf", original_error=cause),
        MetadataPersistFailed("insert failed", original_error=cause),
        InferenceUnavailable("timed out", original_error=cause),
    ]

    for error in errors:
        assert isinstance(error, AppError)
        assert error.original_error is cause
        assert set(error.to_payload()) == {"code", "detail"}


def test_template_not_found_names_the_pair():
    error = TemplateNotFound("career_up", "wage_ledger")

    assert "career_up" in error.message and "wage_ledger" in error.message
    assert error.http_status == 500
