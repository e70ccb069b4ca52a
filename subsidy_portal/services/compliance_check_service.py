"""Compliance check of a stored document.

Compiles the prompt for the document's slot, invokes the model once,
normalizes the answer and stores it on the document row.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from subsidy_portal.core.config import settings
from subsidy_portal.core.exceptions import DocumentNotFoundError, ValidationError
from subsidy_portal.repositories.document_repository import DocumentRepository
from subsidy_portal.schemas.analysis import AnalysisResult
from subsidy_portal.schemas.documents import UploadStatus
from subsidy_portal.schemas.prompts import AnalysisSettingsOverride
from subsidy_portal.services.base_service import BaseService
from subsidy_portal.services.inference_service import ModelInvocationClient
from subsidy_portal.services.prompt_compiler import PromptCompiler
from subsidy_portal.services.result_normalizer import ResultNormalizer
from subsidy_portal.services.transcoder import ensure_within_limit
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)

CHECK_STAGE = "compliance check"


@dataclass(frozen=True)
class CheckOutcome:
    """Result of one check and whether it was stored on the row."""

    analysis: AnalysisResult
    document_name: str
    checked_at: datetime
    persisted: bool


class ComplianceCheckService(BaseService):
    """Runs AI compliance checks against stored documents.

    Each call is a fresh check: an earlier result is overwritten, and
    concurrent checks of the same blob are last-write-wins. A result computed
    for a blob that was replaced in the meantime is returned but not stored.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        compiler: PromptCompiler,
        invocation_client: ModelInvocationClient,
        normalizer: Optional[ResultNormalizer] = None,
        default_subsidy_type: Optional[str] = None,
        max_upload_bytes: Optional[int] = None,
    ):
        super().__init__(repository)
        self.compiler = compiler
        self.invocation_client = invocation_client
        self.normalizer = normalizer or ResultNormalizer(strict=settings.ingestion.strict_result_parsing)
        self.default_subsidy_type = default_subsidy_type or settings.ingestion.default_subsidy_type
        self.max_upload_bytes = max_upload_bytes or settings.ingestion.max_upload_bytes

    async def run(self, *args, **kwargs) -> CheckOutcome:
        return await self._check_logic(
            kwargs["document_id"], kwargs.get("subsidy_type"), kwargs.get("settings_override")
        )

    async def check(
        self,
        document_id: UUID,
        subsidy_type: Optional[str] = None,
        settings_override: Optional[AnalysisSettingsOverride] = None,
    ) -> CheckOutcome:
        """Analyse a completed document and record the result.

        Raises:
            DocumentNotFoundError: If the document does not exist
            ValidationError: If the upload is not complete
            PayloadTooLarge: If the document exceeds a ceiling
            TemplateNotFound: If no template matches the slot
            StorageUnavailable: If the blob cannot be read
            InferenceUnavailable: If the model call fails
        """
        return await self.execute(
            action="check",
            document_id=document_id,
            subsidy_type=subsidy_type,
            settings_override=settings_override,
        )

    async def _check_logic(
        self,
        document_id: UUID,
        subsidy_type: Optional[str],
        settings_override: Optional[AnalysisSettingsOverride],
    ) -> CheckOutcome:
        document = await self.repository.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        if document.upload_status != UploadStatus.COMPLETED.value:
            raise ValidationError(f"Document {document_id} has no completed upload")

        ensure_within_limit(document.byte_size, self.max_upload_bytes, CHECK_STAGE)

        subsidy_type = subsidy_type or self.default_subsidy_type
        document_type = document.document_key
        prompt = self.compiler.compile(
            subsidy_type,
            document_type,
            document.original_file_name,
            settings_override=settings_override,
        )

        analyzed_path = document.storage_path
        LOGGER.info(
            f"Compliance check started: document_id={document_id}, "
            f"subsidy_type={subsidy_type}, document_type={document_type}"
        )
        raw = await self.invocation_client.analyze(document, prompt)
        analysis = self.normalizer.normalize(raw.text)
        checked_at = datetime.now(timezone.utc)

        persisted = await self.repository.save_check_result(
            document_id,
            expected_storage_path=analyzed_path,
            result=analysis.to_record(),
            score=analysis.score,
            checked_at=checked_at,
        )
        if persisted:
            LOGGER.info(f"Compliance check stored: document_id={document_id}, score={analysis.score}")
        else:
            LOGGER.warning(
                f"Document {document_id} was replaced or deleted during the check; result not stored",
                extra={"document_id": str(document_id), "analyzed_path": analyzed_path},
            )

        return CheckOutcome(
            analysis=analysis,
            document_name=self.compiler.store.document_type_name(document_type),
            checked_at=checked_at,
            persisted=persisted,
        )
