"""Model invocation client: stored document + prompt -> raw model text."""

from dataclasses import dataclass
from typing import Optional

from subsidy_portal.core.llm_client import BaseLLMClient, EncodedAttachment
from subsidy_portal.database.models import StoredDocument
from subsidy_portal.services.storage_service import StorageService
from subsidy_portal.services.transcoder import INFERENCE_LIMIT_BYTES, BinaryTranscoder, ensure_within_limit
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)

INFERENCE_STAGE = "AI analysis"


@dataclass(frozen=True)
class RawModelResponse:
    """Unparsed model output and what produced it."""

    text: str
    provider: str
    model: str
    attachment_bytes: int


class ModelInvocationClient:
    """Sends one stored document to the inference service.

    The soft inference ceiling is checked against the recorded size before
    the blob is fetched and against the fetched bytes before encoding starts.
    Nothing here retries.
    """

    def __init__(
        self,
        storage: StorageService,
        llm_client: BaseLLMClient,
        transcoder: Optional[BinaryTranscoder] = None,
        max_inference_bytes: int = INFERENCE_LIMIT_BYTES,
    ):
        self.storage = storage
        self.llm_client = llm_client
        self.transcoder = transcoder or BinaryTranscoder()
        self.max_inference_bytes = max_inference_bytes

    async def analyze(self, document: StoredDocument, prompt: str) -> RawModelResponse:
        """Fetch, encode and submit ``document`` with ``prompt``.

        Raises:
            PayloadTooLarge: If the document exceeds the inference ceiling
            StorageUnavailable: If the blob cannot be read
            InferenceUnavailable: If the model call fails or times out
        """
        ensure_within_limit(document.byte_size, self.max_inference_bytes, INFERENCE_STAGE)

        data = await self.storage.read(document.storage_path)
        encoded = self.transcoder.encode(data, limit_bytes=self.max_inference_bytes, stage=INFERENCE_STAGE)
        attachment = EncodedAttachment(
            mime_type=document.mime_type or "application/pdf",
            data=encoded,
            byte_size=len(data),
            file_name=document.original_file_name,
        )

        LOGGER.info(
            f"Submitting document {document.id} to {self.llm_client.provider.value}",
            extra={
                "document_id": str(document.id),
                "bytes": len(data),
                "encoded_length": len(encoded),
                "mime_type": attachment.mime_type,
            },
        )
        text = await self.llm_client.generate(prompt, attachment)
        LOGGER.info(f"Model response received for document {document.id}, length={len(text)}")

        return RawModelResponse(
            text=text,
            provider=self.llm_client.provider.value,
            model=self.llm_client.model,
            attachment_bytes=len(data),
        )
