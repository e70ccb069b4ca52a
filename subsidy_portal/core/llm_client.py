"""Vision-capable LLM clients.

Both providers receive the document as base64 text produced by the binary
transcoder. Calls are made exactly once: any transport or service failure,
including a timeout, is raised as InferenceUnavailable and retrying is left to
the user.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from subsidy_portal.core.config import LLMSettings
from subsidy_portal.core.exceptions import ConfigurationError, InferenceUnavailable
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    GEMINI = "gemini"
    OPENROUTER = "openrouter"


@dataclass(frozen=True)
class EncodedAttachment:
    """A document ready to be sent inline."""

    mime_type: str
    data: str
    byte_size: int
    file_name: str = "document"

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class BaseLLMClient:
    """Base client for LLM API interactions.

    Handles the HTTP request, timeout and error mapping shared by providers.
    """

    provider: LLMProvider

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: int = 60,
        temperature: float = 0.1,
        max_output_tokens: int = 8192,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._transport = transport
        self.logger = LOGGER

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def call_api(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` once and return the parsed JSON body.

        Raises:
            InferenceUnavailable: On timeout, transport error, error status or non-JSON body
        """
        self.logger.debug(f"Calling LLM API: {url}", extra={"timeout": self.timeout})

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, headers=self._headers(), json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            self.logger.error(f"{self.provider.value} call timed out after {self.timeout}s", extra={"url": url})
            raise InferenceUnavailable(
                f"Inference service timed out after {self.timeout} seconds", original_error=e
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            self.logger.error(
                f"{self.provider.value} returned HTTP {status_code}",
                extra={"url": url, "status_code": status_code, "error_body": e.response.text[:500]},
            )
            raise InferenceUnavailable(
                f"Inference service error {status_code}: {e.response.text[:200]}", original_error=e
            ) from e
        except httpx.HTTPError as e:
            self.logger.error(f"{self.provider.value} transport error: {e}", exc_info=True, extra={"url": url})
            raise InferenceUnavailable(f"Inference service unreachable: {e}", original_error=e) from e
        except ValueError as e:
            self.logger.error(f"{self.provider.value} returned a non-JSON body", extra={"url": url})
            raise InferenceUnavailable("Inference service returned an unreadable response", original_error=e) from e

    async def generate(self, prompt: str, attachment: EncodedAttachment) -> str:
        """Send the prompt with its attachment and return the model's text."""
        raise NotImplementedError


class GeminiClient(BaseLLMClient):
    """Google Gemini ``generateContent`` with inline document data."""

    provider = LLMProvider.GEMINI

    def _headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    async def generate(self, prompt: str, attachment: EncodedAttachment) -> str:
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": attachment.mime_type, "data": attachment.data}},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        response = await self.call_api(f"{self.base_url}/{self.model}:generateContent", payload)

        candidates = response.get("candidates") or []
        if not candidates:
            reason = (response.get("promptFeedback") or {}).get("blockReason", "no candidates returned")
            raise InferenceUnavailable(f"Gemini returned no answer: {reason}")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text:
            self.logger.warning("Empty response from Gemini")
        return text


class OpenRouterClient(BaseLLMClient):
    """OpenRouter chat completions with the document as a data URL."""

    provider = LLMProvider.OPENROUTER

    async def generate(self, prompt: str, attachment: EncodedAttachment) -> str:
        if attachment.mime_type.startswith("image/"):
            document_part = {"type": "image_url", "image_url": {"url": attachment.data_url}}
        else:
            document_part = {
                "type": "file",
                "file": {"filename": attachment.file_name, "file_data": attachment.data_url},
            }

        payload = {
            "model": self.model,
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": prompt}, document_part]}
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
        }
        response = await self.call_api(self.base_url, payload)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {str(response)[:500]}")
            raise InferenceUnavailable("Invalid response format from OpenRouter")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            self.logger.warning("Empty response from OpenRouter")
        return content


def create_llm_client(
    llm_settings: LLMSettings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> BaseLLMClient:
    """Build the client for the configured provider.

    Raises:
        ConfigurationError: If the provider is unknown
    """
    try:
        provider = LLMProvider(llm_settings.provider)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported LLM provider: {llm_settings.provider}", original_error=e) from e

    common = {
        "timeout": llm_settings.timeout_seconds,
        "temperature": llm_settings.temperature,
        "max_output_tokens": llm_settings.max_output_tokens,
        "transport": transport,
    }
    if provider == LLMProvider.GEMINI:
        client = GeminiClient(
            api_key=llm_settings.gemini_api_key,
            base_url=llm_settings.gemini_api_url,
            model=llm_settings.gemini_model,
            **common,
        )
    else:
        client = OpenRouterClient(
            api_key=llm_settings.openrouter_api_key,
            base_url=llm_settings.openrouter_api_url,
            model=llm_settings.openrouter_model,
            **common,
        )

    LOGGER.info(f"Initialized {provider.value} client with model {client.model}")
    return client
