"""Binary transcoder: chunked base64 conversion with size gating."""

import base64
import binascii
from typing import Optional

from subsidy_portal.core.exceptions import PayloadTooLarge, ValidationError
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)

CHUNK_SIZE = 8 * 1024
HARD_LIMIT_BYTES = 20 * 1024 * 1024
INFERENCE_LIMIT_BYTES = 15 * 1024 * 1024

# base64 maps every 3 input bytes to 4 output characters
_RAW_GROUP = 3
_TEXT_GROUP = 4


def ensure_within_limit(actual_bytes: int, limit_bytes: int, stage: str) -> None:
    """Raise PayloadTooLarge when ``actual_bytes`` exceeds ``limit_bytes``."""
    if actual_bytes > limit_bytes:
        LOGGER.warning(
            f"Payload rejected at {stage} admission: {actual_bytes} > {limit_bytes} bytes",
            extra={"stage": stage, "actual_bytes": actual_bytes, "limit_bytes": limit_bytes},
        )
        raise PayloadTooLarge(limit_bytes=limit_bytes, actual_bytes=actual_bytes, stage=stage)


class BinaryTranscoder:
    """Converts between raw bytes and base64 text in fixed-size chunks.

    Input is processed ``CHUNK_SIZE`` bytes at a time. Bytes that do not fill a
    whole 3-byte group are carried into the next chunk so that the chunks
    concatenate into exactly the single-pass encoding.
    """

    def __init__(self, max_bytes: int = HARD_LIMIT_BYTES, chunk_size: int = CHUNK_SIZE):
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size

    def encode(self, data: bytes, limit_bytes: Optional[int] = None, stage: str = "upload") -> str:
        """Encode ``data`` to base64 text.

        Args:
            data: Raw bytes
            limit_bytes: Optional stricter ceiling checked in addition to the hard one
            stage: Admission stage named in a PayloadTooLarge error

        Raises:
            PayloadTooLarge: If a ceiling is exceeded; checked before any chunking
        """
        size = len(data)
        ensure_within_limit(size, self.max_bytes, stage)
        if limit_bytes is not None:
            ensure_within_limit(size, limit_bytes, stage)

        view = memoryview(data)
        parts = []
        carry = b""
        for start in range(0, size, self.chunk_size):
            block = carry + bytes(view[start:start + self.chunk_size])
            usable = len(block) - (len(block) % _RAW_GROUP)
            parts.append(base64.b64encode(block[:usable]).decode("ascii"))
            carry = block[usable:]
        if carry:
            parts.append(base64.b64encode(carry).decode("ascii"))

        return "".join(parts)

    def decode(self, text: str) -> bytes:
        """Decode base64 ``text`` produced by :meth:`encode`.

        Raises:
            PayloadTooLarge: If the decoded size would exceed the hard ceiling
            ValidationError: If the text is not valid base64
        """
        if len(text) % _TEXT_GROUP:
            raise ValidationError(f"Encoded text length {len(text)} is not a multiple of 4")

        padding = len(text) - len(text.rstrip("="))
        ensure_within_limit(len(text) // _TEXT_GROUP * _RAW_GROUP - padding, self.max_bytes, "decode")

        # Whole 4-character groups only so every chunk decodes independently
        step = self.chunk_size - (self.chunk_size % _TEXT_GROUP)
        decoded = bytearray()
        try:
            for start in range(0, len(text), step):
                decoded += base64.b64decode(text[start:start + step], validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(f"Invalid base64 content: {e}", original_error=e) from e

        return bytes(decoded)
