import json
import re
from typing import Any, Dict, List, Tuple, Union

from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")
_FIRST_OBJECT = re.compile(r"(\{[^{}]*(?:\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}[^{}]*)*\})", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove surrounding markdown code fences (```json ... ```)."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_json_strict(text: str) -> Union[Dict[str, Any], List[Any]]:
    """Strip fences and parse; raises json.JSONDecodeError on failure."""
    return json.loads(strip_code_fences(text))


def parse_json_safely(text: str) -> Tuple[Union[Dict[str, Any], List[Any], None], str]:
    """Parse JSON from LLM output, handling common formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading/trailing prose around a single JSON object

    Args:
        text: The text containing JSON

    Returns:
        Tuple of (parsed value or None, reason when parsing failed)
    """
    if not text or not text.strip():
        return None, "empty response"

    cleaned = strip_code_fences(text)

    try:
        return json.loads(cleaned), ""
    except (ValueError, RecursionError) as e:
        # JSONDecodeError is a ValueError; oversized integers and deep nesting raise the others
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")
        error = e

    # The first balanced object embedded in prose
    match = _FIRST_OBJECT.search(cleaned)
    if match:
        try:
            return json.loads(match.group(1)), ""
        except (ValueError, RecursionError):
            pass

    LOGGER.error(f"Failed to parse JSON: {error}")
    return None, str(error)
