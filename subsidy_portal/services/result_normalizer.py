"""Result normalizer: free-text model output -> AnalysisResult.

Interpretation yields a tagged outcome, either ParsedResult or DegradedResult,
which collapses to a plain AnalysisResult at the boundary. A response that
cannot be structured degrades to an inconclusive result carrying the raw text,
unless strict parsing is enabled.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from subsidy_portal.core.exceptions import MalformedInferenceResponse
from subsidy_portal.schemas.analysis import (
    MAX_SCORE,
    MIN_SCORE,
    AnalysisIssue,
    AnalysisResult,
    AnalysisSuggestion,
    Severity,
)
from subsidy_portal.utils.json_parser import parse_json_safely
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)

INCONCLUSIVE_SCORE = 70

DEGRADED_SUMMARY = (
    "The document analysis completed, but the result could not be structured. "
    "A manual review is recommended."
)
DEGRADED_ISSUE = AnalysisIssue(
    severity=Severity.MEDIUM,
    title="Analysis result could not be parsed",
    description="The AI analysis finished, but its answer was not in the expected structured format.",
    location="Entire document",
)
DEGRADED_SUGGESTION = AnalysisSuggestion(
    title="Perform a manual review",
    description="Have a specialist review the document manually.",
)

_SEVERITY_ALIASES = {
    "critical": Severity.HIGH,
    "error": Severity.HIGH,
    "major": Severity.HIGH,
    "warning": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "minor": Severity.LOW,
    "info": Severity.LOW,
}


@dataclass(frozen=True)
class ParsedResult:
    """The model answer was structured successfully."""

    result: AnalysisResult


@dataclass(frozen=True)
class DegradedResult:
    """The model answer could not be structured; ``result`` is the fallback."""

    result: AnalysisResult
    reason: str


NormalizationOutcome = Union[ParsedResult, DegradedResult]


def _coerce_score(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        return INCONCLUSIVE_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return INCONCLUSIVE_SCORE
    if isinstance(value, int):
        return max(MIN_SCORE, min(MAX_SCORE, value))
    if not isinstance(value, float) or not math.isfinite(value):
        return INCONCLUSIVE_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, int(round(value))))


def _coerce_severity(value: Any) -> Severity:
    label = str(value or "").strip().lower()
    try:
        return Severity(label)
    except ValueError:
        return _SEVERITY_ALIASES.get(label, Severity.MEDIUM)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_issues(data: Dict[str, Any]) -> List[AnalysisIssue]:
    issues = []
    raw_issues = data.get("issues")
    for entry in raw_issues if isinstance(raw_issues, list) else []:
        if isinstance(entry, dict):
            issues.append(
                AnalysisIssue(
                    severity=_coerce_severity(entry.get("severity")),
                    title=_optional_text(entry.get("title")) or "Untitled issue",
                    description=_optional_text(entry.get("description")) or "",
                    location=_optional_text(entry.get("location")),
                )
            )
        elif _optional_text(entry):
            issues.append(AnalysisIssue(severity=Severity.MEDIUM, title=str(entry).strip()))

    # Older templates asked for a list of missing elements instead of issues
    missing = data.get("missing_items", data.get("missingItems"))
    for item in missing if isinstance(missing, list) else []:
        if _optional_text(item):
            issues.append(
                AnalysisIssue(
                    severity=Severity.HIGH,
                    title=f"Missing required element: {str(item).strip()}",
                )
            )
    return issues


def _coerce_suggestions(data: Dict[str, Any]) -> List[AnalysisSuggestion]:
    suggestions = []
    raw_suggestions = data.get("suggestions")
    for entry in raw_suggestions if isinstance(raw_suggestions, list) else []:
        if isinstance(entry, dict):
            suggestions.append(
                AnalysisSuggestion(
                    title=_optional_text(entry.get("title")) or "Suggestion",
                    description=_optional_text(entry.get("description")) or "",
                )
            )
        elif _optional_text(entry):
            suggestions.append(AnalysisSuggestion(title=str(entry).strip()))
    return suggestions


def degraded_result(raw_text: str) -> AnalysisResult:
    """The inconclusive result used when the answer cannot be structured."""
    return AnalysisResult(
        score=INCONCLUSIVE_SCORE,
        summary=DEGRADED_SUMMARY,
        issues=[DEGRADED_ISSUE.model_copy()],
        suggestions=[DEGRADED_SUGGESTION.model_copy()],
        raw_response=raw_text,
    )


class ResultNormalizer:
    """Turns raw model text into an AnalysisResult."""

    def __init__(self, strict: bool = False):
        self.strict = strict

    def interpret(self, raw_text: str) -> NormalizationOutcome:
        """Classify the raw text as parsed or degraded."""
        data, reason = parse_json_safely(raw_text or "")
        if data is None:
            return DegradedResult(result=degraded_result(raw_text), reason=reason)
        if not isinstance(data, dict):
            return DegradedResult(
                result=degraded_result(raw_text),
                reason=f"expected a JSON object, got {type(data).__name__}",
            )

        result = AnalysisResult(
            score=_coerce_score(data.get("score")),
            summary=_optional_text(data.get("summary", data.get("feedback"))) or "No summary provided.",
            issues=_coerce_issues(data),
            suggestions=_coerce_suggestions(data),
            extracted_text=_optional_text(data.get("extracted_text", data.get("extractedText"))),
        )
        return ParsedResult(result=result)

    def normalize(self, raw_text: str) -> AnalysisResult:
        """Structured result for ``raw_text``; never fails unless strict.

        Raises:
            MalformedInferenceResponse: Only in strict mode, when parsing fails
        """
        outcome = self.interpret(raw_text)
        if isinstance(outcome, DegradedResult):
            LOGGER.warning(
                f"Model response could not be structured ({outcome.reason}); "
                f"raw response length={len(raw_text or '')}"
            )
            if self.strict:
                raise MalformedInferenceResponse(
                    f"Model response could not be structured: {outcome.reason}",
                    raw_response=raw_text,
                )
        return outcome.result
