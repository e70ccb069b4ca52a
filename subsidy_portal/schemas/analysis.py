"""Structured output of a compliance check."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

MIN_SCORE = 0
MAX_SCORE = 100


class Severity(str, Enum):
    """Issue severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AnalysisIssue(BaseModel):
    """A problem found in the document."""

    severity: Severity = Field(..., description="Issue severity")
    title: str = Field(..., description="Short issue title")
    description: str = Field("", description="Detailed explanation")
    location: Optional[str] = Field(None, description="Where in the document the issue was found")


class AnalysisSuggestion(BaseModel):
    """A recommended improvement."""

    title: str = Field(..., description="Short suggestion title")
    description: str = Field("", description="How to apply the suggestion")


class AnalysisResult(BaseModel):
    """Compliance analysis stored on a document after a check.

    ``raw_response`` is only present when the model output could not be
    structured; it keeps the original text for human audit.
    """

    score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE, description="Compliance score (0-100)")
    summary: str = Field(..., description="Short natural-language verdict")
    issues: List[AnalysisIssue] = Field(default_factory=list)
    suggestions: List[AnalysisSuggestion] = Field(default_factory=list)
    extracted_text: Optional[str] = Field(None, description="Excerpt of recognized content")
    raw_response: Optional[str] = Field(None, description="Unparsed model output (degraded results only)")

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(MIN_SCORE, min(MAX_SCORE, int(round(value))))
        return value

    def to_record(self) -> dict:
        """JSON-safe dict for the metadata store."""
        return self.model_dump(mode="json", exclude_none=True)
