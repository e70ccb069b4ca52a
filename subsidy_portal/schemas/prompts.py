"""Prompt templates and analysis settings."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class StrictnessLevel(str, Enum):
    """How strictly requirement compliance is judged."""

    LENIENT = "lenient"
    STANDARD = "standard"
    STRICT = "strict"
    VERY_STRICT = "very_strict"


class PromptTemplate(BaseModel):
    """Administrator-defined instruction set for one subsidy/document pair."""

    id: str
    name: str
    subsidy_type: str
    document_type: str
    system_role: str
    analysis_instructions: str
    evaluation_criteria: List[str] = Field(default_factory=list)
    required_elements: List[str] = Field(default_factory=list)
    output_format: str
    is_active: bool = True
    version: int = 1
    created_by: str = "system"
    updated_by: str = "system"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PromptTemplateCreate(BaseModel):
    """New template submitted by an administrator; id and version are assigned."""

    name: str
    subsidy_type: str
    document_type: str
    system_role: str
    analysis_instructions: str
    evaluation_criteria: List[str] = Field(default_factory=list)
    required_elements: List[str] = Field(default_factory=list)
    output_format: str
    is_active: bool = True
    created_by: str = "admin"


class PromptTemplateUpdate(BaseModel):
    """Partial update applied by an administrator."""

    name: Optional[str] = None
    system_role: Optional[str] = None
    analysis_instructions: Optional[str] = None
    evaluation_criteria: Optional[List[str]] = None
    required_elements: Optional[List[str]] = None
    output_format: Optional[str] = None
    is_active: Optional[bool] = None
    updated_by: Optional[str] = None


class AnalysisSettings(BaseModel):
    """Tunable settings rendered into every compiled prompt."""

    strictness_level: StrictnessLevel = StrictnessLevel.STANDARD
    compliance_threshold: int = Field(80, ge=0, le=100)
    confidence_threshold: int = Field(70, ge=0, le=100)
    focus_areas: List[str] = Field(default_factory=list)
    custom_variables: Dict[str, str] = Field(default_factory=dict)
    enable_detailed_analysis: bool = True
    enable_suggestions: bool = True


class AnalysisSettingsOverride(BaseModel):
    """Per-call override; every field left as None keeps the default."""

    strictness_level: Optional[StrictnessLevel] = None
    compliance_threshold: Optional[int] = Field(None, ge=0, le=100)
    confidence_threshold: Optional[int] = Field(None, ge=0, le=100)
    focus_areas: Optional[List[str]] = None
    custom_variables: Optional[Dict[str, str]] = None
    enable_detailed_analysis: Optional[bool] = None
    enable_suggestions: Optional[bool] = None


class PromptPreviewRequest(BaseModel):
    """Request to compile a prompt without calling the model."""

    subsidy_type: str
    document_type: str
    file_name: str = Field("sample.pdf")
    settings_override: Optional[AnalysisSettingsOverride] = None


class PromptPreviewResponse(BaseModel):
    """Compiled prompt text."""

    subsidy_type: str
    document_type: str
    prompt: str
