"""Prompt compiler.

Turns a prompt template plus analysis settings into the single instruction
text sent to the model. Compilation performs no I/O and is deterministic for
identical inputs.
"""

from typing import Optional

from subsidy_portal.core.exceptions import TemplateNotFound
from subsidy_portal.schemas.prompts import (
    AnalysisSettings,
    AnalysisSettingsOverride,
    PromptTemplate,
    StrictnessLevel,
)
from subsidy_portal.services.prompt_store import PromptConfigStore

STRICTNESS_INSTRUCTIONS = {
    StrictnessLevel.LENIENT: "Judge the document compliant as long as the basic requirements are met.",
    StrictnessLevel.STANDARD: "Judge requirement compliance with an ordinary level of strictness.",
    StrictnessLevel.STRICT: (
        "Judge requirement compliance to a high standard of strictness. "
        "Check every detail carefully."
    ),
    StrictnessLevel.VERY_STRICT: (
        "Judge with the highest level of strictness. Point out even the slightest "
        "deficiency and demand completeness."
    ),
}


def merge_settings(
    defaults: AnalysisSettings, override: Optional[AnalysisSettingsOverride] = None
) -> AnalysisSettings:
    """Merge an override into the defaults; set override fields win.

    Custom variables merge key by key so an override can change one variable
    without dropping the others.
    """
    if override is None:
        return defaults

    changes = override.model_dump(exclude_none=True)
    if "custom_variables" in changes:
        changes["custom_variables"] = {**defaults.custom_variables, **changes["custom_variables"]}
    return defaults.model_copy(update=changes)


def render_prompt(
    template: PromptTemplate,
    settings: AnalysisSettings,
    file_name: str,
    subsidy_name: str,
    document_name: str,
) -> str:
    """Render the prompt text for already-resolved inputs."""
    criteria = "\n".join(
        f"{index}. {criterion}" for index, criterion in enumerate(template.evaluation_criteria, start=1)
    )
    elements = "\n".join(f"- {element}" for element in template.required_elements)
    focus_areas = "\n".join(f"- {area}" for area in settings.focus_areas) or "- (none)"
    variables = "\n".join(f"- {key}: {value}" for key, value in settings.custom_variables.items())

    settings_lines = [
        f"- Compliance threshold: {settings.compliance_threshold}% or higher",
        f"- Confidence threshold: {settings.confidence_threshold}% or higher",
        f"- Detailed analysis: {'enabled' if settings.enable_detailed_analysis else 'disabled'}",
        f"- Improvement suggestions: {'enabled' if settings.enable_suggestions else 'disabled'}",
    ]
    if variables:
        settings_lines.append(variables)

    sections = [
        template.system_role,
        template.analysis_instructions.strip(),
        f"## Strictness: {STRICTNESS_INSTRUCTIONS[settings.strictness_level]}",
        f"## Evaluation criteria:\n{criteria}",
        f"## Required elements:\n{elements}",
        "## Analysis settings:\n" + "\n".join(settings_lines),
        f"## Focus areas:\n{focus_areas}",
        (
            "## Target document:\n"
            f"- File name: {file_name}\n"
            f"- Document type: {document_name}\n"
            f"- Subsidy: {subsidy_name}"
        ),
        template.output_format,
        (
            f"Apply a confidence threshold of {settings.confidence_threshold}% and a "
            f"compliance threshold of {settings.compliance_threshold}% when judging."
        ),
    ]
    return "\n\n".join(sections)


class PromptCompiler:
    """Compiles prompts from templates resolved through a config store."""

    def __init__(self, store: PromptConfigStore):
        self.store = store

    def compile(
        self,
        subsidy_type: str,
        document_type: str,
        file_name: str,
        settings_override: Optional[AnalysisSettingsOverride] = None,
    ) -> str:
        """Build the instruction text for one document.

        Raises:
            TemplateNotFound: If no active template exists for the pair
        """
        template = self.store.get_active_template(subsidy_type, document_type)
        if template is None:
            raise TemplateNotFound(subsidy_type, document_type)

        settings = merge_settings(self.store.get_settings(), settings_override)
        return render_prompt(
            template,
            settings,
            file_name=file_name,
            subsidy_name=self.store.subsidy_type_name(subsidy_type),
            document_name=self.store.document_type_name(document_type),
        )
