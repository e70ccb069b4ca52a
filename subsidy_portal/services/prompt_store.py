"""Configuration store for prompt templates and analysis settings.

The prompt compiler depends only on :class:`PromptConfigStore`. The bundled
implementation keeps everything in memory and is seeded from YAML.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from subsidy_portal.core.exceptions import ConfigurationError
from subsidy_portal.schemas.prompts import (
    AnalysisSettings,
    PromptTemplate,
    PromptTemplateCreate,
    PromptTemplateUpdate,
)
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PromptConfigStore(ABC):
    """Read interface the prompt compiler is allowed to use."""

    @abstractmethod
    def get_active_template(self, subsidy_type: str, document_type: str) -> Optional[PromptTemplate]:
        """Return the active template for the pair, or None."""

    @abstractmethod
    def get_settings(self) -> AnalysisSettings:
        """Return the default analysis settings."""

    @abstractmethod
    def subsidy_type_name(self, subsidy_type: str) -> str:
        """Human-readable subsidy name; the key itself when unknown."""

    @abstractmethod
    def document_type_name(self, document_type: str) -> str:
        """Human-readable document name; the key itself when unknown."""


class InMemoryPromptConfigStore(PromptConfigStore):
    """Process-local store, mutable by the administrator endpoints."""

    def __init__(
        self,
        templates: Iterable[PromptTemplate] = (),
        settings: Optional[AnalysisSettings] = None,
        subsidy_types: Optional[Dict[str, str]] = None,
        document_types: Optional[Dict[str, str]] = None,
    ):
        self._templates: Dict[str, PromptTemplate] = {t.id: t for t in templates}
        self._settings = settings or AnalysisSettings()
        self._subsidy_types = dict(subsidy_types or {})
        self._document_types = dict(document_types or {})

    def get_active_template(self, subsidy_type: str, document_type: str) -> Optional[PromptTemplate]:
        for template in self._templates.values():
            if (
                template.subsidy_type == subsidy_type
                and template.document_type == document_type
                and template.is_active
            ):
                return template
        return None

    def get_settings(self) -> AnalysisSettings:
        return self._settings

    def subsidy_type_name(self, subsidy_type: str) -> str:
        return self._subsidy_types.get(subsidy_type, subsidy_type)

    def document_type_name(self, document_type: str) -> str:
        return self._document_types.get(document_type, document_type)

    def list_templates(self) -> List[PromptTemplate]:
        return list(self._templates.values())

    def get_template(self, template_id: str) -> Optional[PromptTemplate]:
        return self._templates.get(template_id)

    def create_template(self, template: PromptTemplateCreate) -> PromptTemplate:
        """Add a new template under a generated id."""
        now = datetime.now(timezone.utc)
        created = PromptTemplate(
            **template.model_dump(),
            id=f"custom_{uuid.uuid4().hex[:12]}",
            version=1,
            updated_by=template.created_by,
            created_at=now,
            updated_at=now,
        )
        self._templates[created.id] = created
        if created.is_active:
            self._deactivate_others(created)
        LOGGER.info(f"Created prompt template {created.id}")
        return created

    def update_template(self, template_id: str, changes: PromptTemplateUpdate) -> Optional[PromptTemplate]:
        """Apply an administrator update; bumps the version."""
        current = self._templates.get(template_id)
        if current is None:
            return None

        updated = current.model_copy(
            update={
                **changes.model_dump(exclude_none=True),
                "version": current.version + 1,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        self._templates[template_id] = updated
        if changes.is_active:
            self._deactivate_others(updated)
        LOGGER.info(f"Updated prompt template {template_id} to version {updated.version}")
        return updated

    def _deactivate_others(self, active: PromptTemplate) -> None:
        """Keep a single active template per subsidy/document pair."""
        for template_id, template in list(self._templates.items()):
            if (
                template_id != active.id
                and template.is_active
                and template.subsidy_type == active.subsidy_type
                and template.document_type == active.document_type
            ):
                self._templates[template_id] = template.model_copy(update={"is_active": False})
                LOGGER.info(f"Deactivated prompt template {template_id} in favour of {active.id}")

    def save_settings(self, settings: AnalysisSettings) -> None:
        self._settings = settings


def load_prompt_config(path: Union[str, Path]) -> InMemoryPromptConfigStore:
    """Build an in-memory store from a YAML prompt configuration file.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Prompt configuration not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw: Dict[str, Any] = yaml.safe_load(f) or {}
        store = InMemoryPromptConfigStore(
            templates=[PromptTemplate(**entry) for entry in raw.get("templates", [])],
            settings=AnalysisSettings(**raw.get("settings", {})),
            subsidy_types=raw.get("subsidy_types", {}),
            document_types=raw.get("document_types", {}),
        )
    except (yaml.YAMLError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid prompt configuration {config_path}: {e}", original_error=e) from e

    LOGGER.info(f"Loaded {len(store.list_templates())} prompt templates from {config_path}")
    return store
