from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from subsidy_portal.core.exceptions import PromptTemplateNotFound
from subsidy_portal.dependencies import get_prompt_compiler, get_prompt_store
from subsidy_portal.schemas.prompts import (
    AnalysisSettings,
    PromptPreviewRequest,
    PromptPreviewResponse,
    PromptTemplate,
    PromptTemplateCreate,
    PromptTemplateUpdate,
)
from subsidy_portal.services.prompt_compiler import PromptCompiler
from subsidy_portal.services.prompt_store import InMemoryPromptConfigStore

router = APIRouter()


@router.get(
    "/templates",
    response_model=List[PromptTemplate],
    summary="List prompt templates",
    operation_id="list_prompt_templates",
)
async def list_templates(
    store: Annotated[InMemoryPromptConfigStore, Depends(get_prompt_store)],
) -> List[PromptTemplate]:
    return store.list_templates()


@router.post(
    "/templates",
    response_model=PromptTemplate,
    status_code=status.HTTP_201_CREATED,
    summary="Create a prompt template",
    operation_id="create_prompt_template",
)
async def create_template(
    template: PromptTemplateCreate,
    store: Annotated[InMemoryPromptConfigStore, Depends(get_prompt_store)],
) -> PromptTemplate:
    """Create a template; an active one supersedes the current template for its pair."""
    return store.create_template(template)


@router.put(
    "/templates/{template_id}",
    response_model=PromptTemplate,
    summary="Update a prompt template",
    operation_id="update_prompt_template",
)
async def update_template(
    template_id: str,
    changes: PromptTemplateUpdate,
    store: Annotated[InMemoryPromptConfigStore, Depends(get_prompt_store)],
) -> PromptTemplate:
    updated = store.update_template(template_id, changes)
    if updated is None:
        raise PromptTemplateNotFound(template_id)
    return updated


@router.get(
    "/settings",
    response_model=AnalysisSettings,
    summary="Get default analysis settings",
    operation_id="get_analysis_settings",
)
async def get_settings(
    store: Annotated[InMemoryPromptConfigStore, Depends(get_prompt_store)],
) -> AnalysisSettings:
    return store.get_settings()


@router.put(
    "/settings",
    response_model=AnalysisSettings,
    summary="Replace default analysis settings",
    operation_id="update_analysis_settings",
)
async def update_settings(
    new_settings: AnalysisSettings,
    store: Annotated[InMemoryPromptConfigStore, Depends(get_prompt_store)],
) -> AnalysisSettings:
    store.save_settings(new_settings)
    return store.get_settings()


@router.post(
    "/preview",
    response_model=PromptPreviewResponse,
    summary="Compile a prompt without calling the model",
    operation_id="preview_prompt",
)
async def preview_prompt(
    request: PromptPreviewRequest,
    compiler: Annotated[PromptCompiler, Depends(get_prompt_compiler)],
) -> PromptPreviewResponse:
    prompt = compiler.compile(
        request.subsidy_type,
        request.document_type,
        request.file_name,
        settings_override=request.settings_override,
    )
    return PromptPreviewResponse(
        subsidy_type=request.subsidy_type,
        document_type=request.document_type,
        prompt=prompt,
    )
