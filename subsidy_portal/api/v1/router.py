from fastapi import APIRouter

from subsidy_portal.api.v1.endpoints import documents, prompts

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(prompts.router, prefix="/prompts", tags=["Prompts"])

__all__ = ["api_router"]
