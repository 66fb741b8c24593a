"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends

from docqa.api.dependencies import get_services
from docqa.services.container import ServiceContainer

router = APIRouter()


@router.get("/health")
async def health(services: ServiceContainer = Depends(get_services)):
    """Service liveness and index summary."""
    return {
        "status": "ok",
        "rag_enabled": True,
        "document_count": services.index.count(),
        "embedding": services.index.embedder.version,
        "llm_configured": services.llm.configured,
        "version": services.settings.service.version,
    }


@router.get("/tools")
async def list_tools(services: ServiceContainer = Depends(get_services)):
    """Registered agent tools with their execution counts."""
    return {"tools": services.registry.list_tools()}
