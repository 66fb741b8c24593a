"""API router configuration for the DocQA service."""
from fastapi import APIRouter

from .chat import router as chat_router
from .documents import router as documents_router
from .health import router as health_router
from .rag import router as rag_router

# Create the main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(health_router, tags=["health"])
api_router.include_router(documents_router, prefix="/documents", tags=["documents"])
api_router.include_router(chat_router, tags=["chat"])
api_router.include_router(rag_router, prefix="/rag", tags=["rag"])
