from fastapi import APIRouter

from cre_docs.api.v1.endpoints import documents, fine_tuning, training

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])
api_router.include_router(training.router, prefix="/training", tags=["Training"])
api_router.include_router(fine_tuning.router, prefix="/fine-tuning", tags=["Fine-Tuning"])

__all__ = ["api_router"]
