from typing import List

from fastapi import APIRouter, Depends, HTTPException

from chat_gateway.api.deps import get_model_router
from chat_gateway.providers.router import ModelRouter
from chat_gateway.schemas.chat import ConnectionTest, ProviderStatus

router = APIRouter(tags=["meta"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/providers", response_model=List[ProviderStatus])
def provider_status(models: ModelRouter = Depends(get_model_router)):
    return [adapter.status() for adapter in models.adapters.values()]


@router.get("/health/providers/{name}", response_model=ConnectionTest)
async def provider_connection(name: str, models: ModelRouter = Depends(get_model_router)):
    # sends a short live prompt; costs one provider call
    adapter = models.get(name)
    if adapter is None:
        raise HTTPException(status_code=404, detail="unknown provider")
    return await adapter.test_connection()
