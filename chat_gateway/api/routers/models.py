from fastapi import APIRouter, Depends

from chat_gateway.api.deps import get_model_router
from chat_gateway.providers.router import ModelRouter
from chat_gateway.schemas.chat import ModelList

router = APIRouter(tags=["models"])


@router.get("/models", response_model=ModelList)
def list_models(models: ModelRouter = Depends(get_model_router)) -> ModelList:
    # advertised aliases only; any other id still routes by name
    return ModelList(models=models.catalogue())
