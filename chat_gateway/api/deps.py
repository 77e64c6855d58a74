from fastapi import Request

from chat_gateway.providers.router import ModelRouter
from chat_gateway.services.chat_service import ChatOrchestrator


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def get_model_router(request: Request) -> ModelRouter:
    return request.app.state.model_router
