# chat_gateway/main.py
import logging
from typing import Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_gateway.api.routers.chat import router as chat_router
from chat_gateway.api.routers.health import router as health_router
from chat_gateway.api.routers.models import router as models_router
from chat_gateway.core import config
from chat_gateway.core.logging import setup_logging
from chat_gateway.providers.base import ProviderAdapter
from chat_gateway.providers.router import ModelRouter, build_adapters
from chat_gateway.services.access import AccessController
from chat_gateway.services.billing import BillingClient, StripeBilling
from chat_gateway.services.chat_service import ChatOrchestrator
from chat_gateway.services.identity import IdentityProvider, StaticTokenIdentity, SupabaseIdentity
from chat_gateway.services.memory import SessionStore
from chat_gateway.services.persistence import (
    ChatRepository,
    InMemoryChatRepository,
    InMemoryUserRepository,
    SupabaseChatRepository,
    SupabaseUserRepository,
    UserRepository,
)
from chat_gateway.services.prompt import load_system_prompt

logger = logging.getLogger(__name__)


def _log_provider_summary(adapters: Dict[str, ProviderAdapter]) -> None:
    # configured yes/no only; keys never reach the log
    for name, adapter in adapters.items():
        logger.info("provider %s configured: %s", name, "yes" if adapter.is_configured() else "no")


def create_app(
    *,
    adapters: Optional[Dict[str, ProviderAdapter]] = None,
    chat_repository: Optional[ChatRepository] = None,
    user_repository: Optional[UserRepository] = None,
    identity: Optional[IdentityProvider] = None,
    billing: Optional[BillingClient] = None,
) -> FastAPI:
    setup_logging()
    app = FastAPI(title="Chat Gateway", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Session-Id"],
    )

    adapters = adapters if adapters is not None else build_adapters()
    if config.LOG_PROVIDER_STATUS:
        _log_provider_summary(adapters)

    use_supabase = bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_ROLE_KEY)
    if chat_repository is None:
        chat_repository = (
            SupabaseChatRepository(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
            if use_supabase else InMemoryChatRepository()
        )
    if user_repository is None:
        user_repository = (
            SupabaseUserRepository(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
            if use_supabase else InMemoryUserRepository()
        )
    if identity is None:
        identity = (
            SupabaseIdentity(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
            if use_supabase else StaticTokenIdentity.from_string(config.STATIC_AUTH_TOKENS)
        )
    if billing is None and config.STRIPE_SECRET_KEY:
        billing = StripeBilling(config.STRIPE_SECRET_KEY)
    if not use_supabase:
        logger.warning("SUPABASE_URL not set; using in-memory chat store and static tokens")

    # shared objects live once on app.state and reach routers through Depends()
    app.state.model_router = ModelRouter(adapters)
    app.state.session_store = SessionStore(system_prompt=load_system_prompt())
    app.state.orchestrator = ChatOrchestrator(
        sessions=app.state.session_store,
        chats=chat_repository,
        access=AccessController(chat_repository, user_repository, billing),
        router=app.state.model_router,
        identity=identity,
    )

    # Routers
    app.include_router(health_router)
    app.include_router(models_router)
    app.include_router(chat_router)

    return app


app = create_app()
