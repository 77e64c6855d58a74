# tests/conftest.py
import asyncio
import json
import logging
import os
import tempfile
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Ensure test-friendly env: no remote collaborators, uploads in a scratch dir
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="chat-gateway-uploads-")
os.environ["SUPABASE_URL"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["LOG_PROVIDER_STATUS"] = "false"
os.environ["SYSTEM_PROMPT"] = "You are a test assistant."

# IMPORTANT: import the app factory after envs are set
from chat_gateway.main import create_app
from chat_gateway.providers.base import ProviderAdapter, ProviderError
from chat_gateway.schemas.chat import User
from chat_gateway.schemas.messages import ContentPart, Message
from chat_gateway.services.identity import StaticTokenIdentity
from chat_gateway.services.persistence import InMemoryChatRepository, InMemoryUserRepository, UserRecord

TOKENS = {
    "tok-alice": User(id="alice", email="alice@example.com"),
    "tok-bob": User(id="bob", email="bob@example.com"),
}
ALICE = {"Authorization": "Bearer tok-alice"}
BOB = {"Authorization": "Bearer tok-bob"}


class FakeAdapter(ProviderAdapter):
    """Scripted provider: streams ``chunks`` and records every call."""

    def __init__(
        self,
        name: str,
        *,
        chunks: Sequence[str] = ("Hel", "lo"),
        fail_after: Optional[int] = None,
        max_image_bytes: Optional[int] = None,
    ) -> None:
        super().__init__("fake-key", base_url="http://fake.invalid")
        self.name = name
        self.default_model = f"{name}-default"
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.calls: List[Tuple[List[Message], str]] = []
        # set resume to an Event to hold the stream after its first chunk
        self.resume: Optional[asyncio.Event] = None
        self.paused = asyncio.Event()
        if max_image_bytes is not None:
            self.max_image_bytes = max_image_bytes

    def encode_parts(self, parts: List[ContentPart]) -> Any:
        return [p.model_dump() for p in parts]

    def encode_content(self, messages: List[Message]) -> Dict[str, Any]:
        return {"messages": [m.model_dump() for m in messages]}

    async def generate(self, messages: List[Message], model: str) -> str:
        self._require_configured()
        self.calls.append((messages, model))
        if self.fail_after is not None:
            raise ProviderError(self.name, "Internal Server Error", http_status=500)
        return "".join(self.chunks)

    async def stream(self, messages: List[Message], model: str) -> AsyncIterator[str]:
        self._require_configured()
        self.calls.append((messages, model))
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise ProviderError(self.name, "connection reset", http_status=500)
            yield chunk
            await asyncio.sleep(0)
            if i == 0 and self.resume is not None:
                self.paused.set()
                await self.resume.wait()


def sse_events(body: str) -> List[Dict[str, Any]]:
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


@pytest.fixture
def adapters() -> Dict[str, FakeAdapter]:
    return {
        "openai": FakeAdapter("openai"),
        "claude": FakeAdapter("claude"),
        "gemini": FakeAdapter("gemini"),
    }


@pytest.fixture
def chat_repo() -> InMemoryChatRepository:
    return InMemoryChatRepository()


@pytest.fixture
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def subscribe(user_repo):
    def _subscribe(user_id: str) -> None:
        user_repo.put(UserRecord(id=user_id, is_subscribed=True))
    return _subscribe


@pytest_asyncio.fixture
async def app(adapters, chat_repo, user_repo):
    return create_app(
        adapters=adapters,
        chat_repository=chat_repo,
        user_repository=user_repo,
        identity=StaticTokenIdentity(TOKENS),
    )


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def caplog_info(caplog):
    caplog.set_level(logging.INFO)
    return caplog


@pytest.fixture
def caplog_debug(caplog):
    caplog.set_level(logging.DEBUG)
    return caplog
