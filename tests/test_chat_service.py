# tests/test_chat_service.py
import pytest

from chat_gateway.core.errors import AccessDeniedError, IntakeError, PersistenceError
from chat_gateway.providers.router import ModelRouter
from chat_gateway.schemas.chat import User
from chat_gateway.services.access import AccessController
from chat_gateway.services.chat_service import ChatOrchestrator, StreamEvent, TurnState
from chat_gateway.services.identity import StaticTokenIdentity
from chat_gateway.services.memory import SessionStore
from chat_gateway.services.persistence import InMemoryChatRepository, InMemoryUserRepository
from conftest import FakeAdapter

ALICE = User(id="alice")


@pytest.fixture
def openai():
    return FakeAdapter("openai")


@pytest.fixture
def orchestrator(openai):
    chats = InMemoryChatRepository()
    return ChatOrchestrator(
        sessions=SessionStore(system_prompt="sys"),
        chats=chats,
        access=AccessController(chats, InMemoryUserRepository()),
        router=ModelRouter({"openai": openai}, default_model="gpt-3.5-turbo"),
        identity=StaticTokenIdentity({"tok": ALICE}),
    )


def test_receive_validates_intake(orchestrator):
    with pytest.raises(IntakeError):
        orchestrator.receive("", "hi", None, has_files=False)
    with pytest.raises(IntakeError):
        orchestrator.receive("s1", "   ", None, has_files=False)
    turn = orchestrator.receive("s1", "", " ", has_files=True)
    assert turn.state is TurnState.RECEIVED
    assert turn.requested_model is None


@pytest.mark.asyncio
async def test_one_shot_walks_to_done(orchestrator, caplog_debug):
    turn = orchestrator.receive("s1", "hi", None, has_files=False)
    await orchestrator.authenticate(turn, "Bearer tok")
    assert turn.state is TurnState.AUTHENTICATED
    await orchestrator.prepare(turn, [])
    assert turn.state is TurnState.PROVIDER_DISPATCHED
    assert await orchestrator.complete(turn) == "Hello"
    assert turn.state is TurnState.DONE

    log_text = "\n".join(rec.getMessage() for rec in caplog_debug.records)
    assert "history_assembled -> provider_dispatched" in log_text
    assert "persisted -> done" in log_text


@pytest.mark.asyncio
async def test_stream_emits_single_terminal_event(orchestrator):
    turn = orchestrator.receive("s1", "hi", None, has_files=False)
    await orchestrator.authenticate(turn, "Bearer tok")
    await orchestrator.prepare(turn, [])
    events = [e async for e in orchestrator.stream(turn)]
    assert [e.kind for e in events] == ["chunk", "chunk", "done"]
    assert sum(1 for e in events if e.terminal) == 1
    assert turn.reply == "Hello"
    history = await orchestrator.sessions.history("s1")
    assert [m.role for m in history] == ["system", "user", "assistant"]


@pytest.mark.asyncio
async def test_abandoned_stream_is_not_persisted(orchestrator, openai):
    openai.chunks = ["a", "b", "c"]
    turn = orchestrator.receive("s1", "hi", None, has_files=False)
    await orchestrator.authenticate(turn, "Bearer tok")
    await orchestrator.prepare(turn, [])
    events = orchestrator.stream(turn)
    first = await events.__anext__()
    assert first.payload() == {"chunk": "a"}
    await events.aclose()
    assert await orchestrator.chats.find_chat("s1") is None
    assert [m.role for m in await orchestrator.sessions.history("s1")] == ["system"]


@pytest.mark.asyncio
async def test_denied_turn_is_errored(orchestrator, openai):
    turn = orchestrator.receive("s1", "hi", "gpt-4", has_files=False)
    await orchestrator.authenticate(turn, "Bearer tok")
    with pytest.raises(AccessDeniedError):
        await orchestrator.prepare(turn, [])
    assert turn.state is TurnState.ERRORED
    assert openai.calls == []


def test_stream_event_payloads():
    assert StreamEvent.chunk("x").payload() == {"chunk": "x"}
    assert StreamEvent.done().payload() == {"done": True}
    assert StreamEvent.error("boom", code="provider_error").payload() == {"error": "boom", "code": "provider_error"}


@pytest.mark.asyncio
async def test_session_deleted_before_reply_lands(orchestrator, caplog_info):
    turn = orchestrator.receive("s1", "hi", None, has_files=False)
    await orchestrator.authenticate(turn, "Bearer tok")
    await orchestrator.prepare(turn, [])
    await orchestrator.delete_session(ALICE, "s1")

    assert await orchestrator.complete(turn) == "Hello"
    assert turn.state is TurnState.DONE
    assert await orchestrator.sessions.get("s1") is None
    assert await orchestrator.chats.find_chat("s1") is None
    log_text = "\n".join(rec.getMessage() for rec in caplog_info.records)
    assert "deleted mid-turn" in log_text


@pytest.mark.asyncio
async def test_stream_done_despite_durable_store_failure(orchestrator, monkeypatch):
    async def save_turn(*args, **kwargs):
        raise PersistenceError("db down")
    monkeypatch.setattr(orchestrator.chats, "save_turn", save_turn)

    turn = orchestrator.receive("s1", "hi", None, has_files=False)
    await orchestrator.authenticate(turn, "Bearer tok")
    await orchestrator.prepare(turn, [])
    events = [e async for e in orchestrator.stream(turn)]
    assert events[-1].payload() == {"done": True}
    assert turn.state is TurnState.DONE


def test_unauthenticated_turn_has_no_owner(orchestrator):
    turn = orchestrator.receive("s1", "hi", None, has_files=False)
    with pytest.raises(RuntimeError):
        turn.owner
    with pytest.raises(RuntimeError):
        turn.target
