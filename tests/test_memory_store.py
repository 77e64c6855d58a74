# tests/test_memory_store.py
import pytest

from chat_gateway.schemas.messages import Message, UploadedFile
from chat_gateway.services.memory import Session, SessionStore


@pytest.mark.asyncio
async def test_ensure_creates_session_with_system_first():
    # A new session holds exactly its system message
    m = SessionStore(system_prompt="sys")
    s = await m.ensure("c1", owner_id="u1", model="gpt-3.5-turbo")
    assert [(x.role, x.content) for x in s.messages] == [("system", "sys")]
    assert s.selected_model == "gpt-3.5-turbo"
    # a second ensure returns the same session untouched
    again = await m.ensure("c1", owner_id="u1", model="gpt-4")
    assert again is s
    assert again.selected_model == "gpt-3.5-turbo"


@pytest.mark.asyncio
async def test_append_and_history_order():
    # Messages are appended and retrieved in order; history is a copy
    m = SessionStore(system_prompt="sys")
    await m.ensure("c1", owner_id="u1", model="m")
    await m.append("c1", "user", "u1")
    await m.append("c1", "assistant", "a1")
    hist = await m.history("c1")
    assert [t.role for t in hist] == ["system", "user", "assistant"]
    hist.append(Message(role="user", content="not stored"))
    assert len(await m.history("c1")) == 3


@pytest.mark.asyncio
async def test_system_message_never_duplicated():
    m = SessionStore(system_prompt="sys")
    seed = [
        Message(role="system", content="old system"),
        Message(role="user", content="q"),
        Message(role="assistant", content="a"),
    ]
    await m.ensure("c1", owner_id="u1", model="m", seed=seed)
    hist = await m.history("c1")
    assert [t.role for t in hist] == ["system", "user", "assistant"]
    assert hist[0].content == "sys"
    with pytest.raises(ValueError):
        await m.append("c1", "system", "again")


@pytest.mark.asyncio
async def test_set_requires_system_first():
    m = SessionStore(system_prompt="sys")
    with pytest.raises(ValueError):
        await m.set(Session(session_id="c1", owner_id="u1", selected_model="m"))


@pytest.mark.asyncio
async def test_append_to_unknown_session_raises():
    m = SessionStore(system_prompt="sys")
    with pytest.raises(KeyError):
        await m.append("nope", "user", "hi")


@pytest.mark.asyncio
async def test_select_model_files_and_delete():
    m = SessionStore(system_prompt="sys")
    await m.ensure("c1", owner_id="u1", model="a")
    await m.select_model("c1", "b")
    f = UploadedFile(file_name="f", original_name="f.txt", storage_handle="/tmp/f")
    await m.add_files("c1", [f])
    s = await m.get("c1")
    assert s.selected_model == "b"
    assert s.files == [f]
    assert await m.delete("c1") is True
    assert await m.get("c1") is None
    assert await m.history("c1") == []
    assert await m.delete("c1") is False
