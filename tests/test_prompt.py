# tests/test_prompt.py
from chat_gateway.schemas.messages import ImagePart, Message, TextPart
from chat_gateway.services import prompt


def test_load_system_prompt_prefers_config(monkeypatch):
    monkeypatch.setattr(prompt.config, "SYSTEM_PROMPT", "custom")
    assert prompt.load_system_prompt() == "custom"
    monkeypatch.setattr(prompt.config, "SYSTEM_PROMPT", "")
    assert prompt.load_system_prompt().startswith("You are a helpful assistant")


def test_compose_user_text():
    assert prompt.compose_user_text("  hi  ") == "hi"
    assert prompt.compose_user_text("hi", "docs\n\n") == "hi\n\ndocs"
    assert prompt.compose_user_text("", "docs") == "docs"


def test_build_messages_text_only():
    history = [Message(role="system", content="sys")]
    messages = prompt.build_messages(history, "hello")
    assert [m.role for m in messages] == ["system", "user"]
    assert messages[-1].content == "hello"
    assert len(history) == 1


def test_build_messages_with_images_replaces_last_user_message():
    history = [Message(role="system", content="sys")]
    image = ImagePart(mime_type="image/png", data=b"x")
    messages = prompt.build_messages(history, "look", [image])
    assert len(messages) == 2
    assert messages[-1].content == [TextPart(text="look"), image]
