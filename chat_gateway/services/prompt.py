from pathlib import Path
from typing import List

from chat_gateway.core import config
from chat_gateway.schemas.messages import ImagePart, Message, TextPart

ATTACHMENT_PROMPT = "Please analyze the attached content."


def load_system_prompt() -> str:
    if config.SYSTEM_PROMPT:
        return config.SYSTEM_PROMPT
    p = Path(__file__).resolve().parents[1] / "prompts" / "system.txt"
    return p.read_text(encoding="utf-8").strip()


def compose_user_text(message: str, document_text: str = "") -> str:
    # [text prompt][document summary]; images follow as separate parts
    text = message.strip()
    if document_text:
        text = f"{text}\n\n{document_text}" if text else document_text
    return text.rstrip()


def build_messages(history: List[Message], user_text: str, images: List[ImagePart] | None = None) -> List[Message]:
    """
    Canonical request for one turn: the stored history (system message first)
    followed by the new user message. With images, that last user message is
    replaced by a multi-part one rather than sent twice.
    """
    messages = list(history)
    messages.append(Message(role="user", content=user_text))
    if images:
        messages[-1] = Message(role="user", content=[TextPart(text=user_text), *images])
    return messages
