import base64
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from chat_gateway.core import config
from chat_gateway.providers.base import MiB, ProviderAdapter, ProviderError
from chat_gateway.schemas.messages import ContentPart, Message, TextPart

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class ClaudeAdapter(ProviderAdapter):
    """
    Anthropic Messages API.

    The system prompt moves out of the message list into the top-level
    ``system`` field, and every message carries a list of typed blocks with
    images inlined as base64 ``source`` blocks.
    """

    name = "claude"
    default_model = "claude-3-5-sonnet-20240620"
    model_aliases = {
        "claude-3-5-sonnet": "claude-3-5-sonnet-20240620",
        "claude-3-7-sonnet": "claude-3-7-sonnet-20250219",
        "claude-3-opus": "claude-3-opus-20240229",
        "claude-3-haiku": "claude-3-haiku-20240307",
    }
    key_prefix = "sk-ant-"
    max_image_bytes = 10 * MiB
    max_request_bytes = 32 * MiB

    def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(
            config.CLAUDE_API_KEY if api_key is None else api_key,
            base_url=base_url or config.CLAUDE_BASE_URL,
            **kwargs,
        )

    def _is_canonical_id(self, model: str) -> bool:
        # already versioned, e.g. claude-3-5-sonnet-20240620
        return model.startswith("claude") and "-202" in model

    def encode_parts(self, parts: List[ContentPart]) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = []
        for part in parts:
            if isinstance(part, TextPart):
                blocks.append({"type": "text", "text": part.text})
            else:
                blocks.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": part.mime_type,
                        "data": base64.b64encode(part.data).decode("ascii"),
                    },
                })
        return blocks

    def encode_content(self, messages: List[Message]) -> Dict[str, Any]:
        system = next((m.text for m in messages if m.role == "system"), "")
        wire = []
        for m in messages:
            if m.role == "system":
                continue
            parts = [TextPart(text=m.content)] if isinstance(m.content, str) else m.content
            wire.append({"role": m.role, "content": self.encode_parts(parts)})
        body: Dict[str, Any] = {"messages": wire}
        if system:
            body["system"] = system
        return body

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _payload(self, messages: List[Message], model: str, *, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": model, "max_tokens": self.max_tokens, **self.encode_content(messages)}
        if stream:
            payload["stream"] = True
        return payload

    async def generate(self, messages: List[Message], model: str) -> str:
        self._require_configured()
        model_id = self.resolve_model(model)
        logger.info("using claude model %s (requested: %s)", model_id, model)
        data = await self._post_json(
            f"{self.base_url}/messages", self._headers(), self._payload(messages, model_id, stream=False)
        )
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProviderError(self.name, "unexpected response shape")
        return "".join(b.get("text", "") for b in blocks if isinstance(b, dict) and b.get("type") == "text")

    async def stream(self, messages: List[Message], model: str) -> AsyncIterator[str]:
        self._require_configured()
        model_id = self.resolve_model(model)
        logger.info("streaming with claude model %s (requested: %s)", model_id, model)
        events = self._stream_events(
            f"{self.base_url}/messages", self._headers(), self._payload(messages, model_id, stream=True)
        )
        try:
            async for event in events:
                kind = event.get("type")
                if kind == "error":
                    err = event.get("error") or {}
                    raise ProviderError(self.name, err.get("message", "stream error") if isinstance(err, dict) else str(err))
                if kind == "content_block_delta":
                    text = (event.get("delta") or {}).get("text")
                    if isinstance(text, str) and text:
                        yield text
        finally:
            await events.aclose()
