import base64
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from chat_gateway.core import config
from chat_gateway.providers.base import MiB, ProviderAdapter, ProviderError
from chat_gateway.schemas.messages import ContentPart, ImagePart, Message, TextPart

logger = logging.getLogger(__name__)


def to_data_url(part: ImagePart) -> str:
    encoded = base64.b64encode(part.data).decode("ascii")
    return f"data:{part.mime_type or 'application/octet-stream'};base64,{encoded}"


class OpenAICompatibleAdapter(ProviderAdapter):
    """
    Chat Completions API, also spoken by Grok and Deepseek.

    Images travel as base64 data URLs inside ``image_url`` parts; the system
    message stays in-line as the first element of ``messages``.
    """

    name = "openai"
    default_model = "gpt-3.5-turbo"
    model_aliases = {
        "gpt-3.5-turbo": "gpt-3.5-turbo",
        "gpt-4": "gpt-4",
        "gpt-4-turbo": "gpt-4-turbo",
        "gpt-4o": "gpt-4o",
        "gpt-4o-mini": "gpt-4o-mini",
    }
    key_prefix = "sk-"
    max_image_bytes = 20 * MiB
    max_request_bytes = 20 * MiB
    canonical_prefixes: tuple = ("gpt-", "o1", "o3", "o4", "chatgpt-")

    def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(
            config.OPENAI_API_KEY if api_key is None else api_key,
            base_url=base_url or config.OPENAI_BASE_URL,
            **kwargs,
        )

    def _is_canonical_id(self, model: str) -> bool:
        return model.startswith(self.canonical_prefixes)

    def encode_parts(self, parts: List[ContentPart]) -> List[Dict[str, Any]]:
        encoded: List[Dict[str, Any]] = []
        for part in parts:
            if isinstance(part, TextPart):
                encoded.append({"type": "text", "text": part.text})
            else:
                encoded.append({"type": "image_url", "image_url": {"url": to_data_url(part)}})
        return encoded

    def encode_content(self, messages: List[Message]) -> Dict[str, Any]:
        wire = []
        for m in messages:
            content = m.content if isinstance(m.content, str) else self.encode_parts(m.content)
            wire.append({"role": m.role, "content": content})
        return {"messages": wire}

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _payload(self, messages: List[Message], model: str, *, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"model": model, **self.encode_content(messages), "max_tokens": self.max_tokens}
        if stream:
            payload["stream"] = True
        return payload

    async def generate(self, messages: List[Message], model: str) -> str:
        self._require_configured()
        model_id = self.resolve_model(model)
        logger.info("using %s model %s (requested: %s)", self.name, model_id, model)
        data = await self._post_json(
            f"{self.base_url}/chat/completions", self._headers(), self._payload(messages, model_id, stream=False)
        )
        try:
            reply = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, "unexpected response shape") from e
        if not isinstance(reply, str):
            raise ProviderError(self.name, "unexpected response type")
        return reply

    async def stream(self, messages: List[Message], model: str) -> AsyncIterator[str]:
        self._require_configured()
        model_id = self.resolve_model(model)
        logger.info("streaming with %s model %s (requested: %s)", self.name, model_id, model)
        events = self._stream_events(
            f"{self.base_url}/chat/completions", self._headers(), self._payload(messages, model_id, stream=True)
        )
        try:
            async for event in events:
                if event.get("error"):
                    err = event["error"]
                    raise ProviderError(self.name, err.get("message", str(err)) if isinstance(err, dict) else str(err))
                choices = event.get("choices") or []
                if not choices:
                    continue
                delta = (choices[0].get("delta") or {}).get("content")
                if isinstance(delta, str) and delta:
                    yield delta
        finally:
            await events.aclose()
