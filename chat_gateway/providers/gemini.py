import base64
import logging
from typing import Any, Dict, List, Optional

from chat_gateway.core import config
from chat_gateway.providers.base import MiB, ProviderAdapter, ProviderError, has_images
from chat_gateway.schemas.messages import ContentPart, Message, TextPart

logger = logging.getLogger(__name__)

VISION_MODEL = "gemini-pro-vision"


class GeminiAdapter(ProviderAdapter):
    """
    Google Generative Language API (``generateContent``).

    The endpoint is called in blocking mode, so streaming is simulated by the
    base class: the whole reply is delivered as a single chunk.
    """

    name = "gemini"
    default_model = "gemini-2.0-flash"
    model_aliases = {
        "gemini-pro": "gemini-pro",
        "gemini-pro-vision": VISION_MODEL,
        "gemini-2.0-flash": "gemini-2.0-flash",
        "gemini-flash": "gemini-2.0-flash",
        "gemini-2.0-pro": "gemini-2.0-pro",
    }
    key_placeholder = "<YOUR_GEMINI_API_KEY>"
    max_image_bytes = 10 * MiB
    max_request_bytes = 20 * MiB
    native_streaming = False

    def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(
            config.GEMINI_API_KEY if api_key is None else api_key,
            base_url=base_url or config.GEMINI_BASE_URL,
            **kwargs,
        )

    def api_model(self, model_id: str, messages: List[Message]) -> str:
        # first-generation text model cannot read images
        if model_id == "gemini-pro" and has_images(messages):
            return VISION_MODEL
        return model_id

    def encode_parts(self, parts: List[ContentPart]) -> List[Dict[str, Any]]:
        encoded: List[Dict[str, Any]] = []
        for part in parts:
            if isinstance(part, TextPart):
                encoded.append({"text": part.text})
            else:
                encoded.append({
                    "inlineData": {
                        "mimeType": part.mime_type,
                        "data": base64.b64encode(part.data).decode("ascii"),
                    }
                })
        return encoded

    def encode_content(self, messages: List[Message]) -> Dict[str, Any]:
        system = next((m.text for m in messages if m.role == "system"), "")
        contents = []
        for m in messages:
            if m.role == "system":
                continue
            parts = [TextPart(text=m.content)] if isinstance(m.content, str) else m.content
            contents.append({
                "role": "model" if m.role == "assistant" else "user",
                "parts": self.encode_parts(parts),
            })
        body: Dict[str, Any] = {"contents": contents}
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return body

    async def generate(self, messages: List[Message], model: str) -> str:
        self._require_configured()
        model_id = self.api_model(self.resolve_model(model), messages)
        logger.info("using gemini model %s (requested: %s)", model_id, model)
        payload = {
            **self.encode_content(messages),
            "generationConfig": {"temperature": config.TEMPERATURE, "maxOutputTokens": self.max_tokens},
        }
        # key travels as a header so it never appears in a logged or raised url
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        data = await self._post_json(f"{self.base_url}/models/{model_id}:generateContent", headers, payload)

        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            raise ProviderError(self.name, f"no candidates returned{f' ({reason})' if reason else ''}")
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            raise ProviderError(self.name, "response contained no text")
        return "".join(texts)
