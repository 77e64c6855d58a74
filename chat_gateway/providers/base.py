# declares the adapter contract every LLM backend implements, so the orchestrator
# dispatches through one interface and never branches on provider names

import abc
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import httpx

from chat_gateway.core import config
from chat_gateway.schemas.chat import ConnectionTest, ProviderStatus
from chat_gateway.schemas.messages import ContentPart, Message

logger = logging.getLogger(__name__)

MiB = 1024 * 1024

ChunkCallback = Callable[[str], Awaitable[None]]
DoneCallback = Callable[[str], Awaitable[None]]


# defines a provider error for consistent handling at the app layer so the api can
# distinguish provider faults from user errors
class ProviderError(Exception):
    status_code = 502
    code = "provider_error"

    def __init__(self, provider: str, message: str, *, http_status: Optional[int] = None) -> None:
        self.provider = provider
        self.http_status = http_status
        self.message = message
        if http_status is not None:
            super().__init__(f"{provider} API error: {http_status} {message}".rstrip())
        else:
            super().__init__(f"{provider} API error: {message}")


class ProviderConfigError(ProviderError):
    status_code = 503
    code = "provider_not_configured"

    def __init__(self, provider: str) -> None:
        super().__init__(provider, "API key not configured. Please contact administrator.")


def _error_excerpt(response: httpx.Response, limit: int = 300) -> str:
    text = response.text.strip()
    if len(text) > limit:
        text = text[:limit] + "..."
    return f"{response.reason_phrase} {text}".strip()


class ProviderAdapter(abc.ABC):
    """
    One LLM backend behind the canonical message model.

    Subclasses declare their static descriptor as class attributes (name, alias
    table, default model, byte ceilings, streaming capability) and implement the
    wire encoding plus the one-shot call. Adapters never retry; every transport
    or HTTP failure surfaces as a single ProviderError.
    """

    name: str = ""
    default_model: str = ""
    model_aliases: Dict[str, str] = {}
    key_prefix: Optional[str] = None
    key_placeholder: Optional[str] = None
    max_image_bytes: int = 20 * MiB
    max_request_bytes: int = 20 * MiB
    native_streaming: bool = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or config.PROVIDER_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or config.MAX_OUTPUT_TOKENS

    def __repr__(self) -> str:
        # never echo the key
        return f"<{type(self).__name__} name={self.name!r} configured={self.is_configured()}>"

    # ---- descriptor -------------------------------------------------------

    def is_configured(self) -> bool:
        key = self.api_key
        if not key or key == self.key_placeholder:
            return False
        if self.key_prefix:
            return key.startswith(self.key_prefix)
        return True

    def resolve_model(self, alias: Optional[str]) -> str:
        if alias and alias in self.model_aliases:
            return self.model_aliases[alias]
        if alias and self._is_canonical_id(alias):
            return alias
        return self.default_model

    def _is_canonical_id(self, model: str) -> bool:
        return False

    def status(self) -> ProviderStatus:
        return ProviderStatus(
            name=self.name,
            configured=self.is_configured(),
            default_model=self.default_model,
            native_streaming=self.native_streaming,
            max_image_bytes=self.max_image_bytes,
            max_request_bytes=self.max_request_bytes,
        )

    # ---- wire format ------------------------------------------------------

    @abc.abstractmethod
    def encode_parts(self, parts: List[ContentPart]) -> Any:
        """Encode one message's content parts in this provider's shape."""

    @abc.abstractmethod
    def encode_content(self, messages: List[Message]) -> Dict[str, Any]:
        """Encode the canonical message list as the provider request body fragment."""

    # ---- calls ------------------------------------------------------------

    @abc.abstractmethod
    async def generate(self, messages: List[Message], model: str) -> str:
        ...

    async def stream(self, messages: List[Message], model: str) -> AsyncIterator[str]:
        # simulated streaming: one chunk carrying the full reply
        text = await self.generate(messages, model)
        if text:
            yield text

    async def generate_streaming(
        self,
        messages: List[Message],
        model: str,
        on_chunk: ChunkCallback,
        on_done: Optional[DoneCallback] = None,
    ) -> str:
        parts: List[str] = []
        stream = self.stream(messages, model)
        try:
            async for delta in stream:
                parts.append(delta)
                await on_chunk(delta)
        finally:
            await stream.aclose()
        full = "".join(parts)
        if on_done is not None:
            await on_done(full)
        return full

    async def test_connection(self) -> ConnectionTest:
        if not self.is_configured():
            return ConnectionTest(success=False, error=f"{self.name} API key not configured")
        try:
            reply = await self.generate(
                [Message(role="user", content="Say hello!")], self.default_model
            )
        except ProviderError as e:
            return ConnectionTest(success=False, error=str(e))
        return ConnectionTest(success=True, response=reply)

    # ---- http helpers -----------------------------------------------------

    def _require_configured(self) -> None:
        if not self.is_configured():
            logger.error("missing valid %s API key", self.name)
            raise ProviderConfigError(self.name)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))

    async def _post_json(self, url: str, headers: Dict[str, str], body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                r = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"HTTP error: {e}") from e
        if not r.is_success:
            logger.error("%s API error response: %s %s", self.name, r.status_code, r.text[:500])
            raise ProviderError(self.name, _error_excerpt(r), http_status=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(self.name, "malformed JSON response", http_status=r.status_code) from e
        if not isinstance(data, dict):
            raise ProviderError(self.name, "unexpected response shape", http_status=r.status_code)
        return data

    async def _stream_events(
        self, url: str, headers: Dict[str, str], body: Dict[str, Any]
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield the JSON payload of every ``data:`` line of an SSE response."""
        try:
            async with self._client() as client:
                async with client.stream("POST", url, headers=headers, json=body) as r:
                    if not r.is_success:
                        await r.aread()
                        logger.error("%s API error response: %s %s", self.name, r.status_code, r.text[:500])
                        raise ProviderError(self.name, _error_excerpt(r), http_status=r.status_code)
                    async for line in r.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if not data or data == "[DONE]":
                            continue
                        try:
                            event = json.loads(data)
                        except json.JSONDecodeError:
                            logger.warning("skipping unparsable %s stream line: %r", self.name, data[:200])
                            continue
                        if isinstance(event, dict):
                            yield event
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"HTTP error: {e}") from e


def has_images(messages: List[Message]) -> bool:
    return any(m.images for m in messages)
