from typing import Any, Optional

from chat_gateway.core import config
from chat_gateway.providers.base import MiB
from chat_gateway.providers.openai import OpenAICompatibleAdapter


class GrokAdapter(OpenAICompatibleAdapter):
    name = "grok"
    default_model = "grok-2-latest"
    model_aliases = {
        "grok-1": "grok-1",
        "grok-2": "grok-2-latest",  # multimodal
        "grok-2-latest": "grok-2-latest",
        "grok": "grok-2-latest",
    }
    key_prefix = "xai-"
    max_image_bytes = 20 * MiB
    max_request_bytes = 20 * MiB
    canonical_prefixes = ()

    def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(
            config.GROK_API_KEY if api_key is None else api_key,
            base_url=base_url or config.GROK_BASE_URL,
            **kwargs,
        )
