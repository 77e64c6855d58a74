from typing import Any, Optional

from chat_gateway.core import config
from chat_gateway.providers.base import MiB
from chat_gateway.providers.openai import OpenAICompatibleAdapter


class DeepseekAdapter(OpenAICompatibleAdapter):
    name = "deepseek"
    default_model = "deepseek-chat"
    model_aliases = {
        "deepseek-r1": "deepseek-reasoner",
        "deepseek": "deepseek-chat",
        "deepseek-chat": "deepseek-chat",
    }
    key_prefix = "sk-"
    max_image_bytes = 20 * MiB
    max_request_bytes = 20 * MiB
    canonical_prefixes = ()

    def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(
            config.DEEPSEEK_API_KEY if api_key is None else api_key,
            base_url=base_url or config.DEEPSEEK_BASE_URL,
            **kwargs,
        )
