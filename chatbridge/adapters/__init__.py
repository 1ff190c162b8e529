"""
chatbridge Adapters Module

Provider-specific adapters that build each wire protocol's request from a
canonical conversation and decode its reply into canonical chunks.
"""

from typing import Optional, Type

import httpx

from .base import BaseAdapter
from .openai_adapter import OpenAIAdapter
from .responses_adapter import ResponsesAdapter
from .anthropic_adapter import AnthropicAdapter
from .google_adapter import GeminiAdapter
from ..core.config import ProviderConfig, ProviderType
from ..core.http_client import ProviderHttpClient

__all__ = [
    "BaseAdapter",
    "OpenAIAdapter",
    "ResponsesAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "get_adapter",
]


ADAPTERS = {
    ProviderType.OPENAI_COMPATIBLE: OpenAIAdapter,
    ProviderType.OPENAI_RESPONSES: ResponsesAdapter,
    ProviderType.ANTHROPIC: AnthropicAdapter,
    ProviderType.GEMINI_AI_STUDIO: GeminiAdapter,
}


def get_adapter(
    config: ProviderConfig,
    http_client: Optional[ProviderHttpClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> BaseAdapter:
    """
    Factory function to get the adapter for a provider config.

    Args:
        config: Provider configuration (type tag selects the adapter)
        http_client: Optional preconfigured HTTP client
        transport: Optional httpx transport (e.g. MockTransport in tests)

    Returns:
        Configured adapter instance

    Raises:
        ConfigurationError: If the config is incomplete
    """
    adapter_class: Type[BaseAdapter] = ADAPTERS[ProviderType.parse(config.type)]
    return adapter_class(config, http_client=http_client, transport=transport)
