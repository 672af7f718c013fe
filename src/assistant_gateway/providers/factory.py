"""Provider factory keyed by ProviderKind."""

from typing import Dict, Optional, Type

import httpx

from assistant_gateway.orchestrator.availability_cache import AvailabilityCache
from assistant_gateway.orchestrator.retry_handler import RetryHandler
from assistant_gateway.providers.anthropic_provider import AnthropicProvider
from assistant_gateway.providers.azure_openai_provider import AzureOpenAIProvider
from assistant_gateway.providers.base import BaseProvider, ProviderConfig, ProviderKind
from assistant_gateway.providers.gemini_provider import GeminiProvider
from assistant_gateway.providers.hosted import HostedProvider
from assistant_gateway.providers.local_provider import LMStudioProvider, OllamaProvider
from assistant_gateway.providers.openai_provider import OpenAIProvider

PROVIDER_REGISTRY: Dict[ProviderKind, Type[BaseProvider]] = {
    ProviderKind.OLLAMA: OllamaProvider,
    ProviderKind.LMSTUDIO: LMStudioProvider,
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
    ProviderKind.GEMINI: GeminiProvider,
    ProviderKind.AZURE_OPENAI: AzureOpenAIProvider,
}


def create_provider(
    config: ProviderConfig,
    cache: Optional[AvailabilityCache] = None,
    probe_timeout: float = 5.0,
    chat_timeout: float = 30.0,
    retry: Optional[RetryHandler] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> BaseProvider:
    """Build the adapter for ``config.kind``. Local adapters ignore ``retry``."""
    provider_class = PROVIDER_REGISTRY[config.kind]
    kwargs = {
        "cache": cache,
        "probe_timeout": probe_timeout,
        "chat_timeout": chat_timeout,
        "client": client,
    }
    if issubclass(provider_class, HostedProvider):
        kwargs["retry"] = retry
    return provider_class(config, **kwargs)
