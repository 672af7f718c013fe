"""
Provider selection and failover.

The selector holds at most one local and one hosted adapter in an immutable
``ProviderSelectorState``. Each call captures the current state once, so a
concurrent ``update_config`` swaps the reference without touching adapters
that in-flight calls are using.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from assistant_gateway.exceptions import ConfigurationError, ProviderExhaustedError
from assistant_gateway.orchestrator.availability_cache import AvailabilityCache
from assistant_gateway.orchestrator.retry_handler import RetryHandler, RetryPolicy
from assistant_gateway.providers.base import (
    AuthenticationError,
    BaseProvider,
    ChatMessage,
    ModelNotFoundError,
    ProviderConfig,
    ProviderError,
    ProviderNotRunningError,
    RateLimitError,
)
from assistant_gateway.providers.factory import create_provider

logger = logging.getLogger(__name__)

ProviderBuilder = Callable[[ProviderConfig], BaseProvider]


@dataclass(frozen=True)
class ProviderSelectorState:
    local_first: bool
    local: Optional[BaseProvider] = None
    cloud: Optional[BaseProvider] = None

    def chain(self) -> List[BaseProvider]:
        """Configured adapters in the order they are tried."""
        ordered = [self.local, self.cloud] if self.local_first else [self.cloud, self.local]
        return [provider for provider in ordered if provider is not None]


class ProviderSelector:
    """Linear failover across the configured local and hosted adapters."""

    def __init__(
        self,
        state: ProviderSelectorState,
        cache: Optional[AvailabilityCache] = None,
        directive_executor=None,
        builder: Optional[ProviderBuilder] = None,
    ):
        self.state = state
        self.cache = cache or AvailabilityCache()
        self.directive_executor = directive_executor
        self._builder = builder

    @classmethod
    def from_settings(
        cls,
        settings,
        cache: Optional[AvailabilityCache] = None,
        directive_executor=None,
        client=None,
    ) -> "ProviderSelector":
        cache = cache or AvailabilityCache(
            success_ttl=settings.availability_success_ttl,
            failure_ttl=settings.availability_failure_ttl,
        )
        retry = RetryHandler(
            RetryPolicy(
                max_retries=settings.max_retries,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
                backoff_factor=settings.retry_backoff_factor,
            )
        )

        def builder(config: ProviderConfig) -> BaseProvider:
            return create_provider(
                config,
                cache=cache,
                probe_timeout=settings.probe_timeout,
                chat_timeout=settings.chat_timeout,
                retry=retry,
                client=client,
            )

        local_config, cloud_config = settings.provider_configs()
        state = ProviderSelectorState(
            local_first=settings.local_first,
            local=builder(local_config) if local_config else None,
            cloud=builder(cloud_config) if cloud_config else None,
        )
        return cls(state, cache=cache, directive_executor=directive_executor, builder=builder)

    async def chat(self, messages: Sequence[ChatMessage], process_directives: bool = True) -> str:
        """
        Send ``messages`` to the first available adapter in the chain.

        Raises:
            ProviderExhaustedError: If no configured adapter is reachable. Adapters
                whose configuration can never work are skipped and listed in
                the error details
            ProviderError: If the chosen adapter fails the call
        """
        provider = await self._select(self.state)
        content = await provider.chat(messages)
        if process_directives and self.directive_executor is not None:
            content = await self.directive_executor.execute_directives(content)
        return content

    async def _select(self, state: ProviderSelectorState) -> BaseProvider:
        attempted = []
        problems = {}
        for provider in state.chain():
            attempted.append(provider.kind.value)
            try:
                available = await provider.is_available()
            except ConfigurationError as e:
                logger.warning(
                    "Provider misconfigured, trying next",
                    extra={"provider": provider.provider_id, "error": e.message},
                )
                problems[provider.kind.value] = e.message
                continue
            if available:
                logger.debug("Selected provider", extra={"provider": provider.provider_id})
                return provider
            logger.info("Provider unavailable, trying next", extra={"provider": provider.provider_id})
        details = {"configuration_errors": problems} if problems else None
        raise ProviderExhaustedError(attempted, details=details)

    async def active_provider(self) -> Optional[BaseProvider]:
        """The adapter the next call would use, or None when none is reachable."""
        try:
            return await self._select(self.state)
        except ProviderExhaustedError:
            return None

    async def is_available(self) -> bool:
        return await self.active_provider() is not None

    async def list_models(self) -> Dict[str, List[str]]:
        return {provider.kind.value: await provider.list_models() for provider in self.state.chain()}

    async def describe(self) -> List[Dict[str, Any]]:
        """Per-adapter status rows for display."""
        rows = []
        for position, provider in enumerate(self.state.chain()):
            try:
                available = await provider.is_available()
                problem = None
            except ConfigurationError as e:
                available = False
                problem = e.message
            rows.append(
                {
                    "kind": provider.kind.value,
                    "name": provider.display_name,
                    "model": provider.config.model,
                    "local": provider.is_local,
                    "preferred": position == 0,
                    "available": available,
                    "problem": problem,
                }
            )
        return rows

    def update_config(self, settings) -> ProviderSelectorState:
        """Swap in a new state, rebuilding only adapters whose config changed."""
        if self._builder is None:
            raise ConfigurationError("selector was built without a provider builder")
        current = self.state
        local_config, cloud_config = settings.provider_configs()
        new_state = ProviderSelectorState(
            local_first=settings.local_first,
            local=self._rebuild(current.local, local_config),
            cloud=self._rebuild(current.cloud, cloud_config),
        )
        self.state = new_state
        logger.info(
            "Provider configuration updated",
            extra={
                "local_first": new_state.local_first,
                "local": new_state.local.provider_id if new_state.local else None,
                "cloud": new_state.cloud.provider_id if new_state.cloud else None,
            },
        )
        return new_state

    def _rebuild(self, existing: Optional[BaseProvider], config: Optional[ProviderConfig]) -> Optional[BaseProvider]:
        if config is None:
            if existing is not None:
                self.cache.invalidate(existing.provider_id)
            return None
        if existing is not None and existing.config == config:
            return existing
        if existing is not None:
            self.cache.invalidate(existing.provider_id)
        provider = self._builder(config)
        self.cache.invalidate(provider.provider_id)
        return provider


def describe_provider_error(error: BaseException) -> str:
    """User-facing explanation of a provider failure, with what to do about it."""
    if isinstance(error, ProviderExhaustedError):
        problems = error.details.get("configuration_errors")
        if problems:
            listed = "; ".join(f"{kind}: {message}" for kind, message in problems.items())
            return f"{error.message}. Provider configuration problem: {listed}"
        return (
            f"{error.message}. Start a local model server or configure a cloud provider "
            "with a valid API key."
        )
    if isinstance(error, ConfigurationError):
        return f"Provider configuration problem: {error.message}"
    if not isinstance(error, ProviderError):
        return f"Unexpected error while generating a response: {error}"

    name = error.provider or "the provider"
    text = error.message.lower()
    if isinstance(error, RateLimitError) or error.status_code == 429:
        return f"Rate limit reached for {name}. Wait a moment and try again, or switch providers."
    if isinstance(error, AuthenticationError) or error.status_code in (401, 403):
        return f"Authentication failed for {name}. Check the API key and its permissions."
    if isinstance(error, ProviderNotRunningError):
        return f"The local model server for {name} is not running. Start it and try again."
    if "memory" in text or "oom" in text:
        return f"{name} ran out of memory loading the model. Try a smaller model or free memory."
    if isinstance(error, ModelNotFoundError) or "not found" in text:
        model = name.split(":", 1)[1] if ":" in name else "the model"
        return f"Model {model} is not available on {name}. Pull or deploy it first."
    if "context length" in text or "context_length" in text or "too many tokens" in text:
        return "The conversation is too long for the model's context window. Start a new conversation."
    attempts = getattr(error, "attempts", 1)
    suffix = f" after {attempts} attempts" if attempts > 1 else ""
    return f"{name} failed{suffix}: {error.message}"
