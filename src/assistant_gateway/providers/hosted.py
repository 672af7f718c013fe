"""
Shared request loop for hosted (cloud) providers.
"""

import logging
from abc import abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional

import httpx

from assistant_gateway.orchestrator.availability_cache import AvailabilityCache
from assistant_gateway.orchestrator.retry_handler import RetryHandler
from assistant_gateway.providers.base import (
    BaseProvider,
    ChatMessage,
    ProviderConfig,
    ProviderError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)


class RequestSpec(NamedTuple):
    url: str
    headers: Dict[str, str]
    payload: Optional[Dict[str, Any]] = None
    params: Optional[Dict[str, Any]] = None


class HostedProvider(BaseProvider):
    """Hosted backend reached over HTTPS. Chat calls run inside the retry executor."""

    default_base_url: str = ""

    def __init__(
        self,
        config: ProviderConfig,
        cache: Optional[AvailabilityCache] = None,
        probe_timeout: float = 5.0,
        chat_timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        retry: Optional[RetryHandler] = None,
    ):
        super().__init__(
            config,
            cache=cache,
            probe_timeout=probe_timeout,
            chat_timeout=chat_timeout,
            client=client,
        )
        self.retry = retry or RetryHandler()

    @property
    def base_url(self) -> str:
        return self.config.base_url or self.default_base_url

    @abstractmethod
    def _build_chat_request(self, messages: List[ChatMessage]) -> RequestSpec:
        pass

    @abstractmethod
    def _parse_chat_response(self, data: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def _build_models_request(self) -> RequestSpec:
        pass

    @abstractmethod
    def _parse_models(self, data: Dict[str, Any]) -> List[str]:
        pass

    async def _chat(self, messages: List[ChatMessage]) -> str:
        try:
            return await self.retry.execute(self._send_chat, messages)
        except httpx.HTTPError as e:
            error = ProviderUnavailableError(
                f"{self.display_name} request failed: {type(e).__name__}: {e}",
                provider=self.provider_id,
                retryable=True,
                root_cause=e,
            )
            error.attempts = getattr(e, "attempts", 1)
            raise error from e

    async def _send_chat(self, messages: List[ChatMessage]) -> str:
        spec = self._build_chat_request(messages)
        response = await self._get_client().post(
            spec.url,
            headers=spec.headers,
            json=spec.payload,
            params=spec.params,
            timeout=self.chat_timeout,
        )
        if response.status_code >= 400:
            raise self._error_from_response(response)
        try:
            return self._parse_chat_response(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                f"Unexpected response format from {self.display_name}",
                provider=self.provider_id,
                status_code=response.status_code,
                root_cause=e,
            ) from e

    async def _probe(self) -> bool:
        spec = self._build_models_request()
        response = await self._get_client().get(
            spec.url, headers=spec.headers, params=spec.params, timeout=self.probe_timeout
        )
        if response.status_code in (401, 403):
            logger.warning(
                f"Provider {self.provider_id} rejected the configured credential",
                extra={"provider": self.provider_id, "status_code": response.status_code},
            )
        return response.status_code == 200

    async def _list_models(self) -> List[str]:
        spec = self._build_models_request()
        response = await self._get_client().get(
            spec.url, headers=spec.headers, params=spec.params, timeout=self.chat_timeout
        )
        if response.status_code >= 400:
            raise self._error_from_response(response)
        return self._parse_models(response.json())


def openai_style_messages(messages: List[ChatMessage]) -> List[Dict[str, str]]:
    return [{"role": message.role, "content": message.content} for message in messages]
