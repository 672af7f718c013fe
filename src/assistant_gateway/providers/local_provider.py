"""
Local model servers: Ollama and LM Studio.

Local calls are not retried. A refused connection means the server is not
started and is reported as ProviderNotRunningError.
"""

import logging
from abc import abstractmethod
from typing import Any, Dict, List

import httpx

from assistant_gateway.providers.base import (
    BaseProvider,
    ChatMessage,
    ProviderError,
    ProviderNotRunningError,
    ProviderUnavailableError,
)
from assistant_gateway.providers.hosted import openai_style_messages

logger = logging.getLogger(__name__)

OLLAMA_CONTEXT_WINDOW = 8192


class LocalProvider(BaseProvider):
    """Common request handling for local model servers."""

    async def _request(self, method: str, path: str, timeout: float, **kwargs) -> httpx.Response:
        url = f"{self.config.base_url}{path}"
        try:
            return await self._get_client().request(method, url, timeout=timeout, **kwargs)
        except httpx.ConnectError as e:
            raise ProviderNotRunningError(
                f"{self.display_name} is not running at {self.config.base_url}",
                provider=self.provider_id,
                root_cause=e,
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(
                f"{self.display_name} timed out after {timeout}s",
                provider=self.provider_id,
                root_cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(
                f"{self.display_name} request failed: {e}",
                provider=self.provider_id,
                root_cause=e,
            ) from e

    async def _request_json(self, method: str, path: str, timeout: float, **kwargs) -> Dict[str, Any]:
        response = await self._request(method, path, timeout, **kwargs)
        if response.status_code >= 400:
            raise self._error_from_response(response)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                f"Unexpected response format from {self.display_name}",
                provider=self.provider_id,
                status_code=response.status_code,
                root_cause=e,
            ) from e

    async def _probe(self) -> bool:
        try:
            models = await self._installed_models(self.probe_timeout)
        except ProviderNotRunningError:
            logger.info(f"{self.display_name} is not running", extra={"provider": self.provider_id})
            return False
        if not self._has_model(models):
            logger.info(
                f"{self.display_name} is running but model {self.config.model} is not installed",
                extra={"provider": self.provider_id},
            )
            return False
        return True

    async def _list_models(self) -> List[str]:
        return await self._installed_models(self.chat_timeout)

    @abstractmethod
    async def _installed_models(self, timeout: float) -> List[str]:
        pass

    @abstractmethod
    def _has_model(self, models: List[str]) -> bool:
        pass


class OllamaProvider(LocalProvider):
    """Provider for a local Ollama server."""

    fallback_models = ["llama3.1", "llama3.2", "mistral", "codellama"]

    async def _chat(self, messages: List[ChatMessage]) -> str:
        data = await self._request_json(
            "POST",
            "/api/chat",
            self.chat_timeout,
            json={
                "model": self.config.model,
                "messages": openai_style_messages(messages),
                "stream": False,
                "options": {
                    "temperature": self.config.temperature,
                    "num_predict": self.config.max_output_tokens,
                    "num_ctx": OLLAMA_CONTEXT_WINDOW,
                },
            },
        )
        try:
            return data["message"]["content"]
        except (KeyError, TypeError) as e:
            raise ProviderError(
                "Unexpected response format from Ollama", provider=self.provider_id, root_cause=e
            ) from e

    async def _installed_models(self, timeout: float) -> List[str]:
        data = await self._request_json("GET", "/api/tags", timeout)
        return [model["name"] for model in data.get("models", [])]

    def _has_model(self, models: List[str]) -> bool:
        wanted = self.config.model
        return any(name == wanted or name.startswith(f"{wanted}:") for name in models)


class LMStudioProvider(LocalProvider):
    """Provider for a local LM Studio server (OpenAI-compatible API)."""

    async def _chat(self, messages: List[ChatMessage]) -> str:
        data = await self._request_json(
            "POST",
            "/v1/chat/completions",
            self.chat_timeout,
            json={
                "model": self.config.model,
                "messages": openai_style_messages(messages),
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_output_tokens,
                "stream": False,
            },
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                "Unexpected response format from LM Studio", provider=self.provider_id, root_cause=e
            ) from e

    async def _installed_models(self, timeout: float) -> List[str]:
        data = await self._request_json("GET", "/v1/models", timeout)
        return [model["id"] for model in data.get("data", [])]

    def _has_model(self, models: List[str]) -> bool:
        wanted = self.config.model
        return any(model_id == wanted or wanted in model_id for model_id in models)
