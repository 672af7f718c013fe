"""
Base provider abstract class and common models for LLM providers.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from assistant_gateway.orchestrator.availability_cache import AvailabilityCache
from assistant_gateway.providers.prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class ProviderKind(str, Enum):
    """Supported LLM backends."""

    OLLAMA = "ollama"
    LMSTUDIO = "lmstudio"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    AZURE_OPENAI = "azure-openai"

    @property
    def is_local(self) -> bool:
        return self in (ProviderKind.OLLAMA, ProviderKind.LMSTUDIO)

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ProviderKind.OLLAMA: "Ollama",
    ProviderKind.LMSTUDIO: "LM Studio",
    ProviderKind.OPENAI: "OpenAI",
    ProviderKind.ANTHROPIC: "Anthropic",
    ProviderKind.GEMINI: "Google Gemini",
    ProviderKind.AZURE_OPENAI: "Azure OpenAI",
}


class ProviderConfig(BaseModel):
    """Immutable provider configuration. A settings change builds a new one."""

    model_config = ConfigDict(frozen=True)

    kind: ProviderKind = Field(..., description="Backend family")
    model: str = Field(..., min_length=1, description="Model or deployment identifier")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2048, ge=1)
    credential: Optional[SecretStr] = Field(default=None, description="API key for hosted kinds")
    endpoint_url: Optional[str] = Field(default=None, description="Base or full endpoint URL")

    @model_validator(mode="after")
    def check_required_fields(self) -> "ProviderConfig":
        if not self.kind.is_local:
            if self.credential is None or not self.credential.get_secret_value().strip():
                raise ValueError(f"{self.kind.value} requires a non-empty credential")
        if self.kind in (ProviderKind.LMSTUDIO, ProviderKind.AZURE_OPENAI) and not self.endpoint_url:
            raise ValueError(f"{self.kind.value} requires endpoint_url")
        return self

    @property
    def base_url(self) -> Optional[str]:
        if self.endpoint_url:
            return self.endpoint_url.rstrip("/")
        if self.kind == ProviderKind.OLLAMA:
            return DEFAULT_OLLAMA_URL
        return None

    @property
    def api_key(self) -> str:
        return self.credential.get_secret_value() if self.credential else ""


class ChatMessage(BaseModel):
    """Represents a single chat message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Message id")
    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="Message timestamp"
    )


class ProviderError(Exception):
    """Base exception for provider-related errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        root_cause: Optional[BaseException] = None,
    ):
        """
        Initialize provider error.

        Args:
            message: Error message
            provider: Provider id
            status_code: HTTP status code if applicable
            details: Additional error details
            error_code: Error code for categorization
            retryable: Whether the error is retryable
            root_cause: Underlying transport or parsing error
        """
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        self.retryable = retryable
        self.root_cause = root_cause
        self.attempts = 1


class RateLimitError(ProviderError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, provider: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message, provider=provider, status_code=429, error_code="rate_limit", retryable=True)
        self.retry_after = retry_after


class AuthenticationError(ProviderError):
    """Authentication/API key error."""

    pass


class ModelNotFoundError(ProviderError):
    """Model or deployment not found error."""

    pass


class ProviderUnavailableError(ProviderError):
    """Backend unreachable, timed out, or returned a server error."""

    pass


class ProviderNotRunningError(ProviderError):
    """A local backend refused the connection; the server is not started."""

    pass


class BaseProvider(ABC):
    """Abstract base class for LLM providers."""

    fallback_models: List[str] = []

    def __init__(
        self,
        config: ProviderConfig,
        cache: Optional[AvailabilityCache] = None,
        probe_timeout: float = 5.0,
        chat_timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the provider.

        Args:
            config: Immutable provider configuration
            cache: Shared availability cache
            probe_timeout: Timeout for availability probes, in seconds
            chat_timeout: Timeout for chat calls, in seconds
            client: HTTP client to use instead of a lazily created one
        """
        self.config = config
        self.cache = cache or AvailabilityCache()
        self.probe_timeout = probe_timeout
        self.chat_timeout = chat_timeout
        self._client = client
        self._owns_client = client is None

    @property
    def kind(self) -> ProviderKind:
        return self.config.kind

    @property
    def is_local(self) -> bool:
        return self.config.kind.is_local

    @property
    def provider_id(self) -> str:
        return f"{self.config.kind.value}:{self.config.model}"

    @property
    def display_name(self) -> str:
        return self.config.kind.display_name

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.chat_timeout)
            self._owns_client = True
        return self._client

    async def chat(self, messages: Sequence[ChatMessage]) -> str:
        """
        Generate a chat completion.

        Args:
            messages: Ordered chat messages for this turn

        Returns:
            str: The assistant's reply text

        Raises:
            ProviderError: If the backend fails or every retry is exhausted
        """
        prepared = self._prepare_messages(messages)
        self.validate_config()
        self._log_request(prepared)
        start = time.monotonic()
        try:
            content = await self._chat(prepared)
        except ProviderError as e:
            self._log_error(e)
            raise
        self._log_response(content, time.monotonic() - start)
        return content

    async def is_available(self) -> bool:
        """Report reachability through the shared availability cache."""
        self.validate_config()
        return await self.cache.is_available(self.provider_id, self._probe)

    async def list_models(self) -> List[str]:
        """
        List models offered by the backend.

        Returns:
            List[str]: Live model ids, or the static fallback list when the
            live call fails or returns nothing
        """
        try:
            models = await self._list_models()
        except (httpx.HTTPError, ProviderError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Provider {self.provider_id} model listing failed, using fallback list",
                extra={"provider": self.provider_id, "error_type": type(e).__name__},
            )
            return list(self.fallback_models)
        return models or list(self.fallback_models)

    def validate_config(self) -> None:
        """Reject configurations that can never work. Raises ConfigurationError."""

    @abstractmethod
    async def _chat(self, messages: List[ChatMessage]) -> str:
        pass

    @abstractmethod
    async def _probe(self) -> bool:
        pass

    @abstractmethod
    async def _list_models(self) -> List[str]:
        pass

    def _prepare_messages(self, messages: Sequence[ChatMessage]) -> List[ChatMessage]:
        if any(message.role == "system" for message in messages):
            return list(messages)
        return [ChatMessage(role="system", content=DEFAULT_SYSTEM_PROMPT), *messages]

    def _error_from_response(self, response: httpx.Response) -> ProviderError:
        """Map an HTTP error response to a typed provider error.

        The status error and a clipped response body travel with the typed
        error so the cause survives retry exhaustion.
        """
        error = self._typed_error(response)
        error.root_cause = httpx.HTTPStatusError(
            f"HTTP {response.status_code} from {response.request.url}",
            request=response.request,
            response=response,
        )
        error.details.setdefault("body", response.text[:500])
        return error

    def _typed_error(self, response: httpx.Response) -> ProviderError:
        status = response.status_code
        message = _extract_error_message(response)

        if status in (401, 403):
            return AuthenticationError(
                f"Authentication failed: {message}", provider=self.provider_id, status_code=status
            )
        if status == 429:
            retry_after = response.headers.get("retry-after")
            return RateLimitError(
                f"Rate limit exceeded: {message}",
                provider=self.provider_id,
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status == 404:
            return ModelNotFoundError(
                f"Model or endpoint not found: {message}", provider=self.provider_id, status_code=status
            )
        if status >= 500:
            return ProviderUnavailableError(
                f"Server error: {message}", provider=self.provider_id, status_code=status, retryable=True
            )
        return ProviderError(
            f"Request rejected: {message}", provider=self.provider_id, status_code=status
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _log_request(self, messages: List[ChatMessage]) -> None:
        logger.info(
            f"Provider {self.provider_id} request",
            extra={
                "provider": self.provider_id,
                "model": self.config.model,
                "message_count": len(messages),
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_output_tokens,
            },
        )

    def _log_response(self, content: str, duration: float) -> None:
        logger.info(
            f"Provider {self.provider_id} response",
            extra={
                "provider": self.provider_id,
                "model": self.config.model,
                "duration": duration,
                "response_chars": len(content),
            },
        )

    def _log_error(self, error: ProviderError) -> None:
        if isinstance(error, ProviderNotRunningError):
            logger.info(f"Provider {self.provider_id} is not running", extra={"provider": self.provider_id})
            return
        logger.error(
            f"Provider {self.provider_id} error",
            extra={
                "provider": self.provider_id,
                "model": self.config.model,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "status_code": error.status_code,
                "attempts": error.attempts,
            },
        )


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data: Any = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        if error:
            return str(error)
        if data.get("message"):
            return str(data["message"])
    return str(data)[:200]
