"""Pytest configuration and fixtures."""

from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pydantic import SecretStr

from assistant_gateway.config.settings import get_settings
from assistant_gateway.providers.base import ChatMessage, ProviderConfig, ProviderKind


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeToolClient:
    """In-memory ToolServerClient.

    ``handlers`` maps (server, tool) to a callable taking the args dict. A
    handler may return a value or raise.
    """

    def __init__(self, handlers: Optional[Dict[tuple, Callable[[Dict[str, Any]], Any]]] = None, servers=None):
        self.handlers = dict(handlers or {})
        self.servers = list(servers) if servers is not None else sorted({s for s, _ in self.handlers})
        self.calls: List[tuple] = []

    async def call_tool(self, server: str, tool: str, args: Dict[str, Any]) -> Any:
        self.calls.append((server, tool, args))
        handler = self.handlers.get((server, tool))
        if handler is None:
            raise RuntimeError(f"no handler for {server}/{tool}")
        return handler(args)

    async def list_tools(self, server: str) -> List[Dict[str, Any]]:
        return [{"name": tool} for s, tool in self.handlers if s == server]

    async def get_available_servers(self) -> List[str]:
        return list(self.servers)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def user_message():
    return [ChatMessage(role="user", content="Hello there")]


@pytest.fixture
def ollama_config():
    return ProviderConfig(kind=ProviderKind.OLLAMA, model="llama3.1")


@pytest.fixture
def openai_config():
    return ProviderConfig(kind=ProviderKind.OPENAI, model="gpt-4o-mini", credential=SecretStr("sk-test-key"))


@pytest.fixture
def mock_http():
    """Build an httpx.AsyncClient whose requests go to ``handler``."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def mock_provider():
    """MagicMock shaped like a BaseProvider."""

    def factory(kind: ProviderKind, available: bool = True, reply: str = "ok", model: str = "m1"):
        provider = MagicMock()
        provider.kind = kind
        provider.is_local = kind.is_local
        provider.provider_id = f"{kind.value}:{model}"
        provider.display_name = kind.display_name
        provider.config = MagicMock(model=model)
        provider.is_available = AsyncMock(return_value=available)
        provider.chat = AsyncMock(return_value=reply)
        provider.list_models = AsyncMock(return_value=[model])
        provider.aclose = AsyncMock()
        return provider

    return factory


@pytest.fixture
def fake_tool_client():
    return FakeToolClient
