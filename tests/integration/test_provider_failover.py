"""Provider failover with real adapters over a mocked network."""

import httpx
import pytest
from pydantic import SecretStr

from assistant_gateway.config.settings import CloudProviderSettings, Settings
from assistant_gateway.exceptions import ProviderExhaustedError
from assistant_gateway.orchestrator.availability_cache import AvailabilityCache
from assistant_gateway.providers.selector import ProviderSelector, describe_provider_error

pytestmark = pytest.mark.integration


def make_settings(**overrides):
    values = {
        "local_first": True,
        "local_provider": "ollama",
        "local_model": "llama3.1",
        "cloud_providers": {"openai": CloudProviderSettings(model="gpt-4o-mini", api_key=SecretStr("sk-1"))},
        "default_cloud_provider": "openai",
        "max_retries": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class Network:
    """Routes requests by host; hosts listed in ``down`` refuse connections."""

    def __init__(self, down=()):
        self.down = set(down)
        self.requests = []

    def __call__(self, request):
        self.requests.append((request.url.host, request.url.path))
        if request.url.host in self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.host == "localhost":
            if request.url.path == "/api/tags":
                return httpx.Response(200, json={"models": [{"name": "llama3.1:latest"}]})
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "local reply"}})
        if request.url.path == "/v1/models":
            return httpx.Response(200, json={"data": [{"id": "gpt-4o-mini"}]})
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "cloud reply"}}]})

    def count(self, host, path=None):
        return sum(1 for h, p in self.requests if h == host and (path is None or p == path))


class TestProviderFailover:
    @pytest.mark.asyncio
    async def test_local_down_fails_over_to_cloud(self, mock_http, user_message, fake_clock):
        network = Network(down={"localhost"})
        cache = AvailabilityCache(clock=fake_clock)
        selector = ProviderSelector.from_settings(make_settings(), cache=cache, client=mock_http(network))

        assert await selector.chat(user_message) == "cloud reply"
        assert await selector.chat(user_message) == "cloud reply"

        # failure is cached for the short TTL, then the local server is probed again
        assert network.count("localhost") == 1
        fake_clock.advance(31)
        network.down.clear()
        assert await selector.chat(user_message) == "local reply"
        assert network.count("localhost", "/api/tags") == 2

    @pytest.mark.asyncio
    async def test_local_preferred_when_running(self, mock_http, user_message):
        network = Network()
        selector = ProviderSelector.from_settings(make_settings(), client=mock_http(network))

        assert await selector.chat(user_message) == "local reply"
        assert network.count("api.openai.com") == 0

    @pytest.mark.asyncio
    async def test_cloud_first_order(self, mock_http, user_message):
        network = Network()
        selector = ProviderSelector.from_settings(make_settings(local_first=False), client=mock_http(network))

        assert await selector.chat(user_message) == "cloud reply"
        assert network.count("localhost") == 0

    @pytest.mark.asyncio
    async def test_everything_down(self, mock_http, user_message):
        network = Network(down={"localhost", "api.openai.com"})
        selector = ProviderSelector.from_settings(make_settings(), client=mock_http(network))

        with pytest.raises(ProviderExhaustedError) as exc_info:
            await selector.chat(user_message)

        assert exc_info.value.attempted == ["ollama", "openai"]
        assert "ollama, openai" in describe_provider_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_update_config_switches_order_without_reprobe(self, mock_http, user_message):
        network = Network()
        selector = ProviderSelector.from_settings(make_settings(), client=mock_http(network))
        assert await selector.chat(user_message) == "local reply"

        selector.update_config(make_settings(local_first=False))

        assert await selector.chat(user_message) == "cloud reply"
        assert network.count("localhost", "/api/tags") == 1

    @pytest.mark.asyncio
    async def test_misconfigured_cloud_falls_back_to_local(self, mock_http, user_message):
        network = Network()
        settings = make_settings(
            local_first=False,
            cloud_providers={
                "azure-openai": CloudProviderSettings(
                    model="gpt-4o", api_key=SecretStr("az-1"), endpoint_url="https://r.openai.azure.com"
                )
            },
            default_cloud_provider="azure-openai",
        )
        selector = ProviderSelector.from_settings(settings, client=mock_http(network))

        assert await selector.chat(user_message) == "local reply"
        assert network.count("r.openai.azure.com") == 0
