"""Tests for the retry executor."""

from unittest.mock import AsyncMock

import httpx
import pytest

from assistant_gateway.orchestrator.retry_handler import RetryHandler, RetryPolicy, is_retryable, run_with_retry
from assistant_gateway.providers.base import AuthenticationError, ProviderUnavailableError, RateLimitError


class StatusError(Exception):
    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class TestRetryPolicy:
    def test_default_delays(self):
        policy = RetryPolicy()
        assert [policy.delay_for(k) for k in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_policy_is_frozen(self):
        policy = RetryPolicy()
        with pytest.raises(Exception):
            policy.max_retries = 5


class TestIsRetryable:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_status_codes(self, status):
        assert is_retryable(StatusError(status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_are_not_retryable(self, status):
        assert not is_retryable(StatusError(status))

    def test_transport_errors(self):
        assert is_retryable(httpx.ConnectError("refused"))
        assert is_retryable(httpx.ReadTimeout("slow"))
        assert not is_retryable(ValueError("bad"))

    def test_provider_errors(self):
        assert is_retryable(RateLimitError("slow down"))
        assert is_retryable(ProviderUnavailableError("down", status_code=503, retryable=True))
        assert not is_retryable(AuthenticationError("bad key", status_code=401))


class TestRunWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try(self, sleep_recorder):
        op = AsyncMock(return_value="done")
        result = await run_with_retry(op, sleep=sleep_recorder)
        assert result == "done"
        assert op.call_count == 1
        assert sleep_recorder.delays == []

    @pytest.mark.asyncio
    async def test_always_failing_retryable_uses_backoff(self, sleep_recorder):
        op = AsyncMock(side_effect=StatusError(503))

        with pytest.raises(StatusError) as exc_info:
            await run_with_retry(op, sleep=sleep_recorder)

        assert op.call_count == 4
        assert sleep_recorder.delays == [1.0, 2.0, 4.0]
        assert exc_info.value.attempts == 4

    @pytest.mark.asyncio
    async def test_non_retryable_error_makes_one_call(self, sleep_recorder):
        op = AsyncMock(side_effect=StatusError(401))

        with pytest.raises(StatusError) as exc_info:
            await run_with_retry(op, sleep=sleep_recorder)

        assert op.call_count == 1
        assert sleep_recorder.delays == []
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, sleep_recorder):
        op = AsyncMock(side_effect=[httpx.ConnectError("refused"), StatusError(429), "ok"])
        result = await run_with_retry(op, sleep=sleep_recorder)
        assert result == "ok"
        assert sleep_recorder.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_delays_capped_by_max_delay(self, sleep_recorder):
        policy = RetryPolicy(max_retries=5, base_delay=2.0, max_delay=5.0, backoff_factor=3.0)
        op = AsyncMock(side_effect=StatusError(500))

        with pytest.raises(StatusError):
            await run_with_retry(op, policy=policy, sleep=sleep_recorder)

        assert sleep_recorder.delays == [2.0, 5.0, 5.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_zero_retries(self, sleep_recorder):
        op = AsyncMock(side_effect=StatusError(500))
        with pytest.raises(StatusError):
            await run_with_retry(op, policy=RetryPolicy(max_retries=0), sleep=sleep_recorder)
        assert op.call_count == 1


class TestRetryHandler:
    @pytest.mark.asyncio
    async def test_execute_passes_arguments(self, sleep_recorder):
        handler = RetryHandler(sleep=sleep_recorder)
        func = AsyncMock(return_value=42)

        assert await handler.execute(func, 1, key="value") == 42
        func.assert_awaited_once_with(1, key="value")

    @pytest.mark.asyncio
    async def test_custom_retryable_predicate(self, sleep_recorder):
        handler = RetryHandler(
            policy=RetryPolicy(max_retries=2),
            retryable=lambda e: isinstance(e, KeyError),
            sleep=sleep_recorder,
        )
        func = AsyncMock(side_effect=KeyError("missing"))

        with pytest.raises(KeyError):
            await handler.execute(func)
        assert func.call_count == 3
