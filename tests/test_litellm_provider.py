"""
Tests for the LiteLLM-backed invoker.

Tests:
- Model name and api_base formatting per provider
- Circuit breaker integration
- Error wrapping and usage tracking
- Timeouts counted by the circuit breaker
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from smartroute.providers.circuit_breaker import CircuitBreaker
from smartroute.providers.litellm_provider import LiteLLMInvoker
from smartroute.routing.catalog import ProviderCatalog
from smartroute.routing.errors import CircuitOpenError, InvocationError, ProviderUnavailable
from smartroute.routing.router import RoutingOrchestrator
from smartroute.routing.types import ProviderId, RoutingOptions, TaskCategory

MESSAGES = [{"role": "user", "content": "hi"}]


def make_response(content="hello", total_tokens=12):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.choices[0].finish_reason = "stop"
    response.usage.prompt_tokens = 4
    response.usage.completion_tokens = total_tokens - 4
    response.usage.total_tokens = total_tokens
    response.model = "test-model"
    return response


@pytest.fixture
def invoker(full_catalog):
    return LiteLLMInvoker(full_catalog, CircuitBreaker(failure_threshold=2))


class TestInvoke:
    """Tests for LiteLLMInvoker.invoke."""

    @pytest.mark.asyncio
    async def test_self_hosted_call(self, invoker):
        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock(return_value=make_response())) as mock:
            response = await invoker.invoke(ProviderId.SELF_HOSTED, 0.2, MESSAGES)

        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "hosted_vllm/default"
        assert kwargs["api_base"] == "http://localhost:8000/v1"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == MESSAGES
        assert response.content == "hello"
        assert response.total_tokens == 12

    @pytest.mark.asyncio
    async def test_category_model_and_default_api_base(self, invoker):
        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock(return_value=make_response())) as mock:
            await invoker.invoke(ProviderId.DEEPSEEK, 0.1, MESSAGES, category=TaskCategory.CODE_GENERATION)

        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "deepseek/deepseek-coder"
        assert "api_base" not in kwargs

    @pytest.mark.asyncio
    async def test_gateway_model(self, invoker):
        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock(return_value=make_response())) as mock:
            await invoker.invoke(ProviderId.GATEWAY, 0.8, MESSAGES, category=TaskCategory.CREATIVE_WRITING)

        assert mock.call_args.kwargs["model"] == "openrouter/anthropic/claude-3-opus"

    @pytest.mark.asyncio
    async def test_unavailable_provider(self):
        invoker = LiteLLMInvoker(ProviderCatalog.with_enabled([ProviderId.SELF_HOSTED]))

        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock()) as mock:
            with pytest.raises(ProviderUnavailable):
                await invoker.invoke(ProviderId.OPENAI, 0.2, MESSAGES)

        mock.assert_not_called()

    @pytest.mark.asyncio
    async def test_errors_are_wrapped_and_open_circuit(self, invoker):
        failing = AsyncMock(side_effect=RuntimeError("rate limited"))
        with patch("smartroute.providers.litellm_provider.acompletion", new=failing):
            for _ in range(2):
                with pytest.raises(InvocationError, match="rate limited"):
                    await invoker.invoke(ProviderId.OPENAI, 0.2, MESSAGES)

            with pytest.raises(CircuitOpenError):
                await invoker.invoke(ProviderId.OPENAI, 0.2, MESSAGES)

        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_response_is_an_error(self, invoker):
        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock(return_value=make_response(content=""))):
            with pytest.raises(InvocationError, match="empty"):
                await invoker.invoke(ProviderId.CLAUDE, 0.5, MESSAGES)

    @pytest.mark.asyncio
    async def test_usage_stats(self, invoker):
        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock(return_value=make_response())):
            await invoker.invoke(ProviderId.GEMINI, 0.1, MESSAGES)
            await invoker.invoke(ProviderId.GEMINI, 0.1, MESSAGES)

        stats = invoker.get_usage_stats()
        assert stats["request_count"] == 2
        assert stats["total_tokens"] == 24
        assert stats["circuit_breakers"]["gemini"]["state"] == "CLOSED"

        invoker.reset_usage_stats()
        assert invoker.get_usage_stats()["request_count"] == 0


class TestModelNames:
    """Tests for model name resolution."""

    def test_model_name(self, invoker):
        assert invoker.model_name(ProviderId.CLAUDE) == "claude-3-opus-20240229"
        assert invoker.model_name(ProviderId.GEMINI, TaskCategory.MULTIMODAL) == "gemini-pro-vision"

    def test_prefix_not_doubled(self, invoker):
        assert invoker._format_model_name(ProviderId.OPENAI, "openai/gpt-4") == "openai/gpt-4"
        assert invoker._format_model_name(ProviderId.GROK, "grok-beta") == "xai/grok-beta"

    def test_handle_uses_invoker(self, invoker):
        handle = invoker.create_handle(ProviderId.DEEPSEEK, 0.1, TaskCategory.CODE_GENERATION)

        assert handle.model == "deepseek-coder"
        assert "deepseek" in repr(handle)


class TestTimeouts:
    """Tests for per-call timeouts and the circuit breaker."""

    @staticmethod
    async def hang(**kwargs):
        await asyncio.sleep(1)

    @pytest.mark.asyncio
    async def test_timeout_is_a_breaker_failure(self, full_catalog):
        breaker = CircuitBreaker(failure_threshold=2)
        invoker = LiteLLMInvoker(full_catalog, breaker)

        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock(side_effect=self.hang)) as mock:
            for _ in range(2):
                with pytest.raises(InvocationError) as exc_info:
                    await invoker.invoke(ProviderId.OPENAI, 0.2, MESSAGES, timeout_ms=20)
                assert exc_info.value.timed_out

            with pytest.raises(CircuitOpenError):
                await invoker.invoke(ProviderId.OPENAI, 0.2, MESSAGES, timeout_ms=20)

        assert mock.await_count == 2
        assert breaker.get_stats()["openai"]["state"] == "OPEN"

    @pytest.mark.asyncio
    async def test_routed_timeouts_open_the_circuit(self, full_catalog):
        breaker = CircuitBreaker(failure_threshold=2)
        orchestrator = RoutingOrchestrator(full_catalog, LiteLLMInvoker(full_catalog, breaker))
        options = RoutingOptions(
            task_category=TaskCategory.STRUCTURED_OUTPUT,
            force_provider=ProviderId.OPENAI,
            timeout_ms=20,
        )

        with patch("smartroute.providers.litellm_provider.acompletion", new=AsyncMock(side_effect=self.hang)):
            results = [await orchestrator.route("prompt", options=options) for _ in range(3)]

        assert [r.attempts[0].error for r in results[:2]] == ["Timed out after 20ms"] * 2
        assert "Circuit breaker is OPEN" in results[2].attempts[0].error
        assert breaker.get_stats()["openai"]["state"] == "OPEN"
