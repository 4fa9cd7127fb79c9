"""LiteLLM-backed model invoker for every routed provider."""

import asyncio
import time
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from smartroute.providers.base import LLMResponse, ModelInvoker
from smartroute.providers.circuit_breaker import CircuitBreaker
from smartroute.routing.catalog import DEFAULT_DESCRIPTORS, ProviderCatalog
from smartroute.routing.errors import CircuitOpenError, InvocationError, ProviderUnavailable
from smartroute.routing.types import ProviderId, TaskCategory


class LiteLLMInvoker(ModelInvoker):
    """
    Model invoker using LiteLLM for multi-provider support.

    Every provider in the catalog is reached through ``litellm.acompletion``;
    the provider id decides the LiteLLM model prefix and whether an explicit
    api_base is needed. Calls are guarded by a per-provider circuit breaker.
    """

    # Provider configurations
    PROVIDER_CONFIGS: dict[ProviderId, dict[str, Any]] = {
        ProviderId.SELF_HOSTED: {
            "env_key": "",
            "prefix": "hosted_vllm/",
            "needs_api_base": True,
        },
        ProviderId.GATEWAY: {
            "env_key": "OPENROUTER_API_KEY",
            "prefix": "openrouter/",
            "needs_api_base": True,
        },
        ProviderId.OPENAI: {
            "env_key": "OPENAI_API_KEY",
            "prefix": "openai/",
        },
        ProviderId.GEMINI: {
            "env_key": "GEMINI_API_KEY",
            "prefix": "gemini/",
        },
        ProviderId.CLAUDE: {
            "env_key": "ANTHROPIC_API_KEY",
            "prefix": "anthropic/",
        },
        ProviderId.GROK: {
            "env_key": "XAI_API_KEY",
            "prefix": "xai/",
        },
        ProviderId.DEEPSEEK: {
            "env_key": "DEEPSEEK_API_KEY",
            "prefix": "deepseek/",
        },
    }

    def __init__(
        self,
        catalog: ProviderCatalog,
        breaker: CircuitBreaker | None = None,
        max_tokens: int = 4096,
    ):
        self.catalog = catalog
        self.breaker = breaker or CircuitBreaker()
        self.max_tokens = max_tokens

        # Usage tracking
        self._total_tokens = 0
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._request_count = 0

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True

    def model_name(self, provider_id: ProviderId, category: TaskCategory | None = None) -> str:
        return self.catalog.descriptor(provider_id).model_for(category)

    def _format_model_name(self, provider_id: ProviderId, model: str) -> str:
        """Format model name for LiteLLM based on provider."""
        prefix = self.PROVIDER_CONFIGS[provider_id]["prefix"]
        if model.startswith(prefix):
            return model
        return f"{prefix}{model}"

    def _get_api_base(self, provider_id: ProviderId) -> str | None:
        """Explicit api_base for self-hosted/gateway, or when the config overrides the default."""
        api_base = self.catalog.descriptor(provider_id).api_base
        if self.PROVIDER_CONFIGS[provider_id].get("needs_api_base"):
            return api_base
        if api_base and api_base != DEFAULT_DESCRIPTORS[provider_id].api_base:
            return api_base
        return None

    async def invoke(
        self,
        provider_id: ProviderId,
        temperature: float,
        messages: list[dict[str, Any]],
        category: TaskCategory | None = None,
        model: str | None = None,
        timeout_ms: float | None = None,
    ) -> LLMResponse:
        """
        Send a chat completion request via LiteLLM.

        A timeout counts as a failure for the circuit breaker.

        Raises:
            ProviderUnavailable: Provider disabled or missing credentials.
            CircuitOpenError: Provider's circuit is open.
            InvocationError: The call failed, timed out or returned no content.
        """
        descriptor = self.catalog.descriptor(provider_id)
        if not descriptor.is_available:
            raise ProviderUnavailable(provider_id.value)

        service = provider_id.value
        if self.breaker.is_open(service):
            raise CircuitOpenError(service)

        model = model or descriptor.model_for(category)
        kwargs: dict[str, Any] = {
            "model": self._format_model_name(provider_id, model),
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
        }

        api_base = self._get_api_base(provider_id)
        if api_base:
            kwargs["api_base"] = api_base

        # Self-hosted OpenAI-compatible servers usually ignore the key
        kwargs["api_key"] = descriptor.api_key or "not-required"

        logger.debug(f"Calling {kwargs['model']} (provider={service}, temperature={temperature})")
        start = time.perf_counter()
        try:
            if timeout_ms is not None:
                response = await asyncio.wait_for(acompletion(**kwargs), timeout=timeout_ms / 1000)
            else:
                response = await acompletion(**kwargs)
            parsed = self._parse_response(response)
        except asyncio.TimeoutError as e:
            self.breaker.record_failure(service, "timeout")
            raise InvocationError(
                service, f"{service} timed out after {timeout_ms:.0f}ms", timed_out=True,
            ) from e
        except Exception as e:
            self.breaker.record_failure(service, str(e))
            raise InvocationError(service, f"{service} call failed: {e}") from e

        if not parsed.content:
            self.breaker.record_failure(service, "empty response")
            raise InvocationError(service, f"{service} returned an empty response")

        self.breaker.record_success(service)
        self._request_count += 1
        if parsed.usage:
            self._total_tokens += parsed.usage.get("total_tokens", 0)
            self._prompt_tokens += parsed.usage.get("prompt_tokens", 0)
            self._completion_tokens += parsed.usage.get("completion_tokens", 0)

        logger.debug(f"{service} responded in {(time.perf_counter() - start) * 1000:.0f}ms")
        return parsed

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]
        message = choice.message

        usage = {}
        if hasattr(response, "usage") and response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
            model=getattr(response, "model", None),
        )

    def get_usage_stats(self) -> dict[str, Any]:
        """Get usage statistics."""
        return {
            "total_tokens": self._total_tokens,
            "prompt_tokens": self._prompt_tokens,
            "completion_tokens": self._completion_tokens,
            "request_count": self._request_count,
            "circuit_breakers": self.breaker.get_stats(),
        }

    def reset_usage_stats(self) -> None:
        """Reset usage counters."""
        self._total_tokens = 0
        self._prompt_tokens = 0
        self._completion_tokens = 0
        self._request_count = 0
