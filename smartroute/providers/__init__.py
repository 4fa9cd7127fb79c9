"""Model invocation module."""

from smartroute.providers.base import LLMResponse, ModelHandle, ModelInvoker, ScoreSink, HistoricalReader
from smartroute.providers.circuit_breaker import CircuitBreaker, CircuitState
from smartroute.providers.litellm_provider import LiteLLMInvoker

__all__ = [
    "LLMResponse",
    "ModelHandle",
    "ModelInvoker",
    "ScoreSink",
    "HistoricalReader",
    "CircuitBreaker",
    "CircuitState",
    "LiteLLMInvoker",
]
