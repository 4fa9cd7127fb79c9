"""Error taxonomy for the routing pipeline."""


class RoutingError(Exception):
    """Base class for routing failures."""


class ProviderUnavailable(RoutingError):
    """Provider is disabled or has no credentials; detected before any call."""

    def __init__(self, provider_id: str, reason: str = "disabled or missing credentials"):
        self.provider_id = provider_id
        self.reason = reason
        super().__init__(f"Provider {provider_id} unavailable: {reason}")


class InvocationError(RoutingError):
    """A live provider call failed (network, timeout, vendor error)."""

    def __init__(self, provider_id: str, message: str, timed_out: bool = False):
        self.provider_id = provider_id
        self.timed_out = timed_out
        super().__init__(message)


class CircuitOpenError(InvocationError):
    """The provider's circuit breaker is open; the call was short-circuited."""

    def __init__(self, provider_id: str):
        super().__init__(provider_id, f"Circuit breaker is OPEN for provider: {provider_id}")


class ScoringError(RoutingError):
    """A quality evaluator or the scorer itself failed."""


class PersistenceError(RoutingError):
    """Recording a score failed."""


class RoutingExhausted(RoutingError):
    """No phase produced a usable response."""
