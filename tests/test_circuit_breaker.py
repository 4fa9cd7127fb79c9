"""
Tests for the per-provider circuit breaker.
"""

from unittest.mock import patch

from smartroute.providers.circuit_breaker import CircuitBreaker, CircuitState


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=3)

        for _ in range(2):
            breaker.record_failure("openai", "boom")
        assert not breaker.is_open("openai")

        breaker.record_failure("openai", "boom")
        assert breaker.is_open("openai")
        assert breaker.stats("openai").last_error == "boom"

    def test_success_resets_consecutive_failures(self):
        breaker = CircuitBreaker(failure_threshold=3)

        breaker.record_failure("openai")
        breaker.record_failure("openai")
        breaker.record_success("openai")
        breaker.record_failure("openai")

        assert not breaker.is_open("openai")
        assert breaker.stats("openai").failures == 1

    def test_providers_are_isolated(self):
        breaker = CircuitBreaker(failure_threshold=1)

        breaker.record_failure("openai")

        assert breaker.is_open("openai")
        assert not breaker.is_open("claude")

    def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30)

        with patch("smartroute.providers.circuit_breaker.time.time", return_value=1000.0):
            breaker.record_failure("gemini")
        with patch("smartroute.providers.circuit_breaker.time.time", return_value=1031.0):
            assert not breaker.is_open("gemini")

        assert breaker.stats("gemini").state == CircuitState.HALF_OPEN

    def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(failure_threshold=5)
        breaker.force_state("gemini", CircuitState.HALF_OPEN)

        breaker.record_failure("gemini")

        assert breaker.stats("gemini").state == CircuitState.OPEN

    def test_half_open_success_closes(self):
        breaker = CircuitBreaker()
        breaker.force_state("gemini", CircuitState.HALF_OPEN)

        breaker.record_success("gemini")

        assert breaker.stats("gemini").state == CircuitState.CLOSED

    def test_force_open_and_reset(self):
        breaker = CircuitBreaker()
        breaker.force_state("grok", CircuitState.OPEN)
        assert breaker.is_open("grok")

        breaker.reset("grok")
        assert not breaker.is_open("grok")

    def test_get_stats(self):
        breaker = CircuitBreaker()
        breaker.record_success("deepseek")
        breaker.record_failure("deepseek", "timeout")

        stats = breaker.get_stats()["deepseek"]

        assert stats["state"] == "CLOSED"
        assert stats["total_requests"] == 2
        assert stats["last_error"] == "timeout"

        breaker.reset_all()
        assert breaker.get_stats() == {}
