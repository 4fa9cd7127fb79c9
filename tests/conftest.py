"""
Pytest configuration and shared fixtures for smartroute tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from smartroute.providers.base import LLMResponse, ModelInvoker
from smartroute.routing.catalog import ProviderCatalog
from smartroute.routing.errors import InvocationError
from smartroute.routing.scorer import ResponseScorer
from smartroute.routing.types import ProviderId, ScoreResult, UserTier
from smartroute.tracking.scores import ScoreStore


class FakeInvoker(ModelInvoker):
    """
    Scripted invoker.

    ``script`` maps a provider to a list of outcomes consumed in order; each
    outcome is a response string, an LLMResponse, an exception instance, or a
    float (seconds to sleep before answering "slow").
    """

    def __init__(self, script: dict[ProviderId, list] | None = None, default: str = "ok"):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = default
        self.calls: list[tuple[ProviderId, float]] = []

    async def invoke(self, provider_id, temperature, messages, category=None, model=None, timeout_ms=None):
        self.calls.append((provider_id, temperature))
        outcomes = self.script.get(provider_id)
        outcome = outcomes.pop(0) if outcomes else self.default

        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, float):
            if timeout_ms is not None and outcome * 1000 > timeout_ms:
                await asyncio.sleep(timeout_ms / 1000)
                raise InvocationError(provider_id.value, f"timed out after {timeout_ms:.0f}ms", timed_out=True)
            await asyncio.sleep(outcome)
            return LLMResponse(content="slow")
        if isinstance(outcome, LLMResponse):
            return outcome
        return LLMResponse(content=outcome)

    def called(self) -> list[ProviderId]:
        return [provider for provider, _ in self.calls]


class ScriptedScorer(ResponseScorer):
    """Scorer whose aggregate scores are fixed per call, in order."""

    def __init__(self, scores: list[int]):
        super().__init__()
        self.scores = list(scores)

    def score(self, evaluation, tier=UserTier.STANDARD):
        value = self.scores.pop(0)
        return ScoreResult(
            score=value,
            decision=self.decide(value, evaluation.category, tier),
            reasoning=f"Score: {value}/100",
        )


@pytest.fixture
def fake_invoker():
    return FakeInvoker()


@pytest.fixture
def full_catalog():
    """Catalog with every provider enabled and credentialed."""
    return ProviderCatalog.with_enabled(list(ProviderId))


@pytest.fixture
def store():
    """In-memory score store."""
    return ScoreStore()


@pytest.fixture
def config_dir(tmp_path):
    """Create a temporary config directory."""
    config = tmp_path / "config"
    config.mkdir()
    return config
