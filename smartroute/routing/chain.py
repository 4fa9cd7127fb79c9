"""
Ordered attempt chain.

A routing run is a list of steps, each a (phase, eligibility predicate,
attempt function) triple, tried in order until one step's attempt is
terminal or the chain runs out. All per-request state lives in RunState, so
a chain can be shared by any number of concurrent runs.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger

from smartroute.routing.catalog import TierPolicy
from smartroute.routing.types import (
    ClassificationResult,
    Decision,
    Phase,
    ProviderId,
    RoutingAttempt,
    RoutingOptions,
    TaskCategory,
    TemperatureRecommendation,
)


@dataclass
class RunState:
    """Mutable state of one routing request."""
    category: TaskCategory
    options: RoutingOptions
    policy: TierPolicy
    recommendation: TemperatureRecommendation
    messages: list[dict[str, Any]]
    classification: ClassificationResult | None = None
    routing_path: list[ProviderId] = field(default_factory=list)
    attempts: list[RoutingAttempt] = field(default_factory=list)
    started: float = field(default_factory=time.monotonic)
    deadline: float | None = None  # monotonic seconds

    def record(self, attempt: RoutingAttempt) -> None:
        """Append an attempt to the audit trail."""
        self.attempts.append(attempt)
        self.routing_path.append(attempt.provider_id)

    @property
    def last_attempt(self) -> RoutingAttempt | None:
        return self.attempts[-1] if self.attempts else None

    def tried(self, provider_id: ProviderId) -> bool:
        return provider_id in self.routing_path

    def saw_decision(self, decision: Decision) -> bool:
        return any(a.decision is decision for a in self.attempts)

    def best_attempt(self) -> RoutingAttempt | None:
        """Highest-scoring attempt that produced a response; earliest wins ties."""
        best = None
        for attempt in self.attempts:
            if not attempt.succeeded:
                continue
            if best is None or (attempt.score or 0) > (best.score or 0):
                best = attempt
        return best

    def best_score(self) -> int | None:
        scores = [a.score for a in self.attempts if a.score is not None]
        return max(scores) if scores else None

    def remaining_ms(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, (self.deadline - time.monotonic()) * 1000)

    def deadline_exceeded(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000


Eligibility = Callable[[RunState], bool]
AttemptFn = Callable[[RunState], Awaitable[RoutingAttempt | None]]
StopRule = Callable[[RunState, RoutingAttempt], bool]


def stop_on_accept(state: RunState, attempt: RoutingAttempt) -> bool:
    return attempt.succeeded and attempt.decision is Decision.ACCEPT


def always_eligible(state: RunState) -> bool:
    return True


@dataclass(frozen=True)
class ChainStep:
    """One phase of the chain."""
    phase: Phase
    attempt: AttemptFn
    eligible: Eligibility = always_eligible
    stop: StopRule = stop_on_accept


class AttemptChain:
    """Runs steps in order; returns the first terminal attempt, or None."""

    def __init__(self, steps: list[ChainStep]):
        self.steps = list(steps)

    async def run(self, state: RunState) -> RoutingAttempt | None:
        for step in self.steps:
            if state.deadline_exceeded():
                logger.warning(
                    f"Request deadline exceeded after {state.elapsed_ms:.0f}ms; "
                    f"skipping {step.phase.value} and later phases"
                )
                return None

            if not step.eligible(state):
                logger.debug(f"Phase {step.phase.value} not eligible; skipping")
                continue

            attempt = await step.attempt(state)
            if attempt is None:
                logger.debug(f"Phase {step.phase.value} produced no attempt")
                continue

            if step.stop(state, attempt):
                return attempt

        return None
