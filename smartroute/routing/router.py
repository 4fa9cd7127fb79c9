"""
Score-driven routing orchestrator.

Sequences classification, temperature advice, invocation and scoring into a
multi-phase fallback run:

    SELF_HOSTED -> SELF_HOSTED_RETRY -> DIRECT_API -> GATEWAY -> SELF_HOSTED_FALLBACK

Any accepted attempt ends the run, as does any attempt on a forced
provider, whether or not it responded. When every phase is exhausted the best
attempt seen is returned; if the run itself blows up, one EMERGENCY
self-hosted call is made and is the only failure allowed to reach the caller.
"""

import asyncio
import time
from typing import Any

from loguru import logger

from smartroute.providers.base import (
    HistoricalReader,
    ModelInvoker,
    ScoreHistoryReader,
    ScoreSink,
    build_messages,
)
from smartroute.routing.catalog import ProviderCatalog
from smartroute.routing.chain import AttemptChain, ChainStep, RunState
from smartroute.routing.classifier import TaskClassifier
from smartroute.routing.errors import InvocationError, ProviderUnavailable, RoutingExhausted
from smartroute.routing.scorer import (
    ERROR_RATE,
    RESPONSE_QUALITY,
    TOKEN_EFFICIENCY,
    ResponseScorer,
)
from smartroute.routing.temperature import TemperatureAdvisor
from smartroute.routing.types import (
    Decision,
    HistoricalSignal,
    Phase,
    ProviderId,
    ResponseEvaluation,
    RoutingAttempt,
    RoutingOptions,
    RoutingResult,
    ScoreRecord,
    ScoreResult,
    TaskCategory,
    TemperatureRecommendation,
    UserTier,
)

DEFAULT_TIMEOUT_MS = 30000
# Extra time given to an invoker to honour its own timeout before the call is cancelled
TIMEOUT_GRACE_MS = 1000
NEUTRAL_CONFIDENCE = 50

# Decision recorded for an attempt whose call failed
FAILURE_DECISIONS = {
    Phase.SELF_HOSTED: Decision.FALLBACK_DIRECT_API,
    Phase.SELF_HOSTED_RETRY: Decision.FALLBACK_DIRECT_API,
    Phase.DIRECT_API: Decision.FALLBACK_GATEWAY,
    Phase.GATEWAY: Decision.FALLBACK_SELF_HOSTED_TUNED,
    Phase.SELF_HOSTED_FALLBACK: Decision.FALLBACK_SELF_HOSTED_TUNED,
    Phase.EMERGENCY: Decision.FALLBACK_SELF_HOSTED_TUNED,
}

RETRY_PHASES = frozenset({Phase.SELF_HOSTED_RETRY, Phase.SELF_HOSTED_FALLBACK, Phase.EMERGENCY})


class RoutingOrchestrator:
    """
    Routes one prompt across self-hosted, direct-API and gateway providers.

    Holds only injected collaborators and immutable configuration; every
    ``route`` call keeps its state in its own RunState, so a single instance
    can serve concurrent requests.
    """

    def __init__(
        self,
        catalog: ProviderCatalog,
        invoker: ModelInvoker,
        classifier: TaskClassifier | None = None,
        advisor: TemperatureAdvisor | None = None,
        scorer: ResponseScorer | None = None,
        score_sink: ScoreSink | None = None,
        history: HistoricalReader | None = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        default_deadline_ms: int | None = None,
        history_window_days: int = 7,
    ):
        self.catalog = catalog
        self.invoker = invoker
        self.classifier = classifier or TaskClassifier()
        self.advisor = advisor or TemperatureAdvisor()
        self.scorer = scorer or ResponseScorer()
        self.score_sink = score_sink
        self.history = history
        self.default_timeout_ms = default_timeout_ms
        self.default_deadline_ms = default_deadline_ms
        self.history_window_days = history_window_days

        self.chain = AttemptChain([
            ChainStep(Phase.SELF_HOSTED, self._self_hosted, self._self_hosted_eligible, self._accepted_or_forced),
            ChainStep(Phase.SELF_HOSTED_RETRY, self._self_hosted_retry, self._retry_eligible, self._accepted_or_forced),
            ChainStep(Phase.DIRECT_API, self._direct_api, self._direct_eligible, self._accepted_or_forced),
            ChainStep(Phase.GATEWAY, self._gateway, self._gateway_eligible, self._accepted_or_forced),
            ChainStep(Phase.SELF_HOSTED_FALLBACK, self._self_hosted_fallback, self._fallback_eligible, self._responded),
        ])

    async def route(
        self,
        prompt: str,
        system_prompt: str | None = None,
        options: RoutingOptions | None = None,
    ) -> RoutingResult:
        """
        Route a prompt to the best provider.

        Args:
            prompt: User prompt.
            system_prompt: Optional system prompt.
            options: Routing knobs; defaults apply when omitted.

        Returns:
            RoutingResult with the selected model handle and the full audit trail.

        Raises:
            InvocationError: The EMERGENCY self-hosted call failed.
            ProviderUnavailable: The EMERGENCY provider is not configured.
        """
        options = options or RoutingOptions()
        state: RunState | None = None

        try:
            state = self._start(prompt, system_prompt, options)
            attempt = await self.chain.run(state)
            if attempt is None:
                attempt = state.best_attempt()
                if attempt is None:
                    raise RoutingExhausted("No phase produced a response")
                logger.info(
                    f"All phases exhausted; returning best attempt "
                    f"({attempt.provider_id.value}, score={attempt.score})"
                )
            return self._result(state, attempt)
        except Exception as e:
            logger.error(f"Routing failed ({type(e).__name__}: {e}); running emergency self-hosted call")
            if state is None:
                state = self._start(prompt, system_prompt, options, classify=False)
            return await self._emergency(state)

    def routing_stats(self) -> dict[str, Any]:
        """Available providers and the per-category mapping rows they can serve."""
        return self.catalog.routing_stats()

    # Run setup and results

    def _start(
        self,
        prompt: str,
        system_prompt: str | None,
        options: RoutingOptions,
        classify: bool = True,
    ) -> RunState:
        classification = None
        category = options.task_category
        if category is None:
            if classify:
                text = f"{system_prompt or ''} {prompt}".strip()
                classification = self.classifier.classify(
                    text, node_type=options.node_type, context=options.context,
                )
                category = classification.category
                logger.info(
                    f"Classified request as {category.value} "
                    f"(confidence {classification.confidence:.2f})"
                )
            else:
                category = self.classifier.default_category

        recommendation = self.advisor.recommend(
            category,
            provider=ProviderId.SELF_HOSTED,
            user_override=options.user_specified_temperature,
            historical=self._history_signal(ProviderId.SELF_HOSTED, category),
        )

        deadline_ms = options.deadline_ms if options.deadline_ms is not None else self.default_deadline_ms
        started = time.monotonic()
        return RunState(
            category=category,
            options=options,
            policy=self.catalog.tier_policy(options.user_tier),
            recommendation=recommendation,
            messages=build_messages(prompt, system_prompt),
            classification=classification,
            started=started,
            deadline=started + deadline_ms / 1000 if deadline_ms is not None else None,
        )

    def _result(self, state: RunState, attempt: RoutingAttempt) -> RoutingResult:
        confidence = attempt.score if attempt.score is not None else NEUTRAL_CONFIDENCE
        logger.info(
            f"Selected {attempt.provider_id.value} via {attempt.phase.value} "
            f"(confidence {confidence}, path {[p.value for p in state.routing_path]})"
        )
        return RoutingResult(
            model_handle=self.invoker.create_handle(attempt.provider_id, attempt.temperature, state.category),
            provider_id=attempt.provider_id,
            temperature=attempt.temperature,
            task_category=state.category,
            confidence=confidence,
            routing_path=list(state.routing_path),
            temperature_recommendation=attempt.temperature_recommendation or state.recommendation,
            score_result=attempt.score_result,
            attempts=list(state.attempts),
            response_text=attempt.response_text,
            classification=state.classification,
        )

    async def _emergency(self, state: RunState) -> RoutingResult:
        """Last self-hosted call; its failure propagates to the caller."""
        provider = ProviderId.SELF_HOSTED
        if not self.catalog.is_available(provider):
            raise ProviderUnavailable(provider.value)

        recommendation = state.recommendation
        timeout_ms = state.options.timeout_ms or self.default_timeout_ms
        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.invoker.invoke(
                    provider, recommendation.value, state.messages,
                    category=state.category, timeout_ms=timeout_ms,
                ),
                timeout=(timeout_ms + TIMEOUT_GRACE_MS) / 1000,
            )
        except asyncio.TimeoutError as e:
            raise InvocationError(provider.value, f"Emergency call timed out after {timeout_ms}ms", timed_out=True) from e

        latency_ms = (time.perf_counter() - start) * 1000
        text = response.content or ""
        score_result = self._score(state, provider, recommendation.value, text, latency_ms, response.total_tokens)
        attempt = RoutingAttempt(
            phase=Phase.EMERGENCY,
            provider_id=provider,
            temperature=recommendation.value,
            decision=score_result.decision if score_result else Decision.ACCEPT,
            response_text=text,
            latency_ms=latency_ms,
            score=score_result.score if score_result else None,
            token_count=response.total_tokens,
            score_result=score_result,
            temperature_recommendation=recommendation,
        )
        state.record(attempt)
        if score_result:
            self._persist(state, attempt)
        return self._result(state, attempt)

    # Phase eligibility and stop rules

    @staticmethod
    def _self_hosted_eligible(state: RunState) -> bool:
        forced = state.options.force_provider
        return forced is None or forced is ProviderId.SELF_HOSTED

    @staticmethod
    def _retry_eligible(state: RunState) -> bool:
        last = state.last_attempt
        return (
            last is not None
            and last.phase is Phase.SELF_HOSTED
            and last.decision is Decision.RETRY_SELF_HOSTED
            and state.policy.allow_retries
            and state.options.max_retries > 0
        )

    @staticmethod
    def _direct_eligible(state: RunState) -> bool:
        forced = state.options.force_provider
        return forced is None or forced.is_direct_api

    @staticmethod
    def _gateway_eligible(state: RunState) -> bool:
        forced = state.options.force_provider
        return forced is None or forced is ProviderId.GATEWAY

    @staticmethod
    def _fallback_eligible(state: RunState) -> bool:
        return state.options.force_provider is None and not state.tried(ProviderId.SELF_HOSTED)

    @staticmethod
    def _accepted_or_forced(state: RunState, attempt: RoutingAttempt) -> bool:
        # A forced provider's attempt is final even when the call failed
        if state.options.force_provider is attempt.provider_id:
            return True
        return attempt.succeeded and attempt.decision is Decision.ACCEPT

    @staticmethod
    def _responded(state: RunState, attempt: RoutingAttempt) -> bool:
        return attempt.succeeded

    # Phases

    async def _self_hosted(self, state: RunState) -> RoutingAttempt | None:
        return await self._attempt(state, Phase.SELF_HOSTED, ProviderId.SELF_HOSTED, state.recommendation)

    async def _self_hosted_retry(self, state: RunState) -> RoutingAttempt | None:
        recommendation = self.advisor.recommend(
            state.category,
            provider=ProviderId.SELF_HOSTED,
            user_override=state.options.user_specified_temperature,
            is_retry=True,
            historical=self._history_signal(ProviderId.SELF_HOSTED, state.category),
        )
        logger.info(
            f"Retrying self-hosted at temperature {recommendation.value} "
            f"(was {state.recommendation.value})"
        )
        return await self._attempt(state, Phase.SELF_HOSTED_RETRY, ProviderId.SELF_HOSTED, recommendation)

    async def _direct_api(self, state: RunState) -> RoutingAttempt | None:
        tier = state.options.user_tier
        if state.saw_decision(Decision.FORCE_PREMIUM) and tier in (UserTier.FREE, UserTier.STANDARD):
            tier = UserTier.PREMIUM
            logger.info("Safety-critical response below threshold; selecting under premium policy")

        provider = self.catalog.select_direct_provider(
            state.category,
            tier,
            exclude=state.routing_path,
            force=state.options.force_provider,
        )
        if provider is None:
            logger.info(f"No direct API provider available for {state.category.value} under {tier.value} tier")
            return None

        recommendation = self.advisor.recommend(
            state.category,
            provider=provider,
            user_override=state.options.user_specified_temperature,
            historical=self._history_signal(provider, state.category),
        )
        return await self._attempt(state, Phase.DIRECT_API, provider, recommendation)

    async def _gateway(self, state: RunState) -> RoutingAttempt | None:
        provider = ProviderId.GATEWAY
        recommendation = self.advisor.recommend(
            state.category,
            provider=provider,
            user_override=state.options.user_specified_temperature,
            historical=self._history_signal(provider, state.category),
        )
        if self.catalog.is_available(provider):
            logger.debug(f"Gateway model for {state.category.value}: {self.catalog.gateway_model(state.category)}")
        return await self._attempt(state, Phase.GATEWAY, provider, recommendation)

    async def _self_hosted_fallback(self, state: RunState) -> RoutingAttempt | None:
        if state.options.user_specified_temperature is not None:
            recommendation = state.recommendation
        else:
            recommendation = self.advisor.retry_temperature(
                state.category,
                state.recommendation.value,
                provider=ProviderId.SELF_HOSTED,
                performance_score=state.best_score(),
            )
        return await self._attempt(state, Phase.SELF_HOSTED_FALLBACK, ProviderId.SELF_HOSTED, recommendation)

    # Invocation and scoring

    async def _attempt(
        self,
        state: RunState,
        phase: Phase,
        provider: ProviderId,
        recommendation: TemperatureRecommendation,
    ) -> RoutingAttempt | None:
        """
        Invoke one provider and score the response.

        Returns None when the provider is unavailable (the phase is skipped
        and nothing is recorded). Invocation failures are recorded on the
        attempt, never raised.
        """
        if not self.catalog.is_available(provider):
            logger.info(f"{phase.value}: provider {provider.value} unavailable; skipping")
            return None

        temperature = recommendation.value
        timeout_ms = self._timeout_ms(state)
        logger.info(f"{phase.value}: invoking {provider.value} at temperature {temperature}")

        start = time.perf_counter()
        error = None
        response = None
        try:
            response = await asyncio.wait_for(
                self.invoker.invoke(
                    provider, temperature, state.messages,
                    category=state.category, timeout_ms=timeout_ms,
                ),
                timeout=(timeout_ms + TIMEOUT_GRACE_MS) / 1000,
            )
        except ProviderUnavailable as e:
            logger.info(f"{phase.value}: {e}; skipping")
            return None
        except asyncio.TimeoutError:
            error = f"Timed out after {timeout_ms:.0f}ms"
        except InvocationError as e:
            if e.timed_out:
                error = f"Timed out after {timeout_ms:.0f}ms"
            else:
                error = str(e) or type(e).__name__
        except Exception as e:
            error = str(e) or type(e).__name__
        latency_ms = (time.perf_counter() - start) * 1000

        if error is not None or response is None:
            attempt = RoutingAttempt(
                phase=phase,
                provider_id=provider,
                temperature=temperature,
                decision=FAILURE_DECISIONS[phase],
                latency_ms=latency_ms,
                error=error or "No response",
                temperature_recommendation=recommendation,
            )
            state.record(attempt)
            logger.warning(f"{phase.value}: {provider.value} failed: {attempt.error}")
            return attempt

        text = response.content or ""
        score_result = self._score(state, provider, temperature, text, latency_ms, response.total_tokens)
        attempt = RoutingAttempt(
            phase=phase,
            provider_id=provider,
            temperature=temperature,
            decision=score_result.decision if score_result else Decision.ACCEPT,
            response_text=text,
            latency_ms=latency_ms,
            score=score_result.score if score_result else None,
            token_count=response.total_tokens,
            score_result=score_result,
            temperature_recommendation=recommendation,
        )
        state.record(attempt)
        logger.info(
            f"{phase.value}: {provider.value} scored {attempt.score} -> {attempt.decision.value} "
            f"in {latency_ms:.0f}ms"
        )

        if score_result:
            self._persist(state, attempt)
        return attempt

    def _timeout_ms(self, state: RunState) -> float:
        timeout_ms = float(state.options.timeout_ms or self.default_timeout_ms)
        remaining = state.remaining_ms()
        if remaining is not None:
            timeout_ms = min(timeout_ms, remaining)
        return timeout_ms

    def _score(
        self,
        state: RunState,
        provider: ProviderId,
        temperature: float,
        text: str,
        latency_ms: float,
        token_count: int | None,
    ) -> ScoreResult | None:
        """Score a response; None when scoring is disabled."""
        if not state.options.enable_scoring:
            return None

        evaluation = ResponseEvaluation(
            response_text=text,
            category=state.category,
            provider=provider,
            temperature=temperature,
            latency_ms=latency_ms,
            token_count=token_count,
            historical_average=self._historical_average(provider, state.category),
        )
        try:
            return self.scorer.score(evaluation, state.options.user_tier)
        except Exception as e:
            logger.warning(f"Scoring failed for {provider.value}: {e}; using neutral score")
            return self.scorer.neutral(state.category, state.options.user_tier, reason=str(e))

    def _historical_average(self, provider: ProviderId, category: TaskCategory) -> float | None:
        if self.history is None:
            return None
        try:
            return self.history.get_recent_average(provider, category, self.history_window_days)
        except Exception as e:
            logger.warning(f"Historical score lookup failed for {provider.value}/{category.value}: {e}")
            return None

    def _recent_scores(self, provider: ProviderId, category: TaskCategory) -> list[int]:
        if not isinstance(self.history, ScoreHistoryReader):
            return []
        try:
            return list(self.history.get_recent_scores(provider, category, self.history_window_days))
        except Exception as e:
            logger.warning(f"Recent score lookup failed for {provider.value}/{category.value}: {e}")
            return []

    def _history_signal(self, provider: ProviderId, category: TaskCategory) -> HistoricalSignal | None:
        average = self._historical_average(provider, category)
        if average is None:
            return None
        scores = self._recent_scores(provider, category)
        return HistoricalSignal(recent_scores=scores or [average], weighted_average=average)

    def _persist(self, state: RunState, attempt: RoutingAttempt) -> None:
        if self.score_sink is None or attempt.score_result is None:
            return

        def factor_score(name: str, default: float) -> float:
            factor = attempt.score_result.factor(name)
            return factor.score if factor else default

        record = ScoreRecord(
            provider=attempt.provider_id.value,
            model_name=self.invoker.model_name(attempt.provider_id, state.category),
            category=state.category.value,
            confidence=attempt.score_result.score,
            decision=attempt.decision.value,
            latency_ms=attempt.latency_ms,
            temperature=attempt.temperature,
            token_count=attempt.token_count,
            routing_path=[p.value for p in state.routing_path],
            response_quality=factor_score(RESPONSE_QUALITY, 50.0),
            token_efficiency=factor_score(TOKEN_EFFICIENCY, 50.0),
            error_rate=factor_score(ERROR_RATE, 100.0),
            success=True,
            is_retry=attempt.phase in RETRY_PHASES,
            response_length=len(attempt.response_text or ""),
        )
        try:
            self.score_sink.record_score(record)
        except Exception as e:
            logger.warning(f"Failed to record score for {attempt.provider_id.value}: {e}")


def create_orchestrator_from_config(config: Any, store: Any | None = None) -> RoutingOrchestrator:
    """
    Create a RoutingOrchestrator from configuration.

    Args:
        config: smartroute Config.
        store: Optional score store; built from ``config.tracking`` when omitted.

    Returns:
        Configured RoutingOrchestrator instance.
    """
    from smartroute.providers.circuit_breaker import CircuitBreaker
    from smartroute.providers.litellm_provider import LiteLLMInvoker
    from smartroute.tracking.scores import ScoreStore

    catalog = ProviderCatalog.from_config(config)
    breaker = CircuitBreaker(
        failure_threshold=config.circuit_breaker.failure_threshold,
        recovery_timeout=config.circuit_breaker.recovery_timeout_seconds,
    )

    if store is None and config.tracking.enabled:
        store = ScoreStore(
            config.tracking.storage_path,
            retention_days=config.tracking.retention_days,
            max_records=config.tracking.max_records,
        )

    routing = config.routing
    return RoutingOrchestrator(
        catalog=catalog,
        invoker=LiteLLMInvoker(catalog, breaker),
        score_sink=store,
        history=store,
        default_timeout_ms=routing.timeout_ms,
        default_deadline_ms=routing.deadline_ms,
        history_window_days=routing.history_window_days,
    )
