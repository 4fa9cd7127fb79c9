"""
Response scorer.

Grades a produced response on four factors (quality, response time, token
efficiency, error rate), combines them with category-specific weights into a
0-100 score and maps that score to a routing Decision.

The scorer is pure: historical averages arrive on the evaluation and
persistence happens in the router, not here.
"""

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from loguru import logger

from smartroute.routing.errors import ScoringError
from smartroute.routing.evaluators import QUALITY_EVALUATORS, QualityEvaluator, describe_quality
from smartroute.routing.types import (
    Decision,
    ProviderId,
    ResponseEvaluation,
    ScoreFactor,
    ScoreResult,
    TaskCategory,
    UserTier,
)

RESPONSE_QUALITY = "response_quality"
RESPONSE_TIME = "response_time"
TOKEN_EFFICIENCY = "token_efficiency"
ERROR_RATE = "error_rate"

NEUTRAL_SCORE = 50


@dataclass(frozen=True)
class FactorWeights:
    """Per-category factor weights."""
    quality: float
    time: float
    tokens: float
    errors: float

    @property
    def total(self) -> float:
        return self.quality + self.time + self.tokens + self.errors


SCORING_WEIGHTS: Mapping[TaskCategory, FactorWeights] = MappingProxyType({
    TaskCategory.STRUCTURED_OUTPUT: FactorWeights(0.70, 0.10, 0.15, 0.05),
    TaskCategory.CODE_GENERATION: FactorWeights(0.70, 0.10, 0.15, 0.05),
    TaskCategory.CREATIVE_WRITING: FactorWeights(0.50, 0.15, 0.25, 0.10),
    TaskCategory.COMPLEX_REASONING: FactorWeights(0.60, 0.10, 0.20, 0.10),
    TaskCategory.TOOL_EXECUTION: FactorWeights(0.80, 0.20, 0.05, 0.05),
    TaskCategory.DATA_ANALYSIS: FactorWeights(0.60, 0.10, 0.20, 0.10),
    TaskCategory.MATH_REASONING: FactorWeights(0.80, 0.10, 0.10, 0.05),
    TaskCategory.CONVERSATIONAL: FactorWeights(0.40, 0.20, 0.25, 0.15),
    TaskCategory.REALTIME_INFO: FactorWeights(0.60, 0.15, 0.20, 0.05),
    TaskCategory.MULTIMODAL: FactorWeights(0.50, 0.10, 0.30, 0.10),
    TaskCategory.SAFETY_CRITICAL: FactorWeights(0.90, 0.05, 0.05, 0.00),
    TaskCategory.COST_OPTIMIZED: FactorWeights(0.40, 0.20, 0.30, 0.15),
})

# Empirically tuned additive quality corrections; absent pairs are 0.
PROVIDER_QUALITY_OFFSETS: Mapping[ProviderId, Mapping[TaskCategory, float]] = MappingProxyType({
    ProviderId.OPENAI: {
        TaskCategory.STRUCTURED_OUTPUT: 12,
        TaskCategory.CODE_GENERATION: 8,
        TaskCategory.COMPLEX_REASONING: 10,
        TaskCategory.DATA_ANALYSIS: 9,
        TaskCategory.MATH_REASONING: 9,
        TaskCategory.TOOL_EXECUTION: 5,
        TaskCategory.SAFETY_CRITICAL: 8,
        TaskCategory.CREATIVE_WRITING: 6,
    },
    ProviderId.CLAUDE: {
        TaskCategory.CREATIVE_WRITING: 15,
        TaskCategory.CONVERSATIONAL: 12,
        TaskCategory.SAFETY_CRITICAL: 18,
        TaskCategory.COMPLEX_REASONING: 12,
        TaskCategory.DATA_ANALYSIS: 10,
        TaskCategory.MULTIMODAL: 8,
        TaskCategory.STRUCTURED_OUTPUT: 6,
    },
    ProviderId.GEMINI: {
        TaskCategory.MULTIMODAL: 18,
        TaskCategory.TOOL_EXECUTION: 8,
        TaskCategory.COST_OPTIMIZED: 15,
        TaskCategory.MATH_REASONING: 10,
        TaskCategory.REALTIME_INFO: 12,
        TaskCategory.DATA_ANALYSIS: 7,
        TaskCategory.STRUCTURED_OUTPUT: 4,
    },
    ProviderId.GROK: {
        TaskCategory.REALTIME_INFO: 15,
        TaskCategory.CONVERSATIONAL: 13,
        TaskCategory.CODE_GENERATION: 6,
        TaskCategory.CREATIVE_WRITING: 10,
        TaskCategory.SAFETY_CRITICAL: 7,
    },
    ProviderId.DEEPSEEK: {
        TaskCategory.CODE_GENERATION: 12,
        TaskCategory.MATH_REASONING: 8,
        TaskCategory.COST_OPTIMIZED: 12,
        TaskCategory.TOOL_EXECUTION: 6,
        TaskCategory.STRUCTURED_OUTPUT: 5,
    },
})

HISTORICAL_PULL = 0.3

# Response time bands in ms, checked in order
TIME_BANDS = (
    (1000, 100, "Excellent response time (< 1s)"),
    (3000, 90, "Good response time (< 3s)"),
    (5000, 75, "Acceptable response time (< 5s)"),
    (10000, 50, "Slow response time (< 10s)"),
)
SLOW_RESPONSE_MS = 5000

PREMIUM_TIERS = frozenset({UserTier.PREMIUM, UserTier.ENTERPRISE})
PREMIUM_BONUS = 5

_DECISION_TEXT: Mapping[Decision, str] = MappingProxyType({
    Decision.ACCEPT: "Response quality meets requirements",
    Decision.RETRY_SELF_HOSTED: "Retrying the self-hosted model with a temperature adjustment may improve results",
    Decision.FALLBACK_DIRECT_API: "Trying direct API providers for better performance",
    Decision.FALLBACK_GATEWAY: "Falling back to the gateway for broader model access",
    Decision.FALLBACK_SELF_HOSTED_TUNED: "Final attempt with heavily tuned self-hosted parameters",
    Decision.FORCE_PREMIUM: "Using premium models for critical requirements",
})

_DECISION_RECOMMENDATIONS: Mapping[Decision, tuple[str, ...]] = MappingProxyType({
    Decision.RETRY_SELF_HOSTED: (
        "Retry with lower temperature for more precise output",
        "Consider adjusting system prompt for clearer instructions",
    ),
    Decision.FALLBACK_DIRECT_API: (
        "Switching to direct API providers for better task-specific performance",
        "OpenAI recommended for structured tasks, Claude for creative tasks",
    ),
    Decision.FALLBACK_GATEWAY: (
        "Using the gateway for access to premium models via a single API",
        "Consider upgrading to premium tier for better performance",
    ),
    Decision.FORCE_PREMIUM: (
        "Critical task requires a premium model",
        "Consider upgrading account tier for consistent premium access",
    ),
})

_FACTOR_ADVICE: Mapping[str, str] = MappingProxyType({
    RESPONSE_QUALITY: "Response quality is the weakest factor; tighten the prompt or use a stronger model",
    RESPONSE_TIME: "Response time is the weakest factor; consider a faster model",
    TOKEN_EFFICIENCY: "Token usage is inefficient; constrain the output length",
    ERROR_RATE: "Errors were reported; check provider health",
})

MAX_RECOMMENDATIONS = 4


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ResponseScorer:
    """
    Scores responses and maps scores to decisions.

    Args:
        weights: Factor weights per category.
        evaluators: Quality evaluator per category.
        provider_offsets: Provider x category quality corrections.
    """

    def __init__(
        self,
        weights: Mapping[TaskCategory, FactorWeights] = SCORING_WEIGHTS,
        evaluators: Mapping[TaskCategory, QualityEvaluator] = QUALITY_EVALUATORS,
        provider_offsets: Mapping[ProviderId, Mapping[TaskCategory, float]] = PROVIDER_QUALITY_OFFSETS,
    ):
        self.weights = weights
        self.evaluators = evaluators
        self.provider_offsets = provider_offsets

    def score(self, evaluation: ResponseEvaluation, tier: UserTier = UserTier.STANDARD) -> ScoreResult:
        """
        Score one response.

        Args:
            evaluation: The response and its performance metrics.
            tier: Caller tier; premium tiers get a threshold bonus.

        Returns:
            ScoreResult with aggregate score, decision and factors.

        Raises:
            ScoringError: No weights or evaluator are configured for the category.
        """
        category = evaluation.category
        if category not in self.weights or category not in self.evaluators:
            raise ScoringError(f"No scoring configuration for {category.value}")

        weights = self.weights[category]
        factors = [
            self.quality_factor(evaluation, weights.quality),
            self.time_factor(evaluation, weights.time),
            self.token_factor(evaluation, weights.tokens),
            self.error_factor(evaluation, weights.errors),
        ]

        total_weight = sum(f.weight for f in factors)
        if total_weight > 0:
            score = round_half_up(sum(f.score * f.weight for f in factors) / total_weight)
        else:
            score = NEUTRAL_SCORE
        score = max(0, min(100, score))

        decision = self.decide(score, evaluation.category, tier)
        result = ScoreResult(
            score=score,
            decision=decision,
            reasoning=self._reasoning(score, decision, factors),
            factors=factors,
            recommendations=self._recommendations(decision, factors, evaluation),
        )
        logger.debug(
            f"Scored {evaluation.provider.value}/{evaluation.category.value}: "
            f"{score} -> {decision.value}"
        )
        return result

    def neutral(self, category: TaskCategory, tier: UserTier = UserTier.STANDARD, reason: str = "") -> ScoreResult:
        """Neutral default used when scoring itself fails."""
        decision = self.decide(NEUTRAL_SCORE, category, tier)
        return ScoreResult(
            score=NEUTRAL_SCORE,
            decision=decision,
            reasoning=f"Score: {NEUTRAL_SCORE}/100. Neutral default score{': ' + reason if reason else ''}",
        )

    @staticmethod
    def decide(score: float, category: TaskCategory, tier: UserTier = UserTier.STANDARD) -> Decision:
        """Map an aggregate score to a Decision."""
        adjusted = score + PREMIUM_BONUS if tier in PREMIUM_TIERS else score

        if adjusted >= 60:
            return Decision.ACCEPT
        if adjusted >= 50:
            return Decision.RETRY_SELF_HOSTED
        if adjusted >= 40:
            return Decision.FALLBACK_DIRECT_API
        if category is TaskCategory.SAFETY_CRITICAL:
            return Decision.FORCE_PREMIUM
        return Decision.FALLBACK_GATEWAY

    def quality_factor(self, evaluation: ResponseEvaluation, weight: float) -> ScoreFactor:
        category = evaluation.category
        evaluator = self.evaluators[category]

        try:
            quality = float(evaluator(evaluation.response_text))
            reasoning = describe_quality(category, quality)
        except Exception as e:
            logger.warning(f"Quality evaluator for {category.value} failed: {e}")
            quality = float(NEUTRAL_SCORE)
            reasoning = "Quality evaluation failed; neutral score used"

        if evaluation.historical_average is not None:
            quality += (evaluation.historical_average - quality) * HISTORICAL_PULL
            reasoning += f" (historical avg: {evaluation.historical_average:.1f})"

        offset = self.provider_offsets.get(evaluation.provider, {}).get(category, 0)
        quality = max(0.0, min(100.0, quality + offset))

        return ScoreFactor(
            name=RESPONSE_QUALITY,
            score=quality,
            weight=weight,
            reasoning=f"{reasoning} ({evaluation.provider.value} provider)",
        )

    def time_factor(self, evaluation: ResponseEvaluation, weight: float) -> ScoreFactor:
        score, reasoning = 25.0, "Very slow response time (> 10s)"
        for limit, band_score, text in TIME_BANDS:
            if evaluation.latency_ms < limit:
                score, reasoning = float(band_score), text
                break

        if evaluation.category is TaskCategory.CONVERSATIONAL and score < 80:
            score += 10

        return ScoreFactor(name=RESPONSE_TIME, score=score, weight=weight, reasoning=reasoning)

    def token_factor(self, evaluation: ResponseEvaluation, weight: float) -> ScoreFactor:
        tokens = evaluation.token_count
        if not tokens:
            return ScoreFactor(
                name=TOKEN_EFFICIENCY, score=70.0, weight=weight,
                reasoning="Token count not available",
            )

        estimated = len(evaluation.response_text) / 4
        efficiency = min(tokens, estimated) / max(tokens, estimated)
        score = efficiency * 100

        if evaluation.category is TaskCategory.STRUCTURED_OUTPUT and tokens > 1000:
            score -= 20
        if evaluation.category is TaskCategory.CREATIVE_WRITING and tokens < 500:
            score -= 15

        score = max(0.0, min(100.0, score))
        if score > 80:
            reasoning = "Highly efficient token usage"
        elif score > 60:
            reasoning = "Good token efficiency"
        else:
            reasoning = "Inefficient token usage"

        return ScoreFactor(name=TOKEN_EFFICIENCY, score=score, weight=weight, reasoning=reasoning)

    def error_factor(self, evaluation: ResponseEvaluation, weight: float) -> ScoreFactor:
        count = max(0, evaluation.error_count)
        score = max(0.0, 100.0 - 20 * count)

        if count == 0:
            reasoning = "No errors detected"
        elif count == 1:
            reasoning = "Minor error detected"
        else:
            reasoning = f"{count} errors detected"

        return ScoreFactor(name=ERROR_RATE, score=score, weight=weight, reasoning=reasoning)

    def _reasoning(self, score: int, decision: Decision, factors: list[ScoreFactor]) -> str:
        top = sorted(factors, key=lambda f: f.score, reverse=True)[:2]
        key_factors = ", ".join(f"{f.name}: {f.score:.0f}" for f in top)
        return f"Score: {score}/100. {_DECISION_TEXT[decision]}. Key factors: {key_factors}"

    def _recommendations(
        self,
        decision: Decision,
        factors: list[ScoreFactor],
        evaluation: ResponseEvaluation,
    ) -> list[str]:
        recommendations = list(_DECISION_RECOMMENDATIONS.get(decision, ()))

        worst = min(factors, key=lambda f: f.score)
        if worst.score < 60:
            recommendations.append(_FACTOR_ADVICE[worst.name])

        if evaluation.latency_ms > SLOW_RESPONSE_MS and worst.name != RESPONSE_TIME:
            recommendations.append("Consider faster models for time-sensitive tasks")

        return recommendations[:MAX_RECOMMENDATIONS]
