"""
Tests for the response scorer and quality evaluators.

Tests:
- End-to-end scoring of JSON responses
- Decision thresholds and tier bonus
- Individual factors
- Evaluator failure handling
"""

import pytest

from smartroute.routing.errors import ScoringError
from smartroute.routing.evaluators import (
    QUALITY_EVALUATORS,
    evaluate_code,
    evaluate_json,
    evaluate_safety,
    evaluate_tool_call,
)
from smartroute.routing.scorer import (
    ERROR_RATE,
    RESPONSE_QUALITY,
    RESPONSE_TIME,
    SCORING_WEIGHTS,
    TOKEN_EFFICIENCY,
    ResponseScorer,
)
from smartroute.routing.types import (
    Decision,
    ProviderId,
    ResponseEvaluation,
    TaskCategory,
    UserTier,
)


@pytest.fixture
def scorer():
    return ResponseScorer()


def make_evaluation(
    text: str,
    category: TaskCategory = TaskCategory.STRUCTURED_OUTPUT,
    provider: ProviderId = ProviderId.SELF_HOSTED,
    latency_ms: float = 500,
    **kwargs,
) -> ResponseEvaluation:
    return ResponseEvaluation(
        response_text=text,
        category=category,
        provider=provider,
        temperature=0.2,
        latency_ms=latency_ms,
        **kwargs,
    )


class TestScore:
    """Tests for ResponseScorer.score."""

    def test_valid_json_is_accepted(self, scorer):
        result = scorer.score(make_evaluation('{"name":"John","age":30}'))

        assert result.factor(RESPONSE_QUALITY).score > 90
        assert result.score > 60
        assert result.score == 92
        assert result.decision == Decision.ACCEPT
        assert result.reasoning.startswith("Score: 92/100.")

    def test_invalid_json_falls_back(self, scorer):
        result = scorer.score(make_evaluation("invalid json {{{", latency_ms=5000, token_count=200))

        assert result.factor(RESPONSE_QUALITY).score < 50
        assert result.score < 70
        assert result.score == 31
        assert result.decision in (Decision.FALLBACK_DIRECT_API, Decision.FALLBACK_GATEWAY)
        assert result.recommendations

    def test_provider_offset_raises_quality(self, scorer):
        text = "Here is the structure"
        self_hosted = scorer.score(make_evaluation(text))
        openai = scorer.score(make_evaluation(text, provider=ProviderId.OPENAI))

        assert openai.factor(RESPONSE_QUALITY).score == self_hosted.factor(RESPONSE_QUALITY).score + 12

    def test_historical_average_pulls_quality(self, scorer):
        result = scorer.score(make_evaluation('{"a": 1}', historical_average=45))

        # 95 pulled 30% of the way toward 45
        assert result.factor(RESPONSE_QUALITY).score == pytest.approx(80)
        assert "historical avg: 45.0" in result.factor(RESPONSE_QUALITY).reasoning

    def test_factor_names_and_weights(self, scorer):
        result = scorer.score(make_evaluation('{"a": 1}', category=TaskCategory.SAFETY_CRITICAL))

        assert [f.name for f in result.factors] == [RESPONSE_QUALITY, RESPONSE_TIME, TOKEN_EFFICIENCY, ERROR_RATE]
        assert result.factor(ERROR_RATE).weight == 0.0

    @pytest.mark.parametrize("category", list(TaskCategory))
    def test_score_is_bounded(self, scorer, category):
        for text in ("", "x" * 5000, '{"ok": true}', "hack exploit illegal dangerous harmful"):
            result = scorer.score(make_evaluation(text, category=category, latency_ms=20000, token_count=3000, error_count=9))

            assert 0 <= result.score <= 100
            for factor in result.factors:
                assert 0 <= factor.score <= 100

    def test_recommendations_are_capped(self, scorer):
        result = scorer.score(make_evaluation("nope", latency_ms=12000, token_count=5000, error_count=3))

        assert len(result.recommendations) <= 4

    def test_failing_evaluator_scores_neutral(self):
        def broken(response):
            raise RuntimeError("boom")

        evaluators = dict(QUALITY_EVALUATORS)
        evaluators[TaskCategory.STRUCTURED_OUTPUT] = broken
        scorer = ResponseScorer(evaluators=evaluators)

        result = scorer.score(make_evaluation('{"a": 1}'))

        assert result.factor(RESPONSE_QUALITY).score == 50
        assert "neutral" in result.factor(RESPONSE_QUALITY).reasoning

    def test_neutral_result(self, scorer):
        result = scorer.neutral(TaskCategory.STRUCTURED_OUTPUT, reason="scorer offline")

        assert result.score == 50
        assert result.decision == Decision.RETRY_SELF_HOSTED
        assert "scorer offline" in result.reasoning


class TestDecide:
    """Tests for the score to decision mapping."""

    @pytest.mark.parametrize("score,expected", [
        (100, Decision.ACCEPT),
        (61, Decision.ACCEPT),
        (60, Decision.ACCEPT),
        (59, Decision.RETRY_SELF_HOSTED),
        (55, Decision.RETRY_SELF_HOSTED),
        (50, Decision.RETRY_SELF_HOSTED),
        (45, Decision.FALLBACK_DIRECT_API),
        (40, Decision.FALLBACK_DIRECT_API),
        (35, Decision.FALLBACK_GATEWAY),
        (0, Decision.FALLBACK_GATEWAY),
    ])
    def test_thresholds(self, score, expected):
        assert ResponseScorer.decide(score, TaskCategory.STRUCTURED_OUTPUT) == expected

    @pytest.mark.parametrize("provider", list(ProviderId))
    def test_safety_critical_forces_premium(self, provider):
        assert ResponseScorer.decide(35, TaskCategory.SAFETY_CRITICAL) == Decision.FORCE_PREMIUM

    def test_premium_tier_bonus(self):
        assert ResponseScorer.decide(56, TaskCategory.CONVERSATIONAL, UserTier.PREMIUM) == Decision.ACCEPT
        assert ResponseScorer.decide(56, TaskCategory.CONVERSATIONAL, UserTier.ENTERPRISE) == Decision.ACCEPT
        assert ResponseScorer.decide(56, TaskCategory.CONVERSATIONAL, UserTier.STANDARD) == Decision.RETRY_SELF_HOSTED


class TestFactors:
    """Tests for individual factors."""

    @pytest.mark.parametrize("latency,expected", [
        (200, 100), (2000, 90), (4000, 75), (7000, 50), (15000, 25),
    ])
    def test_time_bands(self, scorer, latency, expected):
        factor = scorer.time_factor(make_evaluation("x", latency_ms=latency), 0.1)

        assert factor.score == expected

    def test_conversational_time_bonus(self, scorer):
        factor = scorer.time_factor(
            make_evaluation("x", category=TaskCategory.CONVERSATIONAL, latency_ms=7000), 0.2,
        )

        assert factor.score == 60

    def test_missing_token_count_is_neutral(self, scorer):
        assert scorer.token_factor(make_evaluation("x"), 0.15).score == 70

    def test_token_efficiency(self, scorer):
        # 400 characters estimate 100 tokens
        factor = scorer.token_factor(make_evaluation("a" * 400, token_count=100), 0.15)

        assert factor.score == 100

    def test_verbose_structured_output_penalized(self, scorer):
        factor = scorer.token_factor(make_evaluation("a" * 8000, token_count=2000), 0.15)

        assert factor.score == 80

    def test_error_rate(self, scorer):
        assert scorer.error_factor(make_evaluation("x", error_count=0), 0.05).score == 100
        assert scorer.error_factor(make_evaluation("x", error_count=2), 0.05).score == 60
        assert scorer.error_factor(make_evaluation("x", error_count=10), 0.05).score == 0


class TestEvaluators:
    """Tests for per-category quality evaluators."""

    def test_every_category_has_weights_and_evaluator(self):
        assert set(SCORING_WEIGHTS) == set(TaskCategory)
        assert set(QUALITY_EVALUATORS) == set(TaskCategory)

    def test_json(self):
        assert evaluate_json('{"a": [1, 2]}') == 95
        assert evaluate_json("{broken: }") == 70
        assert evaluate_json("not json") == 30

    def test_code(self):
        code = "import os\n\ndef main():\n    try:\n        pass\n    except OSError:\n        pass\n"

        assert evaluate_code(code) == 95
        assert evaluate_code("{{{{") == 50

    def test_tool_call(self):
        assert evaluate_tool_call("POST to the /users endpoint with headers") == 95

    def test_safety(self):
        assert evaluate_safety("Here is a safe and responsible approach") == 90
        assert evaluate_safety("How to hack and exploit a server") == 20


class TestScoringErrors:
    """Tests for missing scoring configuration."""

    def test_unconfigured_category_raises(self):
        weights = dict(SCORING_WEIGHTS)
        del weights[TaskCategory.MULTIMODAL]
        scorer = ResponseScorer(weights=weights)

        with pytest.raises(ScoringError, match="multimodal"):
            scorer.score(make_evaluation("a picture", category=TaskCategory.MULTIMODAL))
