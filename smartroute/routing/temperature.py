"""
Temperature advisor.

Maps (task category, provider, retry flag, history) to a sampling temperature,
always bounded by the category's [min, max] band.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from loguru import logger

from smartroute.routing.types import (
    HistoricalSignal,
    ProviderId,
    TaskCategory,
    TemperatureRecommendation,
)


@dataclass(frozen=True)
class TemperatureBand:
    """Temperature policy for one task category."""
    base: float
    min: float
    max: float
    retry_delta: float
    provider_offsets: Mapping[ProviderId, float] = field(default_factory=lambda: MappingProxyType({}))
    note: str = ""

    def clamp(self, value: float) -> float:
        return max(self.min, min(self.max, value))

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


def _band(
    base: float,
    lo: float,
    hi: float,
    retry_delta: float,
    offsets: dict[ProviderId, float],
    note: str,
) -> TemperatureBand:
    return TemperatureBand(base, lo, hi, retry_delta, MappingProxyType(offsets), note)


P = ProviderId

TEMPERATURE_BANDS: Mapping[TaskCategory, TemperatureBand] = MappingProxyType({
    TaskCategory.STRUCTURED_OUTPUT: _band(
        0.20, 0.10, 0.30, -0.05, {P.OPENAI: 0.0, P.CLAUDE: 0.1, P.GEMINI: 0.2},
        "Low temperature ensures consistent JSON formatting and schema adherence.",
    ),
    TaskCategory.CODE_GENERATION: _band(
        0.10, 0.05, 0.30, -0.02, {P.DEEPSEEK: -0.05, P.OPENAI: 0.0, P.GROK: 0.1},
        "Very low temperature prevents syntax errors and ensures code correctness.",
    ),
    TaskCategory.CREATIVE_WRITING: _band(
        0.80, 0.60, 0.90, 0.05, {P.CLAUDE: 0.1, P.GROK: 0.05, P.OPENAI: 0.0},
        "Higher temperature allows for creative expression and varied content.",
    ),
    TaskCategory.COMPLEX_REASONING: _band(
        0.40, 0.30, 0.60, -0.05, {P.OPENAI: -0.05, P.CLAUDE: 0.0, P.GEMINI: 0.1},
        "Balanced temperature enables logical thinking with some creative problem-solving.",
    ),
    TaskCategory.TOOL_EXECUTION: _band(
        0.10, 0.05, 0.20, -0.03, {P.GEMINI: 0.0, P.OPENAI: -0.02, P.CLAUDE: -0.01},
        "Very low temperature ensures reliable and precise API interactions.",
    ),
    TaskCategory.DATA_ANALYSIS: _band(
        0.20, 0.10, 0.40, -0.05, {P.OPENAI: -0.05, P.GEMINI: 0.0, P.CLAUDE: 0.05},
        "Low temperature keeps figures and aggregations reproducible.",
    ),
    TaskCategory.MATH_REASONING: _band(
        0.10, 0.05, 0.20, -0.03, {P.GEMINI: -0.02, P.DEEPSEEK: 0.0, P.OPENAI: -0.01},
        "Very low temperature keeps calculations exact.",
    ),
    TaskCategory.CONVERSATIONAL: _band(
        0.70, 0.50, 0.80, 0.03, {P.CLAUDE: 0.05, P.GROK: 0.08, P.OPENAI: 0.0},
        "Warm temperature keeps dialogue natural.",
    ),
    TaskCategory.REALTIME_INFO: _band(
        0.60, 0.40, 0.70, 0.02, {P.GROK: 0.1, P.GEMINI: 0.0, P.OPENAI: -0.05},
        "Moderate temperature balances recall and phrasing.",
    ),
    TaskCategory.MULTIMODAL: _band(
        0.30, 0.20, 0.50, -0.05, {P.GEMINI: 0.1, P.CLAUDE: 0.05, P.OPENAI: 0.0},
        "Low temperature keeps descriptions grounded in the input media.",
    ),
    TaskCategory.SAFETY_CRITICAL: _band(
        0.30, 0.20, 0.40, -0.05, {P.CLAUDE: -0.05, P.OPENAI: 0.0, P.GEMINI: 0.05},
        "Conservative temperature prioritizes safety and responsible outputs.",
    ),
    TaskCategory.COST_OPTIMIZED: _band(
        0.50, 0.30, 0.70, -0.05, {P.GEMINI: -0.1, P.DEEPSEEK: -0.05, P.GROK: 0.0},
        "Balanced temperature optimizes for both quality and cost-efficiency.",
    ),
})

# Static stand-in for a live provider performance feed.
LIVE_PERFORMANCE_OFFSETS: Mapping[ProviderId, float] = MappingProxyType({
    P.OPENAI: 0.0,
    P.CLAUDE: 0.02,
    P.GEMINI: -0.01,
    P.GROK: 0.03,
    P.DEEPSEEK: -0.02,
})

WELL_UNDERSTOOD = frozenset({
    TaskCategory.STRUCTURED_OUTPUT,
    TaskCategory.CODE_GENERATION,
    TaskCategory.TOOL_EXECUTION,
    TaskCategory.MATH_REASONING,
    TaskCategory.SAFETY_CRITICAL,
})
SUBJECTIVE = frozenset({TaskCategory.CREATIVE_WRITING, TaskCategory.CONVERSATIONAL})
PRECISION_SENSITIVE = frozenset({TaskCategory.STRUCTURED_OUTPUT, TaskCategory.MATH_REASONING})
CREATIVE = frozenset({TaskCategory.CREATIVE_WRITING})

USER_OVERRIDE_CONFIDENCE = 0.9
RETRY_CONFIDENCE = 0.7


class TemperatureAdvisor:
    """
    Recommends sampling temperatures per task category.

    Holds only immutable tables, so one instance can serve any number of
    concurrent requests.
    """

    def __init__(
        self,
        bands: Mapping[TaskCategory, TemperatureBand] = TEMPERATURE_BANDS,
        live_offsets: Mapping[ProviderId, float] = LIVE_PERFORMANCE_OFFSETS,
    ):
        self.bands = bands
        self.live_offsets = live_offsets

    def get_range(self, category: TaskCategory) -> tuple[float, float, float]:
        """Return (min, max, base) for a category."""
        band = self.bands[category]
        return band.min, band.max, band.base

    def is_within_range(self, category: TaskCategory, value: float) -> bool:
        return self.bands[category].contains(value)

    def recommend(
        self,
        category: TaskCategory,
        provider: ProviderId | None = None,
        user_override: float | None = None,
        is_retry: bool = False,
        historical: HistoricalSignal | None = None,
    ) -> TemperatureRecommendation:
        """
        Recommend a temperature.

        Args:
            category: Task category.
            provider: Provider the temperature is meant for, if known.
            user_override: Caller-supplied temperature; returned verbatim.
            is_retry: Whether this is a retry of a weak response.
            historical: Recent scores for this category/provider.

        Returns:
            TemperatureRecommendation bounded by the category band (except
            for a user override, which always wins).
        """
        if user_override is not None:
            return TemperatureRecommendation(
                value=user_override,
                reasoning=f"Using user-specified temperature: {user_override}",
                confidence=USER_OVERRIDE_CONFIDENCE,
                alternatives=self._alternatives(user_override, category),
            )

        band = self.bands[category]
        temperature = band.base

        avg = historical.average if historical else None
        if avg is not None:
            if avg < 60:
                temperature += 0.10
            elif avg > 85:
                temperature -= 0.05

        if provider is not None:
            temperature += band.provider_offsets.get(provider, 0.0)

        if is_retry:
            temperature += band.retry_delta
            if category in PRECISION_SENSITIVE:
                temperature -= 0.02
            elif category in CREATIVE:
                temperature += 0.05

        temperature += self._live_offset(provider)
        temperature = round(band.clamp(temperature), 4)

        logger.debug(
            f"Temperature for {category.value} (provider={provider.value if provider else None}, "
            f"retry={is_retry}): {temperature}"
        )

        return TemperatureRecommendation(
            value=temperature,
            reasoning=self._reasoning(category, temperature, provider, is_retry, avg),
            confidence=self._confidence(category, provider, is_retry, historical),
            alternatives=self._alternatives(temperature, category),
        )

    def retry_temperature(
        self,
        category: TaskCategory,
        previous: float,
        provider: ProviderId | None = None,
        performance_score: float | None = None,
        failure_patterns: list[str] | None = None,
    ) -> TemperatureRecommendation:
        """
        Heavier retry adjustment driven by the previous attempt's score.

        Used for the last-resort self-hosted attempt.
        """
        band = self.bands[category]
        temperature = previous

        if performance_score is None:
            temperature += band.retry_delta
        elif performance_score < 30:
            temperature = max(band.min, previous - 0.15)
        elif performance_score < 50:
            temperature = max(band.min, previous - 0.10)
        elif performance_score < 70:
            temperature += band.retry_delta
        elif performance_score > 90:
            temperature += 0.02

        patterns = failure_patterns or []
        if "too_random" in patterns:
            temperature -= 0.05
        elif "too_deterministic" in patterns:
            temperature += 0.05

        temperature += self._live_offset(provider)
        temperature = round(band.clamp(temperature), 4)

        context = f" (previous score: {performance_score:g})" if performance_score is not None else ""
        return TemperatureRecommendation(
            value=temperature,
            reasoning=(
                f"Retry temperature adjustment for {category.label} task "
                f"(previous: {previous:.2f}, new: {temperature:.2f}){context}"
            ),
            confidence=RETRY_CONFIDENCE,
            alternatives=self._alternatives(temperature, category),
        )

    def _live_offset(self, provider: ProviderId | None) -> float:
        if provider is None:
            return 0.0
        return self.live_offsets.get(provider, 0.0)

    def _confidence(
        self,
        category: TaskCategory,
        provider: ProviderId | None,
        is_retry: bool,
        historical: HistoricalSignal | None,
    ) -> float:
        confidence = 0.8
        if category in WELL_UNDERSTOOD:
            confidence += 0.1
        if category in SUBJECTIVE:
            confidence -= 0.1
        if provider is not None and provider in self.bands[category].provider_offsets:
            confidence += 0.05
        if historical and len(historical.recent_scores) >= 3:
            confidence += 0.05
        if is_retry:
            confidence -= 0.1
        return round(max(0.5, min(0.95, confidence)), 4)

    def _alternatives(self, value: float, category: TaskCategory) -> list[float]:
        """Two or three nearby temperatures inside the band."""
        band = self.bands[category]
        step = (band.max - band.min) / 4

        alternatives: list[float] = []
        for i in range(1, 4):
            alt = round(value + i * step, 2)
            if band.contains(alt):
                alternatives.append(alt)

        if len(alternatives) < 2:
            for alt in (round(band.base, 2), round(band.base + 0.1, 2)):
                if alt not in alternatives:
                    alternatives.append(alt)

        return alternatives[:3]

    def _reasoning(
        self,
        category: TaskCategory,
        temperature: float,
        provider: ProviderId | None,
        is_retry: bool,
        historical_average: float | None,
    ) -> str:
        band = self.bands[category]
        retry_text = " (retry adjustment)" if is_retry else ""
        reasoning = f"Temperature {temperature:.2f} for {category.label} task{retry_text}. "

        if historical_average is not None:
            if historical_average < 60:
                reasoning += "Increased slightly due to recent performance challenges. "
            elif historical_average > 85:
                reasoning += "Optimized based on excellent recent performance. "

        reasoning += band.note

        offset = band.provider_offsets.get(provider, 0.0) if provider else 0.0
        if offset:
            direction = "increased" if offset > 0 else "decreased"
            reasoning += f" {abs(offset):.2f} {direction} for {provider.value} provider characteristics."

        return reasoning
