"""
Shared types for score-driven provider routing.

Enumerations are closed sets: every table in the routing package is keyed by
them, and the test suite checks that each table covers every member.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class TaskCategory(str, Enum):
    """What kind of request is being made."""
    STRUCTURED_OUTPUT = "structured-output"
    CODE_GENERATION = "code-generation"
    CREATIVE_WRITING = "creative-writing"
    COMPLEX_REASONING = "complex-reasoning"
    TOOL_EXECUTION = "tool-execution"
    DATA_ANALYSIS = "data-analysis"
    MATH_REASONING = "math-reasoning"
    CONVERSATIONAL = "conversational"
    REALTIME_INFO = "realtime-info"
    MULTIMODAL = "multimodal"
    SAFETY_CRITICAL = "safety-critical"
    COST_OPTIMIZED = "cost-optimized"

    @property
    def label(self) -> str:
        """Human readable name ("structured output")."""
        return self.value.replace("-", " ")


class Decision(str, Enum):
    """The scorer's verdict for one attempt."""
    ACCEPT = "ACCEPT"
    RETRY_SELF_HOSTED = "RETRY_SELF_HOSTED"
    FALLBACK_DIRECT_API = "FALLBACK_DIRECT_API"
    FALLBACK_GATEWAY = "FALLBACK_GATEWAY"
    FALLBACK_SELF_HOSTED_TUNED = "FALLBACK_SELF_HOSTED_TUNED"
    FORCE_PREMIUM = "FORCE_PREMIUM"


class ProviderId(str, Enum):
    """Interchangeable chat-completion backends."""
    SELF_HOSTED = "self-hosted"
    GATEWAY = "gateway"
    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"
    GROK = "grok"
    DEEPSEEK = "deepseek"

    @property
    def is_direct_api(self) -> bool:
        return self in DIRECT_API_PROVIDERS


DIRECT_API_PROVIDERS: tuple[ProviderId, ...] = (
    ProviderId.OPENAI,
    ProviderId.GEMINI,
    ProviderId.CLAUDE,
    ProviderId.GROK,
    ProviderId.DEEPSEEK,
)


class UserTier(str, Enum):
    """Caller cost/quality policy class."""
    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class Phase(str, Enum):
    """Orchestrator states; each one produces at most one attempt."""
    SELF_HOSTED = "SELF_HOSTED"
    SELF_HOSTED_RETRY = "SELF_HOSTED_RETRY"
    DIRECT_API = "DIRECT_API"
    GATEWAY = "GATEWAY"
    SELF_HOSTED_FALLBACK = "SELF_HOSTED_FALLBACK"
    EMERGENCY = "EMERGENCY"


@dataclass(frozen=True)
class ScoreFactor:
    """One graded dimension of a response."""
    name: str
    score: float  # 0 to 100
    weight: float  # 0 to 1
    reasoning: str = ""


@dataclass
class ScoreResult:
    """Weighted aggregate of all factors plus the resulting decision."""
    score: int  # 0 to 100
    decision: Decision
    reasoning: str
    factors: list[ScoreFactor] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def factor(self, name: str) -> ScoreFactor | None:
        """Look up a factor by name."""
        for f in self.factors:
            if f.name == name:
                return f
        return None


@dataclass
class ResponseEvaluation:
    """Input to the scorer for a single produced response."""
    response_text: str
    category: TaskCategory
    provider: ProviderId
    temperature: float
    latency_ms: float
    token_count: int | None = None
    error_count: int = 0
    historical_average: float | None = None  # 7-day mean for (provider, category)


@dataclass
class TemperatureRecommendation:
    """Sampling temperature advice for one invocation."""
    value: float
    reasoning: str
    confidence: float  # 0 to 1
    alternatives: list[float] = field(default_factory=list)


@dataclass
class HistoricalSignal:
    """Recent score history used to nudge temperature."""
    recent_scores: list[float] = field(default_factory=list)
    weighted_average: float | None = None  # Reader-supplied; wins over the plain mean

    @property
    def average(self) -> float | None:
        if self.weighted_average is not None:
            return self.weighted_average
        if not self.recent_scores:
            return None
        return sum(self.recent_scores) / len(self.recent_scores)


@dataclass
class ClassificationResult:
    """Result of task classification."""
    category: TaskCategory
    confidence: float  # 0.0 to 1.0
    matched_signals: list[str] = field(default_factory=list)
    reasoning: str = ""
    node_type: str = "general"
    context_hints: list[str] = field(default_factory=list)


@dataclass
class RoutingAttempt:
    """Append-only record of one provider invocation."""
    phase: Phase
    provider_id: ProviderId
    temperature: float
    decision: Decision
    response_text: str | None = None
    latency_ms: float = 0.0
    score: int | None = None
    error: str | None = None
    token_count: int | None = None
    score_result: ScoreResult | None = None
    temperature_recommendation: TemperatureRecommendation | None = None

    @property
    def succeeded(self) -> bool:
        """True when the provider returned a response."""
        return self.response_text is not None and self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "provider": self.provider_id.value,
            "temperature": self.temperature,
            "decision": self.decision.value,
            "latency_ms": round(self.latency_ms, 1),
            "score": self.score,
            "error": self.error,
        }


@dataclass
class RoutingOptions:
    """Per-request routing knobs."""
    task_category: TaskCategory | None = None
    user_specified_temperature: float | None = None
    user_tier: UserTier = UserTier.STANDARD
    force_provider: ProviderId | None = None
    enable_scoring: bool = True
    max_retries: int = 3
    timeout_ms: int | None = None  # per invocation
    deadline_ms: int | None = None  # whole request
    node_type: str | None = None  # classifier hint
    context: dict[str, Any] | None = None  # classifier execution context


@dataclass
class RoutingResult:
    """Terminal artifact returned to the caller of ``route``."""
    model_handle: Any  # providers.base.ModelHandle
    provider_id: ProviderId
    temperature: float
    task_category: TaskCategory
    confidence: float
    routing_path: list[ProviderId]
    temperature_recommendation: TemperatureRecommendation
    score_result: ScoreResult | None = None
    attempts: list[RoutingAttempt] = field(default_factory=list)
    response_text: str | None = None
    classification: ClassificationResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider_id.value,
            "temperature": self.temperature,
            "task_category": self.task_category.value,
            "confidence": self.confidence,
            "routing_path": [p.value for p in self.routing_path],
            "decision": self.score_result.decision.value if self.score_result else None,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class ScoreRecord:
    """One scored invocation, as handed to a score sink."""
    provider: str
    model_name: str
    category: str
    confidence: int
    decision: str
    latency_ms: float
    temperature: float
    token_count: int | None = None
    routing_path: list[str] = field(default_factory=list)
    response_quality: float = 50.0
    token_efficiency: float = 50.0
    error_rate: float = 100.0
    success: bool = True
    is_retry: bool = False
    response_length: int = 0
    execution_id: str | None = None
    node_id: str | None = None
    user_id: str | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def accepted(self) -> bool:
        return self.decision == Decision.ACCEPT.value

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScoreRecord":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
