"""
Task classifier for score-driven routing.

Classifies an incoming request into one of the task categories.
Combines four independently weighted signal sources:
1. Keyword hits (0.4)
2. Phrase pattern hits (0.3)
3. Node type hint supplied by the caller (0.2)
4. Execution context heuristics (0.1)

Pure and deterministic: no I/O, no LLM calls.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from smartroute.routing.types import ClassificationResult, TaskCategory


@dataclass(frozen=True)
class CategorySignals:
    """Detection vocabulary for one category."""
    keywords: tuple[str, ...]
    node_hints: tuple[str, ...]
    patterns: tuple[str, ...]


# Declaration order matters: ties favor the category summed last.
CATEGORY_SIGNALS: dict[TaskCategory, CategorySignals] = {
    TaskCategory.STRUCTURED_OUTPUT: CategorySignals(
        keywords=(
            "json", "schema", "structured", "format", "parse", "extract",
            "fields", "properties", "validation", "serialize", "deserialize",
        ),
        node_hints=("json", "structured", "schema", "parse"),
        patterns=(r"return.*json", r"structured.*output", r"format.*as.*json"),
    ),
    TaskCategory.CODE_GENERATION: CategorySignals(
        keywords=(
            "code", "function", "class", "script", "programming", "algorithm",
            "syntax", "compile", "debug", "refactor", "implement", "api", "endpoint",
        ),
        node_hints=("code", "programming", "api"),
        patterns=(r"write.*code", r"implement.*function", r"create.*api", r"generate.*script"),
    ),
    TaskCategory.CREATIVE_WRITING: CategorySignals(
        keywords=(
            "write", "story", "creative", "content", "copy", "marketing", "blog",
            "article", "narrative", "description", "persuasive", "engaging", "storytelling",
        ),
        node_hints=("writing", "content", "creative", "marketing"),
        patterns=(r"write.*story", r"create.*content", r"generate.*article", r"write.*copy"),
    ),
    TaskCategory.COMPLEX_REASONING: CategorySignals(
        keywords=(
            "analyze", "reason", "logic", "step-by-step", "evaluate", "compare",
            "decide", "strategy", "planning", "problem-solving", "critical-thinking",
        ),
        node_hints=("reasoning", "analysis", "logic", "planning"),
        patterns=(r"step.*step", r"analyze.*and", r"reason.*through", r"evaluate.*options"),
    ),
    TaskCategory.TOOL_EXECUTION: CategorySignals(
        keywords=(
            "api", "endpoint", "request", "call", "integration", "webhook",
            "http", "rest", "graphql", "fetch", "post", "get", "put", "delete",
        ),
        node_hints=("api", "http", "webhook", "integration"),
        patterns=(r"call.*api", r"make.*request", r"integrate.*with", r"send.*to.*endpoint"),
    ),
    TaskCategory.DATA_ANALYSIS: CategorySignals(
        keywords=(
            "analyze", "data", "statistics", "insights", "metrics", "charts",
            "visualization", "trends", "patterns", "correlation", "dataset",
        ),
        node_hints=("data", "analysis", "statistics", "metrics"),
        patterns=(r"analyze.*data", r"find.*insights", r"visualize.*data", r"calculate.*statistics"),
    ),
    TaskCategory.MATH_REASONING: CategorySignals(
        keywords=(
            "calculate", "math", "equation", "formula", "computation", "solve",
            "algebra", "geometry", "calculus", "probability", "statistics",
        ),
        node_hints=("math", "calculation", "computation"),
        patterns=(r"solve.*equation", r"calculate.*value", r"compute.*result", r"mathematical.*problem"),
    ),
    TaskCategory.CONVERSATIONAL: CategorySignals(
        keywords=(
            "chat", "conversation", "talk", "discuss", "dialogue", "respond",
            "reply", "converse", "communicate", "interaction",
        ),
        node_hints=("chat", "conversation", "dialogue"),
        patterns=(r"chat.*with", r"converse.*about", r"respond.*to", r"continue.*conversation"),
    ),
    TaskCategory.REALTIME_INFO: CategorySignals(
        keywords=(
            "current", "latest", "today", "now", "recent", "breaking", "news",
            "update", "live", "real-time", "trending", "what's happening",
        ),
        node_hints=("news", "current", "real-time"),
        patterns=(r"what.*happening", r"latest.*news", r"current.*events", r"today.*update"),
    ),
    TaskCategory.MULTIMODAL: CategorySignals(
        keywords=(
            "image", "video", "audio", "visual", "media", "picture", "photo",
            "diagram", "chart", "screenshot", "file", "upload", "attachment",
        ),
        node_hints=("image", "video", "audio", "multimodal"),
        patterns=(r"describe.*image", r"analyze.*video", r"process.*audio", r"from.*file"),
    ),
    TaskCategory.SAFETY_CRITICAL: CategorySignals(
        keywords=(
            "safe", "security", "privacy", "sensitive", "confidential", "compliance",
            "regulation", "risk", "safety", "ethical", "responsible", "critical",
        ),
        node_hints=("security", "safety", "compliance"),
        patterns=(r"ensure.*safety", r"comply.*with", r"handle.*sensitive", r"maintain.*privacy"),
    ),
    TaskCategory.COST_OPTIMIZED: CategorySignals(
        keywords=(
            "cheap", "cost", "budget", "efficient", "optimize", "save", "affordable",
            "economic", "low-cost", "budget-friendly", "inexpensive",
        ),
        node_hints=("cost", "budget", "optimize"),
        patterns=(r"keep.*cost.*low", r"budget.*constraint", r"cost.*effective", r"save.*money"),
    ),
}

# Signal source weights
KEYWORD_WEIGHT = 0.4
PATTERN_WEIGHT = 0.3
NODE_TYPE_WEIGHT = 0.2
CONTEXT_WEIGHT = 0.1

DEFAULT_CATEGORY = TaskCategory.COST_OPTIMIZED

# Compiled once at import; the tables above are immutable.
_KEYWORD_RE: dict[TaskCategory, list[tuple[str, re.Pattern]]] = {
    category: [(kw, re.compile(rf"\b{re.escape(kw)}\b", re.IGNORECASE)) for kw in signals.keywords]
    for category, signals in CATEGORY_SIGNALS.items()
}
_PATTERN_RE: dict[TaskCategory, list[re.Pattern]] = {
    category: [re.compile(p, re.IGNORECASE) for p in signals.patterns]
    for category, signals in CATEGORY_SIGNALS.items()
}

_CATEGORY_NOTES: dict[TaskCategory, str] = {
    TaskCategory.STRUCTURED_OUTPUT: "Best handled by OpenAI for precise JSON formatting.",
    TaskCategory.CODE_GENERATION: "Deepseek provides excellent code generation capabilities.",
    TaskCategory.CREATIVE_WRITING: "Claude excels at creative and long-form content.",
    TaskCategory.COMPLEX_REASONING: "GPT-4 class models provide superior reasoning capabilities.",
    TaskCategory.TOOL_EXECUTION: "Gemini offers cost-effective API interaction.",
    TaskCategory.SAFETY_CRITICAL: "Claude provides enhanced safety and ethical reasoning.",
    TaskCategory.COST_OPTIMIZED: "Using most cost-effective available provider.",
}


def _zero_scores() -> dict[TaskCategory, float]:
    return {category: 0.0 for category in CATEGORY_SIGNALS}


def score_keywords(text: str) -> dict[TaskCategory, float]:
    """Each keyword occurrence adds 0.1, capped at 1.0 per category."""
    scores = _zero_scores()
    for category, keywords in _KEYWORD_RE.items():
        hits = sum(len(regex.findall(text)) for _, regex in keywords)
        scores[category] = min(hits * 0.1, 1.0)
    return scores


def score_patterns(text: str) -> dict[TaskCategory, float]:
    """Each matching phrase pattern adds 0.3, capped at 1.0 per category."""
    scores = _zero_scores()
    for category, patterns in _PATTERN_RE.items():
        hits = sum(1 for p in patterns if p.search(text))
        scores[category] = min(hits * 0.3, 1.0)
    return scores


def score_node_type(node_type: str) -> dict[TaskCategory, float]:
    """Score a caller-supplied node type hint such as "tool-based"."""
    scores = _zero_scores()
    lowered = node_type.lower()

    for category, signals in CATEGORY_SIGNALS.items():
        if any(hint in lowered for hint in signals.node_hints):
            scores[category] = 0.4

    if node_type == "tool-based":
        scores[TaskCategory.TOOL_EXECUTION] = max(scores[TaskCategory.TOOL_EXECUTION], 0.5)
    elif node_type == "rag-enabled":
        scores[TaskCategory.REALTIME_INFO] = max(scores[TaskCategory.REALTIME_INFO], 0.3)
        scores[TaskCategory.DATA_ANALYSIS] = max(scores[TaskCategory.DATA_ANALYSIS], 0.3)

    return scores


def score_context(context: dict[str, Any] | None) -> dict[TaskCategory, float]:
    """
    Score execution-context heuristics.

    Recognized keys: ``step_results`` (prior steps), ``variables``,
    ``loop_counters``.
    """
    scores = _zero_scores()
    if not context:
        return scores

    if len(context.get("step_results") or ()) > 5:
        scores[TaskCategory.COMPLEX_REASONING] = 0.2

    if len(context.get("variables") or {}) > 3:
        scores[TaskCategory.STRUCTURED_OUTPUT] = 0.2
        scores[TaskCategory.DATA_ANALYSIS] = 0.2

    if context.get("loop_counters"):
        scores[TaskCategory.TOOL_EXECUTION] = 0.3
        scores[TaskCategory.DATA_ANALYSIS] = max(scores[TaskCategory.DATA_ANALYSIS], 0.2)

    return scores


def combine_scores(
    weighted: list[tuple[dict[TaskCategory, float], float]],
) -> dict[TaskCategory, float]:
    """Weighted sum of several score maps."""
    combined = _zero_scores()
    for scores, weight in weighted:
        for category, score in scores.items():
            combined[category] += score * weight
    return combined


def context_hints(context: dict[str, Any] | None) -> list[str]:
    """Short human-readable notes about the execution context."""
    if not context:
        return []

    hints = []
    steps = context.get("step_results") or ()
    if steps:
        hints.append(f"{len(steps)} previous steps")
    variables = context.get("variables") or {}
    if variables:
        hints.append(f"{len(variables)} variables")
    if context.get("loop_counters"):
        hints.append("loop processing detected")
    errors = context.get("errors") or ()
    if errors:
        hints.append(f"{len(errors)} previous errors")
    return hints


def detected_keywords(category: TaskCategory, text: str, limit: int = 5) -> list[str]:
    """Keywords of ``category`` present in ``text``."""
    found = [kw for kw, regex in _KEYWORD_RE[category] if regex.search(text)]
    return found[:limit]


@dataclass
class TaskClassifier:
    """
    Classifies free text into a TaskCategory.

    The winning category is the arg-max of the combined score; ties favor the
    category declared last, so an all-zero input falls back to cost-optimized.
    """

    default_category: TaskCategory = DEFAULT_CATEGORY
    weights: tuple[float, float, float, float] = field(
        default=(KEYWORD_WEIGHT, PATTERN_WEIGHT, NODE_TYPE_WEIGHT, CONTEXT_WEIGHT)
    )

    def classify(
        self,
        text: str,
        node_type: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> ClassificationResult:
        """
        Classify a request.

        Args:
            text: System prompt and prompt, concatenated.
            node_type: Optional caller hint ("tool-based", "rag-enabled", ...).
            context: Optional execution context.

        Returns:
            ClassificationResult with category and confidence in [0, 1].
        """
        lowered = text.lower()
        node_hint = node_type or "general"
        kw_weight, pattern_weight, node_weight, context_weight = self.weights

        combined = combine_scores([
            (score_keywords(lowered), kw_weight),
            (score_patterns(lowered), pattern_weight),
            (score_node_type(node_hint), node_weight),
            (score_context(context), context_weight),
        ])

        best_category, best_score = self.default_category, 0.0
        for category, score in combined.items():
            if score >= best_score:
                best_category, best_score = category, score

        if best_score == 0.0:
            best_category = self.default_category

        keywords = detected_keywords(best_category, lowered)
        return ClassificationResult(
            category=best_category,
            confidence=min(best_score, 1.0),
            matched_signals=keywords,
            reasoning=self._reasoning(best_category, best_score, keywords),
            node_type=node_hint,
            context_hints=context_hints(context),
        )

    def _reasoning(self, category: TaskCategory, score: float, keywords: list[str]) -> str:
        percent = round(min(score, 1.0) * 100)
        reasoning = f"Detected {category.label} task with {percent}% confidence"
        note = _CATEGORY_NOTES.get(category)
        if note:
            reasoning += f". {note}"
        if keywords:
            reasoning += f" (keywords: {', '.join(keywords)})"
        return reasoning


def classify_task(
    text: str,
    classifier: TaskClassifier | None = None,
    node_type: str | None = None,
    context: dict[str, Any] | None = None,
) -> ClassificationResult:
    """
    Convenience function to classify a request.

    Args:
        text: The request text.
        classifier: Optional classifier instance.
        node_type: Optional node type hint.
        context: Optional execution context.

    Returns:
        ClassificationResult.
    """
    if classifier is None:
        classifier = TaskClassifier()

    return classifier.classify(text, node_type=node_type, context=context)
