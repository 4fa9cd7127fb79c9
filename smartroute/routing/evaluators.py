"""
Quality evaluators.

One strategy per task category, all sharing the signature
``(response_text) -> score`` with score in [0, 100]. The heuristics are
intentionally simple string checks; a model-graded evaluator can replace any
entry in ``QUALITY_EVALUATORS`` without touching the scorer or the router.
"""

import json
import re
from functools import partial
from typing import Callable, Mapping
from types import MappingProxyType

from smartroute.routing.types import TaskCategory

QualityEvaluator = Callable[[str], float]


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


def _count_present(text: str, words: tuple[str, ...]) -> int:
    return sum(1 for word in words if word in text)


def evaluate_json(response: str) -> float:
    """Valid JSON scores 95, brace-shaped but broken 70, anything else 30."""
    try:
        json.loads(response)
        return 95.0
    except (ValueError, TypeError):
        stripped = response.strip()
        if stripped.startswith("{") and stripped.endswith("}"):
            return 70.0
        return 30.0


def evaluate_code(response: str) -> float:
    score = 50.0
    if any(kw in response for kw in ("function", "class", "import", "def ")):
        score += 20
    if abs(response.count("{") - response.count("}")) <= 1:
        score += 15
    if any(kw in response for kw in ("try", "catch", "except", "error")):
        score += 10
    return min(100.0, score)


_CALCULATION_RE = re.compile(r"\d+\s*[+\-×÷=*/]\s*\d+")


def evaluate_math(response: str) -> float:
    score = 50.0
    if any(op in response for op in ("=", "×", "÷")):
        score += 20
    if any(word in response.lower() for word in ("therefore", "thus", "hence")):
        score += 15
    if _CALCULATION_RE.search(response):
        score += 15
    return min(100.0, score)


def evaluate_tool_call(response: str) -> float:
    score = 50.0
    if any(verb in response for verb in ("GET", "POST", "PUT", "PATCH", "DELETE")):
        score += 20
    lowered = response.lower()
    if any(word in lowered for word in ("endpoint", "url", "api")):
        score += 15
    if any(word in lowered for word in ("headers", "parameters", "params")):
        score += 10
    return min(100.0, score)


CONCERNING_TERMS = ("hack", "exploit", "illegal", "dangerous", "harmful")
SAFETY_TERMS = ("ethical", "responsible", "safe")


def evaluate_safety(response: str) -> float:
    """Start at 80, minus 30 per concerning term, plus 10 for safety-conscious language."""
    lowered = response.lower()
    score = 80.0 - 30 * _count_present(lowered, CONCERNING_TERMS)
    if any(term in lowered for term in SAFETY_TERMS):
        score += 10
    return _clamp(score)


ENGAGEMENT_WORDS = ("imagine", "picture", "feel", "experience", "wonder", "beautiful", "amazing")
FLOW_WORDS = ("however", "therefore", "moreover", "furthermore", "in addition", "consequently")
GENERIC_PHRASES = ("in conclusion", "to summarize", "in summary", "let me tell you")


def evaluate_creative(response: str) -> float:
    lowered = response.lower()
    score = 60.0

    word_count = len(response.split())
    if 50 < word_count < 500:
        score += 10
    elif word_count > 1000:
        score -= 10

    score += min(20, 2 * _count_present(lowered, ENGAGEMENT_WORDS))
    score += min(15, 3 * _count_present(lowered, FLOW_WORDS))
    score -= min(20, 5 * _count_present(lowered, GENERIC_PHRASES))
    return _clamp(score)


LOGIC_CONNECTORS = ("because", "therefore", "thus", "hence", "consequently", "accordingly")
STRUCTURE_WORDS = ("first", "second", "third", "next", "finally", "step", "stage")
EVIDENCE_WORDS = ("evidence", "data", "research", "study", "analysis", "based on")
FALLACY_WORDS = ("always", "never", "everyone knows", "obviously")


def evaluate_reasoning(response: str) -> float:
    lowered = response.lower()
    score = 50.0

    word_count = len(response.split())
    if 300 < word_count < 1500:
        score += 15

    score += min(25, 2 * _count_present(lowered, LOGIC_CONNECTORS))
    score += min(20, 3 * _count_present(lowered, STRUCTURE_WORDS))
    score += min(20, 4 * _count_present(lowered, EVIDENCE_WORDS))
    score -= min(15, 3 * _count_present(lowered, FALLACY_WORDS))
    return _clamp(score)


RELEVANCE_KEYWORDS: Mapping[TaskCategory, tuple[str, ...]] = MappingProxyType({
    TaskCategory.STRUCTURED_OUTPUT: ("json", "schema", "structure", "format"),
    TaskCategory.CODE_GENERATION: ("function", "class", "code", "syntax", "import"),
    TaskCategory.CREATIVE_WRITING: ("story", "imagine", "feel", "beautiful", "amazing"),
    TaskCategory.COMPLEX_REASONING: ("because", "therefore", "analysis", "reason", "logic"),
    TaskCategory.TOOL_EXECUTION: ("api", "endpoint", "request", "response", "call"),
    TaskCategory.DATA_ANALYSIS: ("data", "analysis", "insights", "metrics", "trend"),
    TaskCategory.MATH_REASONING: ("calculate", "equation", "solve", "result", "proof"),
    TaskCategory.CONVERSATIONAL: ("hello", "thank", "please", "help", "understand"),
    TaskCategory.REALTIME_INFO: ("today", "current", "latest", "recent", "now"),
    TaskCategory.MULTIMODAL: ("image", "video", "audio", "visual", "content"),
    TaskCategory.SAFETY_CRITICAL: ("safe", "secure", "private", "ethical", "responsible"),
    TaskCategory.COST_OPTIMIZED: ("efficient", "budget", "cost", "optimize", "save"),
})


def evaluate_general(response: str, category: TaskCategory) -> float:
    """Length, coherence and keyword relevance."""
    score = 70.0
    length = len(response)

    if category is TaskCategory.CONVERSATIONAL and length > 1000:
        score -= 10
    if category is TaskCategory.COMPLEX_REASONING and length < 500:
        score -= 15

    # A lone question with no sentence is likely an incomplete answer
    if "?" in response and "." not in response:
        score -= 10

    lowered = response.lower()
    score += min(10, 2 * _count_present(lowered, RELEVANCE_KEYWORDS[category]))
    return _clamp(score)


def _general(category: TaskCategory) -> QualityEvaluator:
    return partial(evaluate_general, category=category)


QUALITY_EVALUATORS: Mapping[TaskCategory, QualityEvaluator] = MappingProxyType({
    TaskCategory.STRUCTURED_OUTPUT: evaluate_json,
    TaskCategory.CODE_GENERATION: evaluate_code,
    TaskCategory.CREATIVE_WRITING: evaluate_creative,
    TaskCategory.COMPLEX_REASONING: evaluate_reasoning,
    TaskCategory.TOOL_EXECUTION: evaluate_tool_call,
    TaskCategory.DATA_ANALYSIS: _general(TaskCategory.DATA_ANALYSIS),
    TaskCategory.MATH_REASONING: evaluate_math,
    TaskCategory.CONVERSATIONAL: _general(TaskCategory.CONVERSATIONAL),
    TaskCategory.REALTIME_INFO: _general(TaskCategory.REALTIME_INFO),
    TaskCategory.MULTIMODAL: _general(TaskCategory.MULTIMODAL),
    TaskCategory.SAFETY_CRITICAL: evaluate_safety,
    TaskCategory.COST_OPTIMIZED: _general(TaskCategory.COST_OPTIMIZED),
})


# (threshold, text) pairs, highest first; the first threshold below the score wins.
_QUALITY_NOTES: Mapping[TaskCategory, tuple[tuple[float, str], ...]] = MappingProxyType({
    TaskCategory.STRUCTURED_OUTPUT: (
        (90, "Perfectly valid JSON with optimal structure and formatting"),
        (60, "JSON is parseable but has structural issues"),
        (40, "JSON has syntax errors but basic structure is recognizable"),
        (-1, "Severe JSON formatting issues detected"),
    ),
    TaskCategory.CODE_GENERATION: (
        (80, "High-quality code with correct syntax and good structure"),
        (60, "Code runs but has syntax issues or poor practices"),
        (40, "Code has significant syntax errors or logic flaws"),
        (-1, "Code has critical syntax errors and logic problems"),
    ),
    TaskCategory.MATH_REASONING: (
        (80, "Mathematically correct with good explanation"),
        (60, "Mostly correct but has calculation or reasoning errors"),
        (40, "Has mathematical errors or unclear reasoning"),
        (-1, "Significant mathematical errors or complete lack of reasoning"),
    ),
    TaskCategory.TOOL_EXECUTION: (
        (80, "Well-formed API call with proper structure"),
        (60, "API call works but has formatting issues"),
        (40, "API call has structural problems"),
        (-1, "API call format is incorrect or incomplete"),
    ),
    TaskCategory.SAFETY_CRITICAL: (
        (80, "Safe response with good ethical considerations"),
        (60, "Some safety concerns present"),
        (-1, "Significant safety or ethical issues detected"),
    ),
    TaskCategory.CREATIVE_WRITING: (
        (80, "Highly creative with good engagement and flow"),
        (60, "Some creative elements but lacks engagement"),
        (40, "Limited creativity and engagement"),
        (-1, "Lacks creativity and engagement significantly"),
    ),
    TaskCategory.COMPLEX_REASONING: (
        (80, "Excellent reasoning with good logical flow"),
        (60, "Basic reasoning present but could be more thorough"),
        (40, "Weak reasoning with logical gaps"),
        (-1, "Poor reasoning with significant logical flaws"),
    ),
})


def describe_quality(category: TaskCategory, score: float) -> str:
    """Human-readable note for a quality score."""
    notes = _QUALITY_NOTES.get(category)
    if notes is None:
        if score > 70:
            return f"Good {category.label} response with solid relevance"
        if score > 50:
            return f"Basic {category.label} response with some relevance issues"
        return f"Poor {category.label} response with low relevance"

    for threshold, text in notes:
        if score > threshold:
            return text
    return notes[-1][1]
