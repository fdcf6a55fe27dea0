"""Deterministic size, cost, latency and quality estimates for compiled prompts.

Token counts use the fixed ``ceil(len / 4)`` approximation, not a real tokenizer.
"""

import math
import re

from prompt_engine.settings import EngineSettings

from .types import CostEstimate, PerformanceMetrics, QualityScores, TimeBreakdown, TokenUsage

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

INSTRUCTION_WORDS = (
    "please",
    "you should",
    "you must",
    "you need",
    "ensure",
    "make sure",
    "must",
    "required",
    "provide",
    "explain",
    "describe",
    "write",
    "list",
    "summarize",
    "analyze",
    "generate",
)
GOAL_WORDS = ("goal", "task", "objective", "requirement", "purpose")
GUIDANCE_WORDS = ("step", "how to", "method", "example", "format")

_SENTENCE_RE = re.compile(r"[^.!?。！？\n]+")
_WORD_RE = re.compile(r"[\w']+")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def estimate_cost(tokens: int, engine_settings: EngineSettings) -> float:
    return tokens / 1000 * engine_settings.unit_cost_per_1k_tokens


def estimate_response_time(tokens: int, engine_settings: EngineSettings) -> float:
    """Base latency plus a per-token term, in milliseconds."""
    return engine_settings.base_latency_ms + engine_settings.latency_per_token_ms * tokens


def _contains_any(lowered: str, phrases: tuple[str, ...]) -> bool:
    return any(re.search(rf"\b{re.escape(phrase)}", lowered) for phrase in phrases)


def clarity(text: str) -> float:
    """Short sentences and plain vocabulary score higher."""
    words = _WORD_RE.findall(text)
    if not words:
        return 0.0
    score = 0.6
    sentences = [sentence for sentence in _SENTENCE_RE.findall(text) if sentence.strip()]
    if sentences and len(words) / len(sentences) <= 25:
        score += 0.2
    long_words = sum(1 for word in words if len(word) > 12)
    if long_words / len(words) < 0.1:
        score += 0.2
    return round(min(score, 1.0), 4)


def relevance(text: str) -> float:
    """Instructional wording and varied vocabulary score higher."""
    words = [word.lower() for word in _WORD_RE.findall(text)]
    if not words:
        return 0.0
    score = 0.6
    if _contains_any(text.lower(), INSTRUCTION_WORDS):
        score += 0.2
    if len(set(words)) / len(words) > 0.4:
        score += 0.2
    return round(min(score, 1.0), 4)


def completeness(text: str) -> float:
    """All placeholders resolved, plus a stated goal and concrete guidance."""
    if not text.strip():
        return 0.0
    lowered = text.lower()
    score = 0.5
    if not PLACEHOLDER_RE.search(text):
        score += 0.2
    if _contains_any(lowered, GOAL_WORDS):
        score += 0.15
    if _contains_any(lowered, GUIDANCE_WORDS):
        score += 0.15
    return round(min(score, 1.0), 4)


def quality_scores(text: str) -> QualityScores:
    clarity_score, relevance_score, completeness_score = clarity(text), relevance(text), completeness(text)
    overall = round((clarity_score + relevance_score + completeness_score) / 3, 4)
    return QualityScores(clarity=clarity_score, relevance=relevance_score, completeness=completeness_score, overall=overall)


def calculate_metrics(text: str, *, engine_settings: EngineSettings, compilation_ms: float, injection_ms: float, compression_ms: float) -> PerformanceMetrics:
    tokens = estimate_tokens(text)
    cost = estimate_cost(tokens, engine_settings)
    return PerformanceMetrics(
        token_usage=TokenUsage(prompt=tokens, total=tokens, percentage=tokens / engine_settings.context_window_tokens * 100),
        cost=CostEstimate(input=cost, total=cost),
        time=TimeBreakdown(compilation=compilation_ms, injection=injection_ms, compression=compression_ms, total=compilation_ms),
        quality=quality_scores(text),
    )


__all__ = [
    "PLACEHOLDER_RE",
    "calculate_metrics",
    "clarity",
    "completeness",
    "estimate_cost",
    "estimate_response_time",
    "estimate_tokens",
    "quality_scores",
    "relevance",
]
