"""Prompt compiler: templates in, bounded prompts with telemetry out."""

from .compiler import PromptCompiler, ValidationReport, cache_key, order_slots, substitute, validate_template
from .diagnostics import detect_issues, generate_suggestions
from .metrics import estimate_cost, estimate_response_time, estimate_tokens, quality_scores
from .types import (
    ActionType,
    CompilerOptions,
    CostEstimate,
    Issue,
    IssueCode,
    IssueLocation,
    IssueType,
    OptimizationSuggestion,
    PerformanceMetrics,
    PreviewResult,
    PromptTemplate,
    QualityScores,
    Severity,
    SuggestionAction,
    SuggestionImpact,
    SuggestionType,
    TimeBreakdown,
    TokenUsage,
)

__all__ = [
    "ActionType",
    "CompilerOptions",
    "CostEstimate",
    "Issue",
    "IssueCode",
    "IssueLocation",
    "IssueType",
    "OptimizationSuggestion",
    "PerformanceMetrics",
    "PreviewResult",
    "PromptCompiler",
    "PromptTemplate",
    "QualityScores",
    "Severity",
    "SuggestionAction",
    "SuggestionImpact",
    "SuggestionType",
    "TimeBreakdown",
    "TokenUsage",
    "ValidationReport",
    "cache_key",
    "detect_issues",
    "estimate_cost",
    "estimate_response_time",
    "estimate_tokens",
    "generate_suggestions",
    "order_slots",
    "quality_scores",
    "substitute",
    "validate_template",
]
