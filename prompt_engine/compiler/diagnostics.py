"""Optimization suggestions and issue detection for compiled prompts.

Both are advisory: nothing here raises or changes the compiled text.
"""

from collections.abc import Iterable

from prompt_engine.compression.types import CompressionResult, CompressionStrategy
from prompt_engine.exceptions import PromptEngineError
from prompt_engine.settings import EngineSettings
from prompt_engine.slots.types import SlotFailure, SlotOutcome

from .metrics import PLACEHOLDER_RE
from .types import (
    ActionType,
    Issue,
    IssueCode,
    IssueLocation,
    IssueType,
    OptimizationSuggestion,
    PerformanceMetrics,
    Severity,
    SuggestionAction,
    SuggestionImpact,
    SuggestionType,
)

TOKEN_SAVING_ESTIMATE = 0.3


def generate_suggestions(
    metrics: PerformanceMetrics,
    engine_settings: EngineSettings,
    compression: CompressionResult | None = None,
    compression_strategy: CompressionStrategy | None = None,
) -> list[OptimizationSuggestion]:
    """Suggestions for thresholds crossed by ``metrics`` and the compression outcome."""
    suggestions: list[OptimizationSuggestion] = []
    tokens = metrics.token_usage.total

    if tokens > engine_settings.token_high_water_mark:
        suggestions.append(
            OptimizationSuggestion(
                id="token-optimization",
                type=SuggestionType.COST,
                priority=Severity.HIGH,
                title="High token usage",
                description=f"The prompt uses {tokens} tokens; enable compression or trim the template",
                impact=SuggestionImpact(token_saving=tokens * TOKEN_SAVING_ESTIMATE, cost_saving=metrics.cost.total * TOKEN_SAVING_ESTIMATE),
                action=SuggestionAction(
                    type=ActionType.AUTO,
                    instruction="Compile with a compression strategy",
                    code=f"compressionStrategy.config.compressionRatio = {1 - TOKEN_SAVING_ESTIMATE:.1f}",
                ),
            )
        )

    if metrics.quality.overall < engine_settings.quality_floor:
        suggestions.append(
            OptimizationSuggestion(
                id="quality-improvement",
                type=SuggestionType.QUALITY,
                priority=Severity.MEDIUM,
                title="Prompt quality can be improved",
                description="Add more specific instructions and examples",
                impact=SuggestionImpact(quality_improvement=0.2),
                action=SuggestionAction(type=ActionType.MANUAL, instruction="Add concrete examples and detailed instructions to the template"),
            )
        )

    if metrics.time.total > engine_settings.slow_compilation_ms:
        suggestions.append(
            OptimizationSuggestion(
                id="performance-optimization",
                type=SuggestionType.PERFORMANCE,
                priority=Severity.LOW,
                title="Slow compilation",
                description=f"Compilation took {metrics.time.total:.0f}ms; caching or parallel resolution would help",
                action=SuggestionAction(type=ActionType.AUTO, instruction="Enable compilation caching"),
            )
        )

    if compression is not None and compression_strategy is not None and compression.quality_score < compression_strategy.config.quality_threshold:
        suggestions.append(
            OptimizationSuggestion(
                id="compression-quality",
                type=SuggestionType.QUALITY,
                priority=Severity.MEDIUM,
                title="Compression lowered quality",
                description=(
                    f"Compression quality {compression.quality_score:.2f} is below the strategy threshold "
                    f"{compression_strategy.config.quality_threshold:.2f}"
                ),
                action=SuggestionAction(type=ActionType.MANUAL, instruction="Raise compressionRatio or enable adaptive compression"),
            )
        )

    return suggestions


def failure_issues(failures: Iterable[SlotFailure]) -> list[Issue]:
    """One issue per failed slot, describing how it was recovered."""
    issues: list[Issue] = []
    for failure in failures:
        location = IssueLocation(slot_id=failure.slot_id)
        match failure.outcome:
            case SlotOutcome.FALLBACK:
                issues.append(
                    Issue(
                        id=IssueCode.SLOT_FALLBACK,
                        type=IssueType.INFO,
                        severity=Severity.LOW,
                        message=f"Slot '{failure.slot_id}' used its '{failure.strategy}' fallback: {failure.error}",
                        location=location,
                    )
                )
            case SlotOutcome.SKIPPED:
                issues.append(
                    Issue(
                        id=IssueCode.SLOT_SKIPPED,
                        type=IssueType.WARNING,
                        severity=Severity.MEDIUM,
                        message=f"Slot '{failure.slot_id}' was skipped and its placeholder left in place: {failure.error}",
                        location=location,
                        suggestion="Provide a value or switch the slot to the fallback strategy",
                    )
                )
            case SlotOutcome.UNHANDLED:
                issues.append(
                    Issue(
                        id=IssueCode.SLOT_FAILED,
                        type=IssueType.WARNING,
                        severity=Severity.HIGH,
                        message=f"Slot '{failure.slot_id}' failed: {failure.error}",
                        location=location,
                        suggestion="Configure errorHandling for the slot",
                    )
                )
    return issues


def validation_issues(violations: Iterable[tuple[str, str]]) -> list[Issue]:
    """Issues for ``(slot_id, message)`` validation violations found outside strict mode."""
    return [
        Issue(
            id=IssueCode.VALIDATION_FAILED,
            type=IssueType.WARNING,
            severity=Severity.HIGH,
            message=message,
            location=IssueLocation(slot_id=slot_id),
            suggestion="Check the slot's value against its validation rules",
        )
        for slot_id, message in violations
    ]


def compression_issue(error: PromptEngineError | ValueError) -> Issue:
    return Issue(
        id=IssueCode.COMPRESSION_FAILED,
        type=IssueType.WARNING,
        severity=Severity.MEDIUM,
        message=f"Compression failed, the uncompressed prompt was used: {error}",
        suggestion="Check the compression strategy's rules",
    )


def detect_issues(text: str, engine_settings: EngineSettings) -> list[Issue]:
    """Unreplaced placeholders, empty output and oversized output."""
    issues: list[Issue] = []

    placeholders = PLACEHOLDER_RE.findall(text)
    if placeholders:
        names = ", ".join(dict.fromkeys(placeholders))
        issues.append(
            Issue(
                id=IssueCode.UNREPLACED_PLACEHOLDERS,
                type=IssueType.WARNING,
                severity=Severity.MEDIUM,
                message=f"Found {len(placeholders)} unreplaced placeholder(s): {names}",
                suggestion="Check the slot configuration and values",
            )
        )

    if not text.strip():
        issues.append(
            Issue(
                id=IssueCode.EMPTY_PROMPT,
                type=IssueType.ERROR,
                severity=Severity.CRITICAL,
                message="The compiled prompt is empty",
                suggestion="Check the template text and slot values",
            )
        )

    if len(text) > engine_settings.max_prompt_chars:
        issues.append(
            Issue(
                id=IssueCode.PROMPT_TOO_LONG,
                type=IssueType.WARNING,
                severity=Severity.HIGH,
                message=f"The compiled prompt is {len(text)} characters, above the {engine_settings.max_prompt_chars} limit",
                suggestion="Enable compression or shorten the template",
            )
        )

    return issues


__all__ = ["compression_issue", "detect_issues", "failure_issues", "generate_suggestions", "validation_issues"]
