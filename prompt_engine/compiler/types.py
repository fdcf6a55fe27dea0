"""Templates, compiler options and preview results."""

from enum import StrEnum
from typing import Any

from pydantic import Field

from prompt_engine._base import EngineModel
from prompt_engine.compression.types import CompressionResult
from prompt_engine.slots.types import SlotDefinition


class PromptTemplate(EngineModel):
    """Template text with ``{{slot_id}}`` placeholders and the slots that fill them."""

    id: str
    name: str = ""
    description: str = ""
    category: str = ""
    base_prompt: str
    slots: tuple[SlotDefinition, ...] = ()

    def slot(self, slot_id: str) -> SlotDefinition | None:
        return next((slot for slot in self.slots if slot.id == slot_id), None)


class CompilerOptions(EngineModel):
    """Options of one ``compile`` call.

    Attributes:
        strict_mode: Abort on validation violations and unhandled slot failures instead
            of reporting them as issues.
        validate_slots: Check required slots and caller values before resolving.
        optimize_output: Read and write the compiled-output cache.
        include_debug_info: Attach resolved values, injection order and cache key to the result.
    """

    strict_mode: bool = True
    validate_slots: bool = True
    optimize_output: bool = True
    include_debug_info: bool = False


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TokenUsage(EngineModel):
    prompt: int
    completion: int = 0
    total: int
    percentage: float


class CostEstimate(EngineModel):
    input: float
    output: float = 0.0
    total: float
    currency: str = "USD"


class TimeBreakdown(EngineModel):
    """Wall-clock milliseconds spent per compile phase."""

    compilation: float
    injection: float
    compression: float
    total: float


class QualityScores(EngineModel):
    clarity: float
    relevance: float
    completeness: float
    overall: float


class PerformanceMetrics(EngineModel):
    token_usage: TokenUsage
    cost: CostEstimate
    time: TimeBreakdown
    quality: QualityScores


# ---------------------------------------------------------------------------
# Suggestions and issues
# ---------------------------------------------------------------------------


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SuggestionType(StrEnum):
    PERFORMANCE = "performance"
    COST = "cost"
    QUALITY = "quality"
    SECURITY = "security"


class ActionType(StrEnum):
    AUTO = "auto"
    MANUAL = "manual"


class SuggestionImpact(EngineModel):
    token_saving: float | None = None
    cost_saving: float | None = None
    quality_improvement: float | None = None


class SuggestionAction(EngineModel):
    """``auto`` actions are machine-applicable; ``manual`` ones are instructions for a person.

    The compiler never applies either.
    """

    type: ActionType
    instruction: str
    code: str | None = None


class OptimizationSuggestion(EngineModel):
    id: str
    type: SuggestionType
    priority: Severity
    title: str
    description: str
    impact: SuggestionImpact = Field(default_factory=SuggestionImpact)
    action: SuggestionAction


class IssueType(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class IssueCode(StrEnum):
    UNREPLACED_PLACEHOLDERS = "unreplaced-placeholders"
    EMPTY_PROMPT = "empty-prompt"
    PROMPT_TOO_LONG = "prompt-too-long"
    COMPRESSION_FAILED = "compression-failed"
    SLOT_SKIPPED = "slot-skipped"
    SLOT_FALLBACK = "slot-fallback"
    SLOT_FAILED = "slot-failed"
    VALIDATION_FAILED = "validation-failed"


class IssueLocation(EngineModel):
    slot_id: str | None = None
    line: int | None = None
    column: int | None = None


class Issue(EngineModel):
    """Non-blocking problem found while compiling. Never raised."""

    id: str
    type: IssueType
    severity: Severity
    message: str
    location: IssueLocation | None = None
    suggestion: str | None = None


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


class PreviewResult(EngineModel):
    """Compiled prompt plus estimates and diagnostics.

    ``from_cache`` is True when resolution, substitution and compression were
    short-circuited by the compiled-output cache.
    """

    compiled_prompt: str
    token_count: int
    estimated_cost: float
    estimated_response_time: float
    quality_score: float
    metrics: PerformanceMetrics
    suggestions: tuple[OptimizationSuggestion, ...] = ()
    issues: tuple[Issue, ...] = ()
    compression: CompressionResult | None = None
    debug_info: dict[str, Any] | None = None
    from_cache: bool = False

    def issues_with(self, code: IssueCode) -> list[Issue]:
        return [issue for issue in self.issues if issue.id == code]


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
    "PromptTemplate",
    "QualityScores",
    "Severity",
    "SuggestionAction",
    "SuggestionImpact",
    "SuggestionType",
    "TimeBreakdown",
    "TokenUsage",
]
