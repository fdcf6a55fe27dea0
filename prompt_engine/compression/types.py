"""Compression strategies, options and results."""

from dataclasses import dataclass
from enum import StrEnum

from pydantic import AliasChoices, Field

from prompt_engine._base import EngineModel


class CompressionAlgorithm(StrEnum):
    SEMANTIC = "semantic"
    SYNTACTIC = "syntactic"
    HYBRID = "hybrid"


class CompressionRuleType(StrEnum):
    """Declared rule kinds.

    Only ``remove`` and ``replace`` rewrite text. ``merge`` and ``summarize`` are
    accepted in configuration but have no implementation; they never appear in
    ``CompressionResult.applied_rules``.
    """

    REMOVE = "remove"
    REPLACE = "replace"
    MERGE = "merge"
    SUMMARIZE = "summarize"


class CompressionRule(EngineModel):
    """Regex rewrite applied by the syntactic pass, ordered by descending ``priority``."""

    id: str
    type: CompressionRuleType
    pattern: str
    replacement: str = ""
    priority: int = 0
    enabled: bool = True


class CompressionConfig(EngineModel):
    """Targets of one strategy.

    ``max_tokens`` is carried through configuration exchange only; the engine sizes
    its output by ``compression_ratio``.
    """

    max_tokens: int | None = None
    compression_ratio: float = Field(default=0.7, gt=0, le=1)
    quality_threshold: float = Field(default=0.8, ge=0, le=1)
    preserve_keywords: tuple[str, ...] = ()
    preserve_structure: bool = True


class AdaptiveConfig(EngineModel):
    """Adaptive retry settings.

    ``learning_rate`` scales how far a failed pass relaxes its target ratio toward 1.0.
    ``feedback_loop`` and ``min_samples`` are kept for configuration exchange and do not
    change how the engine compresses or reports trends.
    """

    enabled: bool = False
    learning_rate: float = Field(default=0.5, ge=0, le=1)
    feedback_loop: bool = False
    min_samples: int = 5


class CompressionStrategy(EngineModel):
    id: str = "default"
    name: str = ""
    algorithm: CompressionAlgorithm = CompressionAlgorithm.HYBRID
    config: CompressionConfig = Field(default_factory=CompressionConfig)
    rules: tuple[CompressionRule, ...] = ()
    adaptive: AdaptiveConfig = Field(default_factory=AdaptiveConfig)


class CompressionOptions(EngineModel):
    preserve_structure: bool = True
    preserve_keywords: tuple[str, ...] = ()
    target_ratio: float = Field(default=0.7, gt=0, le=1)
    quality_threshold: float = Field(default=0.8, ge=0, le=1)

    @classmethod
    def from_strategy(cls, strategy: CompressionStrategy) -> "CompressionOptions":
        return cls(
            preserve_structure=strategy.config.preserve_structure,
            target_ratio=strategy.config.compression_ratio,
            quality_threshold=strategy.config.quality_threshold,
        )


class CompressionMetrics(EngineModel):
    processing_time_ms: float = Field(default=0.0, validation_alias=AliasChoices("processingTimeMs", "processing_time_ms", "processingTime"))
    confidence: float = 0.0


class CompressionResult(EngineModel):
    """Outcome of one ``compress`` call.

    ``compression_ratio`` is always ``len(compressed_text) / len(original_text)``
    (1.0 for empty input). ``adaptive_retry`` is True when the adaptive second pass
    ran; its output is kept only if it compresses no harder than the first pass.
    """

    original_text: str
    compressed_text: str
    compression_ratio: float
    quality_score: float
    token_saved: int
    preserved_keywords: tuple[str, ...] = ()
    applied_rules: tuple[str, ...] = ()
    metrics: CompressionMetrics = Field(default_factory=CompressionMetrics)
    adaptive_retry: bool = False


class LearningTrend(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class LearningStats(EngineModel):
    total_compressions: int
    avg_compression_ratio: float
    avg_quality_score: float
    trend: LearningTrend


# ---------------------------------------------------------------------------
# Analysis records (internal to one compress call)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TextAnalysis:
    sentences: tuple[str, ...]
    paragraphs: tuple[str, ...]
    keywords: tuple[str, ...]
    complexity: float

    @property
    def structure(self) -> str:
        if self.complexity > 0.7:
            return "complex"
        if self.complexity > 0.4:
            return "medium"
        return "simple"


@dataclass(frozen=True, slots=True)
class KeyInformation:
    keywords: tuple[str, ...]
    key_phrases: tuple[str, ...] = ()
    important_sentences: tuple[str, ...] = ()
    entities: tuple[str, ...] = ()


__all__ = [
    "AdaptiveConfig",
    "CompressionAlgorithm",
    "CompressionConfig",
    "CompressionMetrics",
    "CompressionOptions",
    "CompressionResult",
    "CompressionRule",
    "CompressionRuleType",
    "CompressionStrategy",
    "KeyInformation",
    "LearningStats",
    "LearningTrend",
    "TextAnalysis",
]
