"""Text compression engine."""

from .engine import CompressionEngine, relaxed_ratio
from .history import LearningHistory
from .quality import QualityBreakdown, assess_quality
from .types import (
    AdaptiveConfig,
    CompressionAlgorithm,
    CompressionConfig,
    CompressionMetrics,
    CompressionOptions,
    CompressionResult,
    CompressionRule,
    CompressionRuleType,
    CompressionStrategy,
    LearningStats,
    LearningTrend,
)

__all__ = [
    "AdaptiveConfig",
    "CompressionAlgorithm",
    "CompressionConfig",
    "CompressionEngine",
    "CompressionMetrics",
    "CompressionOptions",
    "CompressionResult",
    "CompressionRule",
    "CompressionRuleType",
    "CompressionStrategy",
    "LearningHistory",
    "LearningStats",
    "LearningTrend",
    "QualityBreakdown",
    "assess_quality",
    "relaxed_ratio",
]
