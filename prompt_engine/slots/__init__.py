"""Slot definitions and the slot value resolver."""

from .conditions import compare, first_match, matches
from .expression import evaluate
from .graph import build_adjacency, find_cycle, topological_order
from .resolver import SlotResolver, normalize_values
from .sources import SYSTEM_SLOT_IDS, ApiFetcher
from .transform import apply_transformation, rule_violations, validate_value
from .types import (
    DEFAULT_PRIORITY,
    ApiSource,
    CachingConfig,
    ComputedSource,
    ConditionOperator,
    ConditionRule,
    DataSource,
    ErrorHandling,
    ErrorStrategy,
    ExternalSource,
    InjectionStrategy,
    InjectionTiming,
    PerformanceConfig,
    ResolvedSlotMap,
    ResolverOptions,
    ResponseExtraction,
    SlotDefinition,
    SlotFailure,
    SlotKind,
    SlotOrder,
    SlotOutcome,
    StaticSource,
    Transformation,
    TransformationRule,
    TransformationType,
    ValidationRule,
    ValidationRuleType,
)

__all__ = [
    "DEFAULT_PRIORITY",
    "SYSTEM_SLOT_IDS",
    "ApiFetcher",
    "ApiSource",
    "CachingConfig",
    "ComputedSource",
    "ConditionOperator",
    "ConditionRule",
    "DataSource",
    "ErrorHandling",
    "ErrorStrategy",
    "ExternalSource",
    "InjectionStrategy",
    "InjectionTiming",
    "PerformanceConfig",
    "ResolvedSlotMap",
    "ResolverOptions",
    "ResponseExtraction",
    "SlotDefinition",
    "SlotFailure",
    "SlotKind",
    "SlotOrder",
    "SlotOutcome",
    "SlotResolver",
    "StaticSource",
    "Transformation",
    "TransformationRule",
    "TransformationType",
    "ValidationRule",
    "ValidationRuleType",
    "apply_transformation",
    "build_adjacency",
    "compare",
    "evaluate",
    "find_cycle",
    "first_match",
    "matches",
    "normalize_values",
    "rule_violations",
    "topological_order",
    "validate_value",
]
