"""Slot definitions, data sources and injection strategies.

These records are produced by the template/registry collaborator and treated as
read-only input by the resolver. JSON keys are camelCase; ``SlotDefinition.kind``
travels under the key ``type``.
"""

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field

from prompt_engine._base import EngineModel
from prompt_engine.exceptions import PromptEngineError
from prompt_engine.settings import EngineSettings


class SlotKind(StrEnum):
    """Where a slot's value comes from."""

    USER = "user"
    SYSTEM = "system"
    API = "api"
    COMPUTED = "computed"
    CONDITIONAL = "conditional"


class ErrorStrategy(StrEnum):
    """How a failed slot is recovered.

    FALLBACK: substitute ``fallbackValue`` (else ``defaultValue``).
    RETRY: API retries were already spent; fall back to ``defaultValue``.
    ALERT: log an error and substitute ``defaultValue``.
    SKIP: leave the slot out of the resolved map; its placeholder stays in the text.
    """

    FALLBACK = "fallback"
    RETRY = "retry"
    ALERT = "alert"
    SKIP = "skip"


class ConditionOperator(StrEnum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


class ConditionRule(EngineModel):
    """``(field, operator, value) -> outputValue`` rule of a conditional slot."""

    field: str
    operator: ConditionOperator
    value: Any = None
    output_value: Any = None


# ---------------------------------------------------------------------------
# Data sources
# ---------------------------------------------------------------------------


class ResponseExtraction(EngineModel):
    """How to pull a slot value out of an API response.

    ``path`` is a dot path (``data.items.0.name``); ``transform`` is an expression
    evaluated with the response bound to ``data``. ``path`` wins when both are set.
    """

    path: str | None = None
    transform: str | None = None


class StaticSource(EngineModel):
    type: Literal["static"] = "static"
    value: Any = None


class ApiSource(EngineModel):
    type: Literal["api"] = "api"
    endpoint: str
    method: Literal["GET", "POST", "PUT", "DELETE"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    response_extraction: ResponseExtraction | None = None


class ComputedSource(EngineModel):
    """Expression (``computed`` slots) and/or ordered conditions (``conditional`` slots)."""

    type: Literal["computed"] = "computed"
    expression: str | None = Field(default=None, validation_alias=AliasChoices("expression", "formula"), serialization_alias="expression")
    conditions: tuple[ConditionRule, ...] = ()


class ExternalSource(EngineModel):
    """Value owned by a system outside the engine; only its fallback is reachable here."""

    type: Literal["external"] = "external"
    name: str | None = None
    fallback_value: Any = None


DataSource = Annotated[StaticSource | ApiSource | ComputedSource | ExternalSource, Field(discriminator="type")]


# ---------------------------------------------------------------------------
# Validation, transformation, caching, error handling
# ---------------------------------------------------------------------------


class ValidationRuleType(StrEnum):
    REQUIRED = "required"
    TYPE = "type"
    LENGTH = "length"
    PATTERN = "pattern"
    RANGE = "range"
    CUSTOM = "custom"


class ValidationRule(EngineModel):
    """Declared constraint on a resolved value.

    ``value`` depends on ``type``: a ValueKind name for ``type``, a max length for
    ``length``, a regex for ``pattern`` and ``{"min": .., "max": ..}`` for ``range``.
    ``validator`` (``custom`` rules only) is a Python callable and is not exported.
    """

    type: ValidationRuleType
    value: Any = None
    message: str = ""
    validator: Callable[[Any], bool] | None = Field(default=None, exclude=True)


class TransformationType(StrEnum):
    FORMAT = "format"
    FILTER = "filter"
    MAP = "map"


class TransformationRule(EngineModel):
    type: str
    config: dict[str, Any] = Field(default_factory=dict)
    order: int = 0


class Transformation(EngineModel):
    type: TransformationType
    rules: tuple[TransformationRule, ...] = ()


class CachingConfig(EngineModel):
    enabled: bool = False
    ttl_seconds: float = Field(default=60.0, validation_alias=AliasChoices("ttlSeconds", "ttl_seconds", "ttl"), serialization_alias="ttlSeconds")
    key: str | None = None


class ErrorHandling(EngineModel):
    strategy: ErrorStrategy
    fallback_value: Any = None
    retry_count: int | None = None
    alert_channel: str | None = None


class SlotDefinition(EngineModel):
    """A named, typed placeholder whose value is determined at compile time.

    The placeholder token in template text is ``{{<id>}}``.
    """

    id: str
    name: str = ""
    kind: SlotKind = Field(default=SlotKind.USER, validation_alias=AliasChoices("type", "kind"), serialization_alias="type")
    description: str = ""
    required: bool = False
    default_value: Any = None
    data_source: DataSource | None = None
    validation: tuple[ValidationRule, ...] = Field(default=(), validation_alias=AliasChoices("validation", "validationRules"), serialization_alias="validation")
    dependencies: tuple[str, ...] = ()
    caching: CachingConfig | None = None
    transformation: Transformation | None = None
    error_handling: ErrorHandling | None = None

    @property
    def label(self) -> str:
        return self.name or self.id

    @property
    def placeholder(self) -> str:
        return "{{" + self.id + "}}"

    @property
    def cache_key(self) -> str:
        if self.caching is not None and self.caching.key:
            return self.caching.key
        return f"slot:{self.id}"


# ---------------------------------------------------------------------------
# Injection strategy and resolver options
# ---------------------------------------------------------------------------


class InjectionTiming(StrEnum):
    IMMEDIATE = "immediate"
    LAZY = "lazy"
    CACHED = "cached"


class SlotOrder(EngineModel):
    """Substitution priority of one slot. Lower numbers are substituted first."""

    slot_id: str
    priority: int


class PerformanceConfig(EngineModel):
    """Resolver limits of a strategy. Unset limits come from ``EngineSettings``."""

    timeout_ms: int | None = Field(default=None, validation_alias=AliasChoices("timeoutMs", "timeout_ms", "timeout"), serialization_alias="timeoutMs")
    retry_count: int | None = None
    batch_size: int | None = None


class InjectionStrategy(EngineModel):
    id: str = "default"
    name: str = ""
    timing: InjectionTiming = InjectionTiming.IMMEDIATE
    order: tuple[SlotOrder, ...] = ()
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)


DEFAULT_PRIORITY = 999
"""Priority of slots not listed in ``InjectionStrategy.order`` (substituted last)."""


class ResolverOptions(EngineModel):
    """Per-call resolution options.

    Attributes:
        timeout_ms: Hard deadline for each outbound API request.
        retry_count: Retries after the first failed API attempt.
        cache_enabled: Allow slots with ``caching.enabled`` to use the value cache.
        parallel: Fan out independent slots concurrently.
        batch_size: Independent slots fanned out per batch (None = all at once).
        retry_backoff_seconds: Base of the exponential backoff (``base * 2**attempt``).
        raise_on_failure: Abort with an aggregate error when a failed slot has no error handling.
            When False such slots are left out of the map and reported in ``failures``.
    """

    timeout_ms: int = 5000
    retry_count: int = 3
    cache_enabled: bool = True
    parallel: bool = True
    batch_size: int | None = None
    retry_backoff_seconds: float = 1.0
    raise_on_failure: bool = True

    @classmethod
    def from_strategy(cls, strategy: InjectionStrategy, engine_settings: EngineSettings) -> "ResolverOptions":
        """Derive options from an injection strategy's timing and performance settings.

        Limits the strategy leaves unset fall back to ``resolver_timeout_ms`` and
        ``resolver_retry_count`` of ``engine_settings``.
        """
        performance = strategy.performance
        return cls(
            timeout_ms=engine_settings.resolver_timeout_ms if performance.timeout_ms is None else performance.timeout_ms,
            retry_count=engine_settings.resolver_retry_count if performance.retry_count is None else performance.retry_count,
            cache_enabled=True,
            parallel=strategy.timing != InjectionTiming.LAZY,
            batch_size=performance.batch_size,
            retry_backoff_seconds=engine_settings.retry_backoff_seconds,
        )


# ---------------------------------------------------------------------------
# Resolution output
# ---------------------------------------------------------------------------


class SlotOutcome(StrEnum):
    """What happened to a slot whose resolution failed."""

    FALLBACK = "fallback"
    SKIPPED = "skipped"
    UNHANDLED = "unhandled"


@dataclass(frozen=True, slots=True)
class SlotFailure:
    """A failed slot and how it was recovered."""

    slot_id: str
    error: PromptEngineError
    outcome: SlotOutcome
    strategy: ErrorStrategy | None = None


class ResolvedSlotMap(Mapping[str, Any]):
    """Read-only mapping of slot id to resolved value, produced once per request.

    Slots recovered with the ``skip`` strategy (or left unhandled in non-raising
    mode) are absent from the mapping and listed in ``skipped``.
    """

    __slots__ = ("_values", "failures", "order", "skipped")

    def __init__(self, values: Mapping[str, Any], *, failures: tuple[SlotFailure, ...] = (), order: tuple[str, ...] = ()) -> None:
        self._values = MappingProxyType(dict(values))
        self.failures = failures
        self.order = order
        self.skipped = frozenset(failure.slot_id for failure in failures if failure.outcome != SlotOutcome.FALLBACK)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResolvedSlotMap({dict(self._values)!r}, skipped={sorted(self.skipped)!r})"

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


__all__ = [
    "DEFAULT_PRIORITY",
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
    "StaticSource",
    "Transformation",
    "TransformationRule",
    "TransformationType",
    "ValidationRule",
    "ValidationRuleType",
]
