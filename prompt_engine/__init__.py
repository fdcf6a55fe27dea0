"""Prompt Engine - compiles prompt templates into bounded, cost-estimated prompts.

A template is base text with ``{{slot}}`` placeholders plus slot definitions. The
engine resolves every slot (caller values, system values, HTTP APIs, expressions,
conditions), substitutes the values in injection-priority order, optionally
compresses the result, and reports token, cost, latency and quality estimates
together with optimization suggestions and detected issues.

Core Components:
    - **SlotResolver**: Dependency-ordered, cached, retrying slot resolution
    - **CompressionEngine**: Syntactic, semantic and hybrid text compression with
      quality scoring and adaptive retry
    - **PromptCompiler**: The validate -> resolve -> substitute -> compress -> report pipeline

Quick Start:
    >>> import asyncio
    >>> from prompt_engine import PromptCompiler, PromptTemplate, SlotDefinition
    >>>
    >>> template = PromptTemplate(
    ...     id="welcome",
    ...     base_prompt="Hi {{name}}, welcome to {{company}}.",
    ...     slots=[
    ...         SlotDefinition(id="name", default_value="Guest"),
    ...         SlotDefinition(id="company", required=True),
    ...     ],
    ... )
    >>> result = asyncio.run(PromptCompiler().compile(template, {"company": "Acme"}))
    >>> result.compiled_prompt
    'Hi Guest, welcome to Acme.'

Configuration:
    Constants (cache TTL, cost coefficient, latency model, retry policy) come from
    ``PROMPT_ENGINE_*`` environment variables via ``prompt_engine.settings``.
"""

from .cache import TTLCache
from .compiler import CompilerOptions, Issue, IssueCode, OptimizationSuggestion, PerformanceMetrics, PreviewResult, PromptCompiler, PromptTemplate
from .compression import (
    AdaptiveConfig,
    CompressionAlgorithm,
    CompressionConfig,
    CompressionEngine,
    CompressionResult,
    CompressionRule,
    CompressionStrategy,
)
from .config_io import ConfigDocument, EngineConfig, export_config, import_config, load_config_file
from .exceptions import (
    CompressionError,
    CyclicDependencyError,
    DataSourceError,
    InvalidSlotValuesError,
    MissingRequiredValueError,
    PromptEngineError,
    SlotError,
    SlotResolutionError,
    StructuralError,
    UnknownDependencyError,
    ValidationFailedError,
)
from .logging import get_engine_logger, setup_logging
from .settings import EngineSettings, settings
from .slots import (
    ApiSource,
    ComputedSource,
    ConditionRule,
    ErrorHandling,
    ErrorStrategy,
    InjectionStrategy,
    ResolvedSlotMap,
    SlotDefinition,
    SlotKind,
    SlotResolver,
    StaticSource,
    ValidationRule,
)

__version__ = "0.3.0"

__all__ = [
    "AdaptiveConfig",
    "ApiSource",
    "CompilerOptions",
    "CompressionAlgorithm",
    "CompressionConfig",
    "CompressionEngine",
    "CompressionError",
    "CompressionResult",
    "CompressionRule",
    "CompressionStrategy",
    "ComputedSource",
    "ConditionRule",
    "ConfigDocument",
    "CyclicDependencyError",
    "DataSourceError",
    "EngineConfig",
    "EngineSettings",
    "ErrorHandling",
    "ErrorStrategy",
    "InjectionStrategy",
    "InvalidSlotValuesError",
    "Issue",
    "IssueCode",
    "MissingRequiredValueError",
    "OptimizationSuggestion",
    "PerformanceMetrics",
    "PreviewResult",
    "PromptCompiler",
    "PromptEngineError",
    "PromptTemplate",
    "ResolvedSlotMap",
    "SlotDefinition",
    "SlotError",
    "SlotKind",
    "SlotResolutionError",
    "SlotResolver",
    "StaticSource",
    "StructuralError",
    "TTLCache",
    "UnknownDependencyError",
    "ValidationFailedError",
    "ValidationRule",
    "__version__",
    "export_config",
    "get_engine_logger",
    "import_config",
    "load_config_file",
    "settings",
    "setup_logging",
]
