"""Prompt compiler.

``compile`` runs validate -> resolve -> order & substitute -> compress -> metrics ->
suggestions -> issues, and caches the compiled text for a fixed TTL.

Only structural errors abort a compilation. Compression failures, skipped slots,
unreplaced placeholders and oversized output are reported as issues.
"""

import hashlib
import json
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from prompt_engine.cache import Clock, TTLCache
from prompt_engine.compression.engine import CompressionEngine
from prompt_engine.compression.types import CompressionResult, CompressionStrategy
from prompt_engine.exceptions import CompressionError, InvalidSlotValuesError, MissingRequiredValueError
from prompt_engine.logging import get_engine_logger
from prompt_engine.settings import EngineSettings, settings
from prompt_engine.slots.resolver import SlotResolver, normalize_values
from prompt_engine.slots.sources import SYSTEM_SLOT_IDS
from prompt_engine.slots.transform import rule_violations
from prompt_engine.slots.types import (
    DEFAULT_PRIORITY,
    ErrorStrategy,
    InjectionStrategy,
    ResolvedSlotMap,
    ResolverOptions,
    SlotDefinition,
    SlotKind,
)
from prompt_engine.values import is_empty, to_text

from .diagnostics import compression_issue, detect_issues, failure_issues, generate_suggestions, validation_issues
from .metrics import calculate_metrics, estimate_cost, estimate_response_time, estimate_tokens
from .types import CompilerOptions, Issue, PreviewResult, PromptTemplate

logger = get_engine_logger(__name__)


@dataclass(frozen=True, slots=True)
class _CachedCompilation:
    compiled_prompt: str
    fingerprint: str
    resolution_issues: tuple[Issue, ...]
    compression: CompressionResult | None
    resolved: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Outcome of pre-resolution validation."""

    missing: tuple[str, ...]
    violations: tuple[tuple[str, str], ...]

    @property
    def ok(self) -> bool:
        return not self.missing and not self.violations


def _has_fallback(slot: SlotDefinition) -> bool:
    handling = slot.error_handling
    return handling is not None and handling.strategy == ErrorStrategy.FALLBACK and handling.fallback_value is not None


def _is_resolvable(slot: SlotDefinition, values: Mapping[str, Any]) -> bool:
    if slot.default_value is not None or _has_fallback(slot):
        return True
    match slot.kind:
        case SlotKind.USER:
            return not is_empty(values.get(slot.id))
        case SlotKind.SYSTEM:
            return slot.id in SYSTEM_SLOT_IDS
        case _:
            return slot.data_source is not None


def validate_template(template: PromptTemplate, values: Mapping[str, Any]) -> ValidationReport:
    """Check every required slot for a resolvable value and every caller value against its rules.

    All problems are collected; nothing is raised.
    """
    missing: list[str] = []
    violations: list[tuple[str, str]] = []
    for slot in template.slots:
        if slot.required and not _is_resolvable(slot, values):
            missing.append(slot.id)
            violations.append((slot.id, f"Required slot '{slot.label}' has no value"))
        value = values.get(slot.id)
        if slot.validation and not is_empty(value):
            violations.extend((slot.id, message) for message in rule_violations(slot, value))
    return ValidationReport(missing=tuple(missing), violations=tuple(violations))


def order_slots(slots: Sequence[SlotDefinition], strategy: InjectionStrategy) -> list[SlotDefinition]:
    """Sort by injection priority; unlisted slots get DEFAULT_PRIORITY. Stable for ties."""
    priorities = {entry.slot_id: entry.priority for entry in strategy.order}
    return sorted(slots, key=lambda slot: priorities.get(slot.id, DEFAULT_PRIORITY))


def substitute(base_prompt: str, ordered: Sequence[SlotDefinition], resolved: Mapping[str, Any]) -> str:
    """Replace every literal ``{{id}}`` of each resolved slot, in order. Unresolved slots are left alone."""
    text = base_prompt
    for slot in ordered:
        if slot.id in resolved:
            text = text.replace(slot.placeholder, to_text(resolved[slot.id]))
    return text


def _digest(payload: Any) -> str:
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()


def cache_key(template_id: str, values: Mapping[str, Any]) -> str:
    """``<template id>:<sha256 of the canonical JSON of the caller values>``."""
    return f"{template_id}:{_digest(dict(values))}"


class PromptCompiler:
    """Compiles templates into bounded prompts with telemetry and diagnostics.

    Collaborators are injected so tests can share a clock, a mock HTTP transport or
    a settings object. The compiled-output cache is separate from the resolver's
    per-slot cache.
    """

    def __init__(
        self,
        *,
        resolver: SlotResolver | None = None,
        compression_engine: CompressionEngine | None = None,
        cache: TTLCache | None = None,
        engine_settings: EngineSettings | None = None,
        clock: Clock | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = engine_settings or settings
        self._clock = clock or time.time
        self._resolver = resolver or SlotResolver(client=client, engine_settings=self._settings, clock=self._clock)
        self._compression = compression_engine or CompressionEngine(engine_settings=self._settings)
        self._cache = cache if cache is not None else TTLCache(clock=self._clock)

    @property
    def resolver(self) -> SlotResolver:
        return self._resolver

    @property
    def compression_engine(self) -> CompressionEngine:
        return self._compression

    async def compile(
        self,
        template: PromptTemplate,
        values: Mapping[str, Any] | None = None,
        injection_strategy: InjectionStrategy | None = None,
        compression_strategy: CompressionStrategy | None = None,
        options: CompilerOptions | None = None,
    ) -> PreviewResult:
        """Compile ``template`` with caller ``values``.

        Raises:
            MissingRequiredValueError: Strict mode, a required slot has no value or fallback.
            InvalidSlotValuesError: Strict mode, caller values violate declared rules.
            SlotResolutionError: Strict mode, a slot without error handling failed.
            CyclicDependencyError: The slot dependency graph has a cycle.
            UnknownDependencyError: A slot depends on an id that is not in the template.
        """
        started = time.perf_counter()
        options = options or CompilerOptions()
        injection_strategy = injection_strategy or InjectionStrategy()
        caller = normalize_values(values)
        key = cache_key(template.id, caller)
        ordered = order_slots(template.slots, injection_strategy)
        injection_order = [slot.id for slot in ordered]
        fingerprint = _digest(
            {
                "template": template.to_json_dict(),
                "injection": injection_strategy.to_json_dict(),
                "compression": compression_strategy.to_json_dict() if compression_strategy else None,
            }
        )

        if options.optimize_output:
            cached: _CachedCompilation | None = self._cache.get(key)
            if cached is not None and cached.fingerprint == fingerprint:
                logger.debug(f"Compiled prompt for template '{template.id}' served from cache")
                return self._build_result(
                    cached.compiled_prompt,
                    started=started,
                    injection_ms=0.0,
                    resolution_issues=cached.resolution_issues,
                    compression=cached.compression,
                    compression_strategy=compression_strategy,
                    debug_info=self._debug_info(options, key, cached.resolved, injection_order, cached.compression),
                    from_cache=True,
                )

        resolution_issues: list[Issue] = []
        if options.validate_slots:
            report = validate_template(template, caller)
            if not report.ok:
                if options.strict_mode:
                    messages = [message for _, message in report.violations]
                    if report.missing:
                        raise MissingRequiredValueError(report.missing, messages)
                    raise InvalidSlotValuesError(f"{len(messages)} slot value(s) failed validation", messages)
                resolution_issues.extend(validation_issues(report.violations))

        injection_started = time.perf_counter()
        resolver_options = ResolverOptions.from_strategy(injection_strategy, self._settings).model_copy(update={"raise_on_failure": options.strict_mode})
        resolved = await self._resolver.resolve_slots(template.slots, caller, injection_strategy, resolver_options)
        resolution_issues.extend(failure_issues(resolved.failures))
        compiled = substitute(template.base_prompt, ordered, resolved)
        injection_ms = (time.perf_counter() - injection_started) * 1000

        compression: CompressionResult | None = None
        if compression_strategy is not None:
            try:
                compression = self._compression.compress(compiled, compression_strategy)
                compiled = compression.compressed_text
            except (CompressionError, ValueError) as e:
                logger.warning(f"Compression of template '{template.id}' failed, using uncompressed prompt: {e}")
                resolution_issues.append(compression_issue(e))

        if options.optimize_output:
            entry = _CachedCompilation(compiled, fingerprint, tuple(resolution_issues), compression, resolved.to_dict())
            self._cache.set(key, entry, ttl_seconds=self._settings.compile_cache_ttl_seconds)

        return self._build_result(
            compiled,
            started=started,
            injection_ms=injection_ms,
            resolution_issues=tuple(resolution_issues),
            compression=compression,
            compression_strategy=compression_strategy,
            debug_info=self._debug_info(options, key, resolved.to_dict(), injection_order, compression, resolved),
        )

    def _build_result(
        self,
        compiled: str,
        *,
        started: float,
        injection_ms: float,
        resolution_issues: Sequence[Issue],
        compression: CompressionResult | None,
        compression_strategy: CompressionStrategy | None,
        debug_info: dict[str, Any] | None,
        from_cache: bool = False,
    ) -> PreviewResult:
        compression_ms = compression.metrics.processing_time_ms if compression is not None and not from_cache else 0.0
        metrics = calculate_metrics(
            compiled,
            engine_settings=self._settings,
            compilation_ms=(time.perf_counter() - started) * 1000,
            injection_ms=injection_ms,
            compression_ms=compression_ms,
        )
        tokens = estimate_tokens(compiled)
        return PreviewResult(
            compiled_prompt=compiled,
            token_count=tokens,
            estimated_cost=estimate_cost(tokens, self._settings),
            estimated_response_time=estimate_response_time(tokens, self._settings),
            quality_score=metrics.quality.overall,
            metrics=metrics,
            suggestions=tuple(generate_suggestions(metrics, self._settings, compression, compression_strategy)),
            issues=(*resolution_issues, *detect_issues(compiled, self._settings)),
            compression=compression,
            debug_info=debug_info,
            from_cache=from_cache,
        )

    @staticmethod
    def _debug_info(
        options: CompilerOptions,
        key: str,
        resolved: Mapping[str, Any],
        order: Sequence[str],
        compression: CompressionResult | None,
        slot_map: ResolvedSlotMap | None = None,
    ) -> dict[str, Any] | None:
        if not options.include_debug_info:
            return None
        info: dict[str, Any] = {
            "cacheKey": key,
            "resolvedValues": dict(resolved),
            "injectionOrder": list(order),
            "compression": compression.to_json_dict() if compression is not None else None,
        }
        if slot_map is not None:
            info["failures"] = [{"slotId": f.slot_id, "outcome": f.outcome.value, "error": str(f.error)} for f in slot_map.failures]
        return info

    # ── cache maintenance ────────────────────────────────────────────────────

    def get_cached_result(self, template_id: str, values: Mapping[str, Any] | None = None) -> str | None:
        """Compiled text cached for ``(template_id, values)``, or None when absent or expired."""
        cached: _CachedCompilation | None = self._cache.get(cache_key(template_id, normalize_values(values)))
        return cached.compiled_prompt if cached is not None else None

    def clear_cache(self) -> None:
        self._cache.clear()


__all__ = ["PromptCompiler", "ValidationReport", "cache_key", "order_slots", "substitute", "validate_template"]
