"""Slot value resolver.

Turns slot definitions plus caller-supplied values into a ResolvedSlotMap:

1. Order slots topologically (cycles and unknown dependencies are structural errors).
2. Fan out slots without dependencies concurrently, optionally in batches.
3. Resolve dependent slots one by one in topological order, each seeing every value
   resolved so far.
4. For each slot: read the TTL cache, dispatch on kind, transform, validate, write
   the cache. Failures are recovered by the slot's ``errorHandling`` strategy.

A single failing slot never aborts its siblings. A slot that fails without error
handling aborts the call after all slots were attempted (``raise_on_failure``),
or is left out of the map when that option is off.
"""

import asyncio
import time
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from prompt_engine.cache import Clock, TTLCache
from prompt_engine.exceptions import (
    DataSourceError,
    ExpressionError,
    InvalidSlotValuesError,
    MissingRequiredValueError,
    PromptEngineError,
    SlotResolutionError,
    UnsupportedDataSourceTypeError,
)
from prompt_engine.logging import get_engine_logger
from prompt_engine.settings import EngineSettings, settings
from prompt_engine.values import coerce_value, is_empty

from .conditions import first_match
from .expression import evaluate
from .graph import topological_order
from .sources import ApiFetcher, system_values
from .transform import apply_transformation, validate_value
from .types import (
    ApiSource,
    ComputedSource,
    ErrorStrategy,
    ExternalSource,
    InjectionStrategy,
    ResolvedSlotMap,
    ResolverOptions,
    SlotDefinition,
    SlotFailure,
    SlotKind,
    SlotOutcome,
    StaticSource,
)

logger = get_engine_logger(__name__)

_SKIP = object()


def normalize_values(values: Mapping[str, Any] | None) -> dict[str, Any]:
    """Coerce caller values into the slot value union, dropping ``None`` entries.

    Raises:
        InvalidSlotValuesError: Listing every value outside the union.
    """
    normalized: dict[str, Any] = {}
    violations: list[str] = []
    for key, raw in (values or {}).items():
        if raw is None:
            continue
        try:
            normalized[key] = coerce_value(raw)
        except (TypeError, ValueError) as e:
            violations.append(f"Value for slot '{key}' is invalid: {e}")
    if violations:
        raise InvalidSlotValuesError(f"{len(violations)} caller value(s) are invalid", violations)
    return normalized


def _default_or_empty(slot: SlotDefinition) -> Any:
    return slot.default_value if slot.default_value is not None else ""


class SlotResolver:
    """Resolves slot values for one template per call.

    The resolver owns a per-slot TTL cache and an API fetcher; both outlive a single
    ``resolve_slots`` call. Pass ``client`` to route API slots through a shared
    ``httpx.AsyncClient`` (or a mock transport in tests).
    """

    def __init__(
        self,
        *,
        cache: TTLCache | None = None,
        client: httpx.AsyncClient | None = None,
        engine_settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = engine_settings or settings
        self._clock = clock or time.time
        self._cache = cache if cache is not None else TTLCache(clock=self._clock)
        self._fetcher = ApiFetcher(client)

    @property
    def cache(self) -> TTLCache:
        return self._cache

    def clear_cache(self) -> None:
        """Drop every cached slot value."""
        self._cache.clear()

    def clear_expired_cache(self) -> int:
        """Drop expired slot values. Returns the number removed."""
        return self._cache.sweep()

    async def resolve_slots(
        self,
        slots: Sequence[SlotDefinition],
        values: Mapping[str, Any] | None = None,
        strategy: InjectionStrategy | None = None,
        options: ResolverOptions | None = None,
    ) -> ResolvedSlotMap:
        """Resolve every slot in ``slots``.

        Args:
            slots: Slot definitions of one template.
            values: Caller-supplied values keyed by slot id.
            strategy: Injection strategy; its timing and performance settings seed
                the options when ``options`` is not given.
            options: Explicit resolution options.

        Returns:
            Resolved values in topological order, with failures and skipped slots recorded.

        Raises:
            CyclicDependencyError: If the dependency graph has a cycle.
            UnknownDependencyError: If a slot depends on an id that is not in ``slots``.
            InvalidSlotValuesError: If a caller value is outside the slot value union.
            MissingRequiredValueError: If required slots without error handling have no value.
            SlotResolutionError: If other slots without error handling failed.
        """
        strategy = strategy or InjectionStrategy()
        options = options or ResolverOptions.from_strategy(strategy, self._settings)
        ordered = topological_order(slots)
        caller = normalize_values(values)
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_requests)

        resolved: dict[str, Any] = {}
        failures: list[SlotFailure] = []

        def record(slot: SlotDefinition, outcome: tuple[Any, SlotFailure | None]) -> None:
            value, failure = outcome
            if failure is not None:
                failures.append(failure)
            if value is not _SKIP:
                resolved[slot.id] = value

        if options.parallel:
            independent = [slot for slot in ordered if not slot.dependencies]
            dependent = [slot for slot in ordered if slot.dependencies]
            batch = options.batch_size or len(independent) or 1
            for start in range(0, len(independent), batch):
                chunk = independent[start : start + batch]
                outcomes = await asyncio.gather(*(self._settle(slot, caller, resolved, options, semaphore) for slot in chunk))
                for slot, outcome in zip(chunk, outcomes, strict=True):
                    record(slot, outcome)
        else:
            dependent = ordered

        for slot in dependent:
            record(slot, await self._settle(slot, caller, resolved, options, semaphore))

        unhandled = [failure for failure in failures if failure.outcome == SlotOutcome.UNHANDLED]
        if unhandled and options.raise_on_failure:
            errors = [failure.error for failure in unhandled]
            missing = [error for error in errors if isinstance(error, MissingRequiredValueError)]
            if len(missing) == len(errors):
                raise MissingRequiredValueError([slot_id for error in missing for slot_id in error.slot_ids])
            raise SlotResolutionError(errors)

        order = tuple(slot.id for slot in ordered if slot.id in resolved)
        logger.debug(f"Resolved {len(resolved)}/{len(ordered)} slot(s), {len(failures)} failure(s)")
        return ResolvedSlotMap({slot_id: resolved[slot_id] for slot_id in order}, failures=tuple(failures), order=order)

    # ── per-slot pipeline ────────────────────────────────────────────────────

    async def _settle(
        self,
        slot: SlotDefinition,
        caller: Mapping[str, Any],
        resolved: Mapping[str, Any],
        options: ResolverOptions,
        semaphore: asyncio.Semaphore,
    ) -> tuple[Any, SlotFailure | None]:
        """Resolve one slot and apply its error handling. Never raises PromptEngineError."""
        use_cache = options.cache_enabled and slot.caching is not None and slot.caching.enabled
        if use_cache:
            cached = self._cache.get(slot.cache_key, _SKIP)
            if cached is not _SKIP:
                logger.debug(f"Slot '{slot.id}' served from cache")
                return cached, None
        try:
            value = await self._compute(slot, caller, resolved, options, semaphore)
            if slot.transformation is not None:
                value = apply_transformation(slot.id, value, slot.transformation)
            validate_value(slot, value)
        except PromptEngineError as e:
            return self._recover(slot, e)
        if use_cache and slot.caching is not None:
            self._cache.set(slot.cache_key, value, ttl_seconds=slot.caching.ttl_seconds)
        return value, None

    def _recover(self, slot: SlotDefinition, error: PromptEngineError) -> tuple[Any, SlotFailure]:
        handling = slot.error_handling
        if handling is None:
            logger.warning(f"Slot '{slot.id}' failed without error handling: {error}")
            return _SKIP, SlotFailure(slot.id, error, SlotOutcome.UNHANDLED)

        match handling.strategy:
            case ErrorStrategy.FALLBACK:
                value = handling.fallback_value if handling.fallback_value is not None else _default_or_empty(slot)
            case ErrorStrategy.RETRY:
                value = _default_or_empty(slot)
            case ErrorStrategy.ALERT:
                channel = f" [{handling.alert_channel}]" if handling.alert_channel else ""
                logger.error(f"Slot '{slot.id}' failed{channel}: {error}")
                value = _default_or_empty(slot)
            case ErrorStrategy.SKIP:
                logger.info(f"Slot '{slot.id}' skipped after failure: {error}")
                return _SKIP, SlotFailure(slot.id, error, SlotOutcome.SKIPPED, handling.strategy)

        logger.warning(f"Slot '{slot.id}' recovered with '{handling.strategy}' strategy: {error}")
        return value, SlotFailure(slot.id, error, SlotOutcome.FALLBACK, handling.strategy)

    async def _compute(
        self,
        slot: SlotDefinition,
        caller: Mapping[str, Any],
        resolved: Mapping[str, Any],
        options: ResolverOptions,
        semaphore: asyncio.Semaphore,
    ) -> Any:
        match slot.kind:
            case SlotKind.USER:
                return self._resolve_user(slot, caller)
            case SlotKind.SYSTEM:
                return self._resolve_system(slot)
            case SlotKind.API:
                return await self._resolve_api(slot, options, semaphore)
            case SlotKind.COMPUTED:
                return self._resolve_computed(slot, resolved)
            case SlotKind.CONDITIONAL:
                return self._resolve_conditional(slot, caller, resolved)
        raise UnsupportedDataSourceTypeError(slot.id, f"Slot '{slot.id}' has unsupported kind '{slot.kind}'")

    @staticmethod
    def _resolve_user(slot: SlotDefinition, caller: Mapping[str, Any]) -> Any:
        value = caller.get(slot.id)
        if not is_empty(value):
            return value
        if slot.default_value is not None:
            return slot.default_value
        if slot.required:
            raise MissingRequiredValueError([slot.id])
        return ""

    def _resolve_system(self, slot: SlotDefinition) -> Any:
        table = system_values(self._clock(), self._settings.locale)
        if slot.id in table:
            return table[slot.id]()
        if slot.default_value is not None:
            return slot.default_value
        raise DataSourceError(slot.id, f"Slot '{slot.id}' is not a known system value")

    async def _resolve_api(self, slot: SlotDefinition, options: ResolverOptions, semaphore: asyncio.Semaphore) -> Any:
        match slot.data_source:
            case ApiSource() as source:
                retry_count = options.retry_count
                handling = slot.error_handling
                if handling is not None and handling.strategy == ErrorStrategy.RETRY and handling.retry_count is not None:
                    retry_count = handling.retry_count
                return await self._fetcher.fetch(
                    slot.id,
                    source,
                    timeout_ms=options.timeout_ms,
                    retry_count=retry_count,
                    backoff_seconds=options.retry_backoff_seconds,
                    semaphore=semaphore,
                )
            case StaticSource(value=value):
                if value is None:
                    raise DataSourceError(slot.id, f"Slot '{slot.id}' static source has no value")
                return value
            case ExternalSource(fallback_value=fallback, name=name):
                if fallback is None:
                    raise DataSourceError(slot.id, f"Slot '{slot.id}' external source '{name or slot.id}' is not reachable")
                return fallback
            case None:
                raise DataSourceError(slot.id, f"Slot '{slot.id}' has no data source")
        raise UnsupportedDataSourceTypeError(slot.id, f"Slot '{slot.id}' data source type '{slot.data_source.type}' is not supported for API slots")

    @staticmethod
    def _resolve_computed(slot: SlotDefinition, resolved: Mapping[str, Any]) -> Any:
        source = slot.data_source
        if not isinstance(source, ComputedSource) or not source.expression:
            raise DataSourceError(slot.id, f"Slot '{slot.id}' has no expression to compute")
        variables = {dep: resolved[dep] for dep in slot.dependencies if dep in resolved}
        try:
            return coerce_value(evaluate(source.expression, variables))
        except (ExpressionError, TypeError, ValueError) as e:
            raise DataSourceError(slot.id, f"Slot '{slot.id}' expression failed: {e}") from e

    @staticmethod
    def _resolve_conditional(slot: SlotDefinition, caller: Mapping[str, Any], resolved: Mapping[str, Any]) -> Any:
        source = slot.data_source
        conditions = source.conditions if isinstance(source, ComputedSource) else ()
        rule = first_match(conditions, {**caller, **resolved})
        if rule is not None and rule.output_value is not None:
            return rule.output_value
        return _default_or_empty(slot)


__all__ = ["SlotResolver", "normalize_values"]
