"""Tests for SlotResolver."""

import asyncio

import httpx
import pytest

from prompt_engine.exceptions import (
    CyclicDependencyError,
    DataSourceError,
    InvalidSlotValuesError,
    MissingRequiredValueError,
    SlotResolutionError,
    UnknownDependencyError,
    ValidationFailedError,
)
from prompt_engine.settings import EngineSettings
from prompt_engine.slots import (
    ApiSource,
    CachingConfig,
    ComputedSource,
    ConditionOperator,
    ConditionRule,
    ErrorHandling,
    ErrorStrategy,
    InjectionStrategy,
    InjectionTiming,
    ResolverOptions,
    SlotDefinition,
    SlotKind,
    SlotOutcome,
    SlotResolver,
    StaticSource,
    Transformation,
    TransformationRule,
    TransformationType,
    ValidationRule,
    ValidationRuleType,
)
from prompt_engine.slots.types import ExternalSource, PerformanceConfig, ResponseExtraction


def _api_slot(slot_id: str, endpoint: str = "https://api.test/value", **kwargs) -> SlotDefinition:
    return SlotDefinition(
        id=slot_id,
        kind=SlotKind.API,
        data_source=ApiSource(endpoint=endpoint, response_extraction=ResponseExtraction(path="value")),
        **kwargs,
    )


def _computed(slot_id: str, expression: str, *deps: str) -> SlotDefinition:
    return SlotDefinition(id=slot_id, kind=SlotKind.COMPUTED, data_source=ComputedSource(expression=expression), dependencies=deps)


def _failing_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))


@pytest.fixture
def options() -> ResolverOptions:
    return ResolverOptions(timeout_ms=1000, retry_count=0, retry_backoff_seconds=0.0)


class TestUserAndSystemSlots:
    """Test caller-supplied and system values."""

    @pytest.mark.asyncio
    async def test_caller_value_and_default(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slots = [SlotDefinition(id="name", default_value="Guest"), SlotDefinition(id="company")]
        resolved = await resolver.resolve_slots(slots, {"company": "Acme"}, options=options)
        assert resolved.to_dict() == {"name": "Guest", "company": "Acme"}

    @pytest.mark.asyncio
    async def test_empty_string_counts_as_missing(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        resolved = await resolver.resolve_slots([SlotDefinition(id="name", default_value="Guest")], {"name": ""}, options=options)
        assert resolved["name"] == "Guest"

    @pytest.mark.asyncio
    async def test_optional_without_value_is_empty_string(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        resolved = await resolver.resolve_slots([SlotDefinition(id="note")], options=options)
        assert resolved["note"] == ""

    @pytest.mark.asyncio
    async def test_missing_required_values_are_aggregated(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slots = [SlotDefinition(id="a", required=True), SlotDefinition(id="b", required=True), SlotDefinition(id="c", required=True)]
        with pytest.raises(MissingRequiredValueError) as exc_info:
            await resolver.resolve_slots(slots, {"b": "present"}, options=options)
        assert exc_info.value.slot_ids == ("a", "c")

    @pytest.mark.asyncio
    async def test_system_values_use_injected_clock(self, engine_settings, options, clock):
        resolver = SlotResolver(engine_settings=engine_settings, clock=clock)
        slots = [SlotDefinition(id="current_date", kind=SlotKind.SYSTEM), SlotDefinition(id="current_year", kind=SlotKind.SYSTEM)]
        resolved = await resolver.resolve_slots(slots, options=options)
        assert resolved.to_dict() == {"current_date": "2023-11-14", "current_year": 2023}

    @pytest.mark.asyncio
    async def test_unknown_system_slot_uses_default(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        resolved = await resolver.resolve_slots([SlotDefinition(id="build", kind=SlotKind.SYSTEM, default_value="dev")], options=options)
        assert resolved["build"] == "dev"

    @pytest.mark.asyncio
    async def test_invalid_caller_value(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        with pytest.raises(InvalidSlotValuesError) as exc_info:
            await resolver.resolve_slots([SlotDefinition(id="x")], {"x": object(), "y": float("nan")}, options=options)
        assert len(exc_info.value.violations) == 2


class TestComputedAndConditional:
    """Test expression and condition slots."""

    @pytest.mark.asyncio
    async def test_dependency_chain(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slots = [_computed("b", "a * 10", "a"), _computed("a", "2+2")]
        resolved = await resolver.resolve_slots(slots, options=options)
        assert resolved.to_dict() == {"a": 4, "b": 40}
        assert resolved.order == ("a", "b")

    @pytest.mark.asyncio
    async def test_expression_sees_only_dependencies(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slots = [SlotDefinition(id="secret", default_value="x"), _computed("leak", "secret")]
        resolved = await resolver.resolve_slots(slots, options=options.model_copy(update={"raise_on_failure": False}))
        assert "leak" not in resolved
        [failure] = resolved.failures
        assert isinstance(failure.error, DataSourceError)

    @pytest.mark.asyncio
    async def test_conditional_first_match(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        badge = SlotDefinition(
            id="badge",
            kind=SlotKind.CONDITIONAL,
            default_value="Member",
            data_source=ComputedSource(
                conditions=[
                    ConditionRule(field="tier", operator=ConditionOperator.EQ, value="pro", output_value="Pro"),
                    ConditionRule(field="score", operator=ConditionOperator.GT, value=100, output_value="Star"),
                ]
            ),
            dependencies=("score",),
        )
        slots = [badge, SlotDefinition(id="score", default_value=150)]
        assert (await resolver.resolve_slots(slots, {"tier": "pro"}, options=options))["badge"] == "Pro"
        assert (await resolver.resolve_slots(slots, {"tier": "free"}, options=options))["badge"] == "Star"
        assert (await resolver.resolve_slots(slots, {"tier": "free", "score": 3}, options=options))["badge"] == "Member"

    @pytest.mark.asyncio
    async def test_structural_errors_abort(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        with pytest.raises(CyclicDependencyError):
            await resolver.resolve_slots([_computed("a", "b", "b"), _computed("b", "a", "a")], options=options)
        with pytest.raises(UnknownDependencyError):
            await resolver.resolve_slots([_computed("a", "ghost", "ghost")], options=options)


class TestApiSlots:
    """Test API, static and external data sources."""

    @pytest.mark.asyncio
    async def test_api_value(self, engine_settings, options):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"value": "sunny"})))
        resolver = SlotResolver(engine_settings=engine_settings, client=client)
        async with client:
            resolved = await resolver.resolve_slots([_api_slot("weather")], options=options)
        assert resolved["weather"] == "sunny"

    @pytest.mark.asyncio
    async def test_static_and_external_sources(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slots = [
            SlotDefinition(id="static", kind=SlotKind.API, data_source=StaticSource(value=[1, 2])),
            SlotDefinition(id="external", kind=SlotKind.API, data_source=ExternalSource(name="crm", fallback_value="n/a")),
        ]
        resolved = await resolver.resolve_slots(slots, options=options)
        assert resolved.to_dict() == {"static": [1, 2], "external": "n/a"}

    @pytest.mark.asyncio
    async def test_unhandled_failures_are_aggregated(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings, client=_failing_client())
        slots = [_api_slot("a"), SlotDefinition(id="b", kind=SlotKind.API), SlotDefinition(id="ok", default_value="fine")]
        with pytest.raises(SlotResolutionError) as exc_info:
            await resolver.resolve_slots(slots, options=options)
        assert {error.slot_id for error in exc_info.value.errors} == {"a", "b"}

    @pytest.mark.asyncio
    async def test_non_raising_mode_reports_failures(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings, client=_failing_client())
        slots = [_api_slot("a"), SlotDefinition(id="ok", default_value="fine")]
        resolved = await resolver.resolve_slots(slots, options=options.model_copy(update={"raise_on_failure": False}))
        assert resolved.to_dict() == {"ok": "fine"}
        assert resolved.skipped == frozenset({"a"})
        assert resolved.failures[0].outcome == SlotOutcome.UNHANDLED

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, options):
        engine_settings = EngineSettings(max_concurrent_requests=2)
        active = peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return httpx.Response(200, json={"value": request.url.path})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        resolver = SlotResolver(engine_settings=engine_settings, client=client)
        slots = [_api_slot(f"s{i}", f"https://api.test/{i}") for i in range(6)]
        async with client:
            resolved = await resolver.resolve_slots(slots, options=options)
        assert resolved["s3"] == "/3"
        assert peak == 2


class TestErrorHandling:
    """Test per-slot recovery strategies."""

    @pytest.mark.asyncio
    async def test_fallback_value(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings, client=_failing_client())
        slot = _api_slot("w", error_handling=ErrorHandling(strategy=ErrorStrategy.FALLBACK, fallback_value="unknown"))
        resolved = await resolver.resolve_slots([slot], options=options)
        assert resolved["w"] == "unknown"
        assert resolved.failures[0].outcome == SlotOutcome.FALLBACK
        assert resolved.skipped == frozenset()

    @pytest.mark.asyncio
    async def test_fallback_without_value_uses_default_then_empty(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings, client=_failing_client())
        handling = ErrorHandling(strategy=ErrorStrategy.FALLBACK)
        slots = [_api_slot("a", default_value="dflt", error_handling=handling), _api_slot("b", error_handling=handling)]
        resolved = await resolver.resolve_slots(slots, options=options)
        assert resolved.to_dict() == {"a": "dflt", "b": ""}

    @pytest.mark.asyncio
    async def test_skip_leaves_slot_out(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings, client=_failing_client())
        slot = _api_slot("w", error_handling=ErrorHandling(strategy=ErrorStrategy.SKIP))
        resolved = await resolver.resolve_slots([slot], options=options)
        assert "w" not in resolved
        assert resolved.skipped == frozenset({"w"})

    @pytest.mark.asyncio
    async def test_alert_uses_default(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings, client=_failing_client())
        slot = _api_slot("w", default_value="cached", error_handling=ErrorHandling(strategy=ErrorStrategy.ALERT, alert_channel="ops"))
        resolved = await resolver.resolve_slots([slot], options=options)
        assert resolved["w"] == "cached"

    @pytest.mark.asyncio
    async def test_retry_strategy_overrides_retry_count(self, engine_settings, options):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500)

        resolver = SlotResolver(engine_settings=engine_settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        slot = _api_slot("w", default_value="later", error_handling=ErrorHandling(strategy=ErrorStrategy.RETRY, retry_count=2))
        resolved = await resolver.resolve_slots([slot], options=options)
        assert calls == 3
        assert resolved["w"] == "later"

    @pytest.mark.asyncio
    async def test_missing_required_user_value_with_fallback(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slot = SlotDefinition(id="name", required=True, error_handling=ErrorHandling(strategy=ErrorStrategy.FALLBACK, fallback_value="friend"))
        resolved = await resolver.resolve_slots([slot], options=options)
        assert resolved["name"] == "friend"

    @pytest.mark.asyncio
    async def test_validation_failure_is_recovered(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slot = SlotDefinition(
            id="age",
            validation=[ValidationRule(type=ValidationRuleType.RANGE, value={"min": 0, "max": 150})],
            error_handling=ErrorHandling(strategy=ErrorStrategy.FALLBACK, fallback_value=0),
        )
        resolved = await resolver.resolve_slots([slot], {"age": 400}, options=options)
        assert resolved["age"] == 0
        assert isinstance(resolved.failures[0].error, ValidationFailedError)

    @pytest.mark.asyncio
    async def test_overflowing_expression_uses_fallback(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slot = _computed("n", "1" + "0" * 400 + " / 7").model_copy(
            update={"error_handling": ErrorHandling(strategy=ErrorStrategy.FALLBACK, fallback_value=0)}
        )
        resolved = await resolver.resolve_slots([slot], options=options)
        assert resolved.to_dict() == {"n": 0}
        assert isinstance(resolved.failures[0].error, DataSourceError)

    @pytest.mark.asyncio
    async def test_transformation_runs_before_validation(self, engine_settings, options):
        resolver = SlotResolver(engine_settings=engine_settings)
        slot = SlotDefinition(
            id="code",
            transformation=Transformation(type=TransformationType.FORMAT, rules=[TransformationRule(type="uppercase")]),
            validation=[ValidationRule(type=ValidationRuleType.PATTERN, value="^[A-Z]+$")],
        )
        resolved = await resolver.resolve_slots([slot], {"code": "abc"}, options=options)
        assert resolved["code"] == "ABC"


class TestCachingAndStrategies:
    """Test the per-slot cache and injection strategy handling."""

    @pytest.mark.asyncio
    async def test_cached_slot_skips_fetch_until_expiry(self, engine_settings, options, clock):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"value": calls})

        resolver = SlotResolver(engine_settings=engine_settings, clock=clock, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        slot = _api_slot("n", caching=CachingConfig(enabled=True, ttl_seconds=60))
        assert (await resolver.resolve_slots([slot], options=options))["n"] == 1
        assert (await resolver.resolve_slots([slot], options=options))["n"] == 1
        clock.advance(61)
        assert (await resolver.resolve_slots([slot], options=options))["n"] == 2
        assert calls == 2

    @pytest.mark.asyncio
    async def test_cache_disabled_by_options(self, engine_settings, options, clock):
        resolver = SlotResolver(engine_settings=engine_settings, clock=clock)
        slot = SlotDefinition(id="u", caching=CachingConfig(enabled=True, ttl_seconds=60))
        await resolver.resolve_slots([slot], {"u": "first"}, options=options)
        no_cache = options.model_copy(update={"cache_enabled": False})
        assert (await resolver.resolve_slots([slot], {"u": "second"}, options=no_cache))["u"] == "second"
        assert (await resolver.resolve_slots([slot], {"u": "third"}, options=options))["u"] == "first"

    @pytest.mark.asyncio
    async def test_cache_maintenance(self, engine_settings, options, clock):
        resolver = SlotResolver(engine_settings=engine_settings, clock=clock)
        slot = SlotDefinition(id="u", caching=CachingConfig(enabled=True, ttl_seconds=10, key="custom"))
        await resolver.resolve_slots([slot], {"u": "v"}, options=options)
        assert resolver.cache.get("custom") == "v"
        clock.advance(11)
        assert resolver.clear_expired_cache() == 1
        await resolver.resolve_slots([slot], {"u": "v"}, options=options)
        resolver.clear_cache()
        assert len(resolver.cache) == 0

    @pytest.mark.asyncio
    async def test_sequential_and_batched_modes_agree(self, engine_settings):
        resolver = SlotResolver(engine_settings=engine_settings)
        slots = [SlotDefinition(id=f"v{i}", default_value=i) for i in range(5)] + [_computed("sum", "v0 + v4", "v0", "v4")]
        lazy = InjectionStrategy(timing=InjectionTiming.LAZY)
        batched = InjectionStrategy(performance=PerformanceConfig(batch_size=2))
        sequential = await resolver.resolve_slots(slots, strategy=lazy)
        parallel = await resolver.resolve_slots(slots, strategy=batched)
        assert sequential.to_dict() == parallel.to_dict()
        assert parallel["sum"] == 4

    def test_options_from_strategy(self, engine_settings):
        strategy = InjectionStrategy(timing=InjectionTiming.LAZY, performance=PerformanceConfig(timeout_ms=250, retry_count=1, batch_size=3))
        derived = ResolverOptions.from_strategy(strategy, engine_settings)
        assert (derived.timeout_ms, derived.retry_count, derived.batch_size, derived.parallel) == (250, 1, 3, False)

    def test_unset_limits_come_from_settings(self):
        engine_settings = EngineSettings(_env_file=None, resolver_timeout_ms=100, resolver_retry_count=0)
        derived = ResolverOptions.from_strategy(InjectionStrategy(), engine_settings)
        assert (derived.timeout_ms, derived.retry_count) == (100, 0)
        partial = InjectionStrategy(performance=PerformanceConfig(retry_count=2))
        assert ResolverOptions.from_strategy(partial, engine_settings).retry_count == 2
