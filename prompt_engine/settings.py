"""Engine configuration settings.

Settings are loaded from environment variables prefixed with ``PROMPT_ENGINE_``
(with .env file support via pydantic-settings) and frozen after initialization.

Environment variables (examples):
    PROMPT_ENGINE_COMPILE_CACHE_TTL_SECONDS: TTL of the compiled-output cache
    PROMPT_ENGINE_UNIT_COST_PER_1K_TOKENS: Cost estimate coefficient (USD)
    PROMPT_ENGINE_MAX_CONCURRENT_REQUESTS: Cap on concurrent API-slot requests
    PROMPT_ENGINE_RETRY_BACKOFF_SECONDS: Base delay of the exponential API backoff

Example:
    >>> from prompt_engine.settings import settings
    >>> settings.compile_cache_ttl_seconds
    300.0

Note:
    Services accept an ``EngineSettings`` instance at construction. Pass your own
    instance in tests instead of mutating environment variables.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Tunable constants for resolution, compilation and compression.

    Attributes:
        compile_cache_ttl_seconds: Fixed TTL of compiled prompt cache entries.
        unit_cost_per_1k_tokens: USD per 1000 prompt tokens used by the cost estimate.
        base_latency_ms: Constant part of the response-time estimate.
        latency_per_token_ms: Per-token part of the response-time estimate.
        context_window_tokens: Token budget used for the usage percentage.
        token_high_water_mark: Token count above which compression is suggested.
        quality_floor: Quality score below which adding examples is suggested.
        slow_compilation_ms: Compilation time above which caching is suggested.
        max_prompt_chars: Compiled prompt length reported as oversized.
        resolver_timeout_ms: Default per-request deadline for API slots.
        resolver_retry_count: Default number of API retries.
        retry_backoff_seconds: Base of the exponential backoff between API retries.
        max_concurrent_requests: Cap on concurrent outbound API calls per resolution.
        learning_history_size: Samples kept per compression strategy.
        locale: Value reported by the ``locale`` and ``language`` system slots.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROMPT_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Compiler
    compile_cache_ttl_seconds: float = 300.0
    unit_cost_per_1k_tokens: float = 0.002
    base_latency_ms: float = 800.0
    latency_per_token_ms: float = 2.0
    context_window_tokens: int = 4000
    token_high_water_mark: int = 3000
    quality_floor: float = 0.7
    slow_compilation_ms: float = 1000.0
    max_prompt_chars: int = 8000

    # Resolver
    resolver_timeout_ms: int = 5000
    resolver_retry_count: int = 3
    retry_backoff_seconds: float = 1.0
    max_concurrent_requests: int = 8
    locale: str = "en_US"

    # Compression
    learning_history_size: int = 100


settings = EngineSettings()
"""Process-wide default settings, used when a service is constructed without one."""


__all__ = ["EngineSettings", "settings"]
