"""Text compression engine.

Pipeline for one ``compress`` call:

1. Preprocess (quotes, repeated punctuation, whitespace).
2. Analyze sentences, paragraphs, keywords and complexity.
3. Extract key information (keywords plus caller keywords, phrases, entities).
4. Run the strategy's algorithm: ``syntactic``, ``semantic`` or ``hybrid``. A result longer
   than the preprocessed input is replaced by a rule-free run, or by the input itself.
5. Assess quality against the original text.
6. If adaptive and below the quality threshold, relax the target ratio and run
   the hybrid pipeline once more.
7. Record the sample in the per-strategy learning history.
"""

import math
import time

from prompt_engine.exceptions import UnsupportedAlgorithmError
from prompt_engine.logging import get_engine_logger
from prompt_engine.settings import EngineSettings, settings

from .algorithms import MAX_PASS_ROUNDS, SEMANTIC_PASSES, SYNTACTIC_PASSES, apply_rules, restore_keywords, run_passes
from .history import LearningHistory
from .quality import QualityBreakdown, assess_quality, confidence
from .text import analyze, extract_key_information, preprocess
from .types import (
    CompressionAlgorithm,
    CompressionMetrics,
    CompressionOptions,
    CompressionResult,
    CompressionStrategy,
    KeyInformation,
    LearningStats,
)

logger = get_engine_logger(__name__)

MIN_RELAXATION = 0.1


def relaxed_ratio(target_ratio: float, learning_rate: float) -> float:
    """Move ``target_ratio`` toward 1.0 by ``learning_rate`` of the remaining distance."""
    step = min(max(learning_rate, MIN_RELAXATION), 1.0)
    return min(target_ratio + (1.0 - target_ratio) * step, 1.0)


class CompressionEngine:
    """Compresses text according to a CompressionStrategy.

    The engine is stateless apart from its learning history, which is bounded by
    ``EngineSettings.learning_history_size``.
    """

    def __init__(self, *, engine_settings: EngineSettings | None = None, history: LearningHistory | None = None) -> None:
        self._settings = engine_settings or settings
        self._history = history or LearningHistory(self._settings.learning_history_size)

    def compress(self, text: str, strategy: CompressionStrategy, options: CompressionOptions | None = None) -> CompressionResult:
        """Compress ``text`` with ``strategy``.

        Args:
            text: Text to compress.
            strategy: Algorithm, rules and adaptive settings.
            options: Per-call options. Defaults come from ``strategy.config``.

        Raises:
            UnsupportedAlgorithmError: If the strategy names an unknown algorithm.
            CompressionError: If a declared rule has an invalid pattern.
        """
        started = time.perf_counter()
        options = options or CompressionOptions.from_strategy(strategy)
        if not text.strip():
            return CompressionResult(original_text=text, compressed_text=text, compression_ratio=1.0, quality_score=1.0, token_saved=0)

        prepared = preprocess(text, preserve_structure=options.preserve_structure)
        analysis = analyze(prepared)
        key_info = extract_key_information(prepared, [*strategy.config.preserve_keywords, *options.preserve_keywords])

        compressed, applied = self._run_non_expanding(strategy.algorithm, prepared, len(text), strategy, key_info, options.target_ratio)
        quality = self._assess(text, compressed, key_info, options, options.target_ratio)

        adaptive_retry = False
        if strategy.adaptive.enabled and quality.overall < options.quality_threshold:
            adaptive_retry = True
            target = relaxed_ratio(options.target_ratio, strategy.adaptive.learning_rate)
            logger.info(f"Compression quality {quality.overall:.2f} below {options.quality_threshold:.2f}; retrying strategy '{strategy.id}' at ratio {target:.2f}")
            retry_text, retry_applied = self._run_non_expanding(CompressionAlgorithm.HYBRID, prepared, len(text), strategy, key_info, target)
            if len(retry_text) >= len(compressed):
                compressed, applied = retry_text, retry_applied
                quality = self._assess(text, compressed, key_info, options, target)

        result = CompressionResult(
            original_text=text,
            compressed_text=compressed,
            compression_ratio=len(compressed) / len(text),
            quality_score=quality.overall,
            token_saved=max(0, math.ceil((len(text) - len(compressed)) / 4)),
            preserved_keywords=key_info.keywords,
            applied_rules=tuple(applied),
            metrics=CompressionMetrics(
                processing_time_ms=(time.perf_counter() - started) * 1000,
                confidence=confidence(quality.overall, analysis.complexity),
            ),
            adaptive_retry=adaptive_retry,
        )
        self._history.record(strategy.id, len(text), len(compressed), quality.overall)
        return result

    @staticmethod
    def _assess(original: str, compressed: str, key_info: KeyInformation, options: CompressionOptions, target_ratio: float) -> QualityBreakdown:
        return assess_quality(original, compressed, key_info.keywords, target_ratio=target_ratio, preserve_structure=options.preserve_structure)

    @staticmethod
    def _run(
        algorithm: CompressionAlgorithm,
        text: str,
        reference_length: int,
        strategy: CompressionStrategy,
        key_info: KeyInformation,
        target_ratio: float,
    ) -> tuple[str, list[str]]:
        applied: list[str] = []
        match algorithm:
            case CompressionAlgorithm.SYNTACTIC:
                text = run_passes(text, SYNTACTIC_PASSES, reference_length=reference_length, target_ratio=target_ratio)
                text, applied = apply_rules(text, strategy.rules)
            case CompressionAlgorithm.SEMANTIC:
                compressed = run_passes(text, SEMANTIC_PASSES, reference_length=reference_length, target_ratio=target_ratio)
                text = restore_keywords(text, compressed, key_info)
            case CompressionAlgorithm.HYBRID:
                limit = target_ratio * reference_length
                compressed = text
                # semantic removals can expose new syntactic matches and vice versa
                for _ in range(MAX_PASS_ROUNDS):
                    before = compressed
                    compressed = run_passes(compressed, SYNTACTIC_PASSES, reference_length=reference_length, target_ratio=target_ratio)
                    compressed, matched = apply_rules(compressed, strategy.rules)
                    applied.extend(rule_id for rule_id in matched if rule_id not in applied)
                    compressed = run_passes(compressed, SEMANTIC_PASSES, reference_length=reference_length, target_ratio=target_ratio)
                    if compressed == before or len(compressed) <= limit:
                        break
                text = restore_keywords(text, compressed, key_info)
            case _:
                raise UnsupportedAlgorithmError(f"Unsupported compression algorithm: {algorithm}")
        return text, applied

    @classmethod
    def _run_non_expanding(
        cls,
        algorithm: CompressionAlgorithm,
        text: str,
        reference_length: int,
        strategy: CompressionStrategy,
        key_info: KeyInformation,
        target_ratio: float,
    ) -> tuple[str, list[str]]:
        compressed, applied = cls._run(algorithm, text, reference_length, strategy, key_info, target_ratio)
        if len(compressed) <= len(text):
            return compressed, applied
        logger.warning(f"Compression rules of strategy '{strategy.id}' lengthened the text ({len(text)} -> {len(compressed)} chars); retrying without rules")
        compressed, _ = cls._run(algorithm, text, reference_length, strategy.model_copy(update={"rules": ()}), key_info, target_ratio)
        if len(compressed) <= len(text):
            return compressed, []
        return text, []

    def get_learning_stats(self, strategy_id: str) -> LearningStats | None:
        """Averages and quality trend for ``strategy_id``, or None without samples."""
        return self._history.stats(strategy_id)

    def clear_learning_data(self, strategy_id: str | None = None) -> None:
        self._history.clear(strategy_id)


__all__ = ["CompressionEngine", "relaxed_ratio"]
