"""Tests for CompressionEngine."""

import math

import pytest

from prompt_engine.compression import (
    AdaptiveConfig,
    CompressionAlgorithm,
    CompressionConfig,
    CompressionEngine,
    CompressionOptions,
    CompressionRule,
    CompressionRuleType,
    CompressionStrategy,
    relaxed_ratio,
)
from prompt_engine.exceptions import CompressionError, UnsupportedAlgorithmError

VERBOSE = (
    "Basically, in order to deploy the service, you need to actually configure the cluster. "
    "It is important to note that the cluster must be very secure."
)


@pytest.fixture
def engine() -> CompressionEngine:
    return CompressionEngine()


class TestCompress:
    """Test the compress pipeline."""

    def test_empty_text(self, engine):
        result = engine.compress("", CompressionStrategy())
        assert (result.compressed_text, result.compression_ratio, result.quality_score, result.token_saved) == ("", 1.0, 1.0, 0)

    def test_syntactic_shortens_phrases(self, engine):
        text = "Due to the fact that it rained, we stayed."
        result = engine.compress(text, CompressionStrategy(algorithm=CompressionAlgorithm.SYNTACTIC))
        assert result.compressed_text == "Because it rained, we stayed."
        assert result.compression_ratio == pytest.approx(29 / 42)
        assert result.token_saved == 4

    def test_hybrid_removes_fillers(self, engine):
        text = "The deploy step is basically simple. You actually configure the cluster."
        result = engine.compress(text, CompressionStrategy())
        assert result.compressed_text == "The deploy step is simple. You configure the cluster."
        assert result.applied_rules == ()
        assert result.adaptive_retry is False

    def test_keywords_inside_rewritten_phrases_are_not_restored(self, engine):
        result = engine.compress(VERBOSE, CompressionStrategy())
        assert result.compressed_text == "To deploy the service, you need to configure the cluster. Note that the cluster must be very secure."

    def test_keyword_dropped_by_rule_is_restored_with_compacted_context(self, engine):
        strategy = CompressionStrategy(rules=[CompressionRule(id="no-cluster", type=CompressionRuleType.REMOVE, pattern=r"\bcluster\b")])
        result = engine.compress(VERBOSE, strategy)
        assert result.applied_rules == ("no-cluster",)
        assert result.compressed_text.endswith("cluster: To deploy the service, you need to configure the")
        assert len(result.compressed_text) <= len(VERBOSE)

    def test_compressing_output_again_changes_nothing(self, engine):
        strategy = CompressionStrategy(config=CompressionConfig(compression_ratio=0.3))
        once = engine.compress(VERBOSE, strategy).compressed_text
        assert engine.compress(once, strategy).compressed_text == once

    @pytest.mark.parametrize("algorithm", list(CompressionAlgorithm))
    def test_output_never_longer_than_input(self, engine, algorithm):
        doubling = CompressionRule(id="double", type=CompressionRuleType.REPLACE, pattern=r"\b(\w+)\b", replacement=r"\1 \1")
        result = engine.compress(VERBOSE, CompressionStrategy(algorithm=algorithm, rules=[doubling]))
        assert len(result.compressed_text) <= len(VERBOSE)
        assert result.compression_ratio <= 1.0
        assert result.applied_rules == ()

    @pytest.mark.parametrize("algorithm", list(CompressionAlgorithm))
    def test_ratio_is_literal_length_ratio(self, engine, algorithm):
        result = engine.compress(VERBOSE, CompressionStrategy(algorithm=algorithm))
        assert result.compression_ratio == len(result.compressed_text) / len(VERBOSE)
        assert result.token_saved == max(0, math.ceil((len(VERBOSE) - len(result.compressed_text)) / 4))
        assert 0.0 <= result.quality_score <= 1.0
        assert 0.0 <= result.metrics.confidence <= 1.0

    def test_semantic_restores_dropped_keywords(self, engine):
        result = engine.compress(VERBOSE, CompressionStrategy(algorithm=CompressionAlgorithm.SEMANTIC))
        lowered = result.compressed_text.lower()
        assert all(keyword.lower() in lowered for keyword in result.preserved_keywords)

    def test_caller_keywords_are_preserved(self, engine):
        strategy = CompressionStrategy(config=CompressionConfig(preserve_keywords=("cluster",)))
        result = engine.compress(VERBOSE, strategy, CompressionOptions(preserve_keywords=("service",)))
        assert "cluster" in result.preserved_keywords
        assert "service" in result.preserved_keywords

    def test_rules_reported(self, engine):
        strategy = CompressionStrategy(
            algorithm=CompressionAlgorithm.SYNTACTIC,
            rules=[CompressionRule(id="svc", type=CompressionRuleType.REPLACE, pattern=r"\bservice\b", replacement="svc")],
        )
        result = engine.compress(VERBOSE, strategy)
        assert result.applied_rules == ("svc",)
        assert "svc" in result.compressed_text

    def test_invalid_rule_raises(self, engine):
        strategy = CompressionStrategy(rules=[CompressionRule(id="bad", type=CompressionRuleType.REMOVE, pattern="[")])
        with pytest.raises(CompressionError):
            engine.compress(VERBOSE, strategy)

    def test_unknown_algorithm(self, engine):
        strategy = CompressionStrategy.model_construct(algorithm="zip")
        with pytest.raises(UnsupportedAlgorithmError):
            engine.compress(VERBOSE, strategy)


class TestAdaptive:
    """Test the adaptive second pass."""

    def test_relaxed_ratio(self):
        assert relaxed_ratio(0.5, 0.5) == pytest.approx(0.75)
        assert relaxed_ratio(0.5, 0.0) == pytest.approx(0.55)
        assert relaxed_ratio(0.9, 1.0) == pytest.approx(1.0)

    def test_retry_runs_below_threshold(self, engine):
        strategy = CompressionStrategy(
            config=CompressionConfig(compression_ratio=0.3, quality_threshold=1.0),
            adaptive=AdaptiveConfig(enabled=True, learning_rate=0.5),
        )
        result = engine.compress(VERBOSE, strategy)
        assert result.adaptive_retry is True
        assert result.compression_ratio == len(result.compressed_text) / len(VERBOSE)

    def test_retry_never_compresses_further_than_first_pass(self, engine):
        text = "The quick brown fox jumps over the dogs."
        config = CompressionConfig(compression_ratio=0.5, quality_threshold=0.9)
        first = engine.compress(text, CompressionStrategy(config=config))
        result = engine.compress(text, CompressionStrategy(config=config, adaptive=AdaptiveConfig(enabled=True)))
        assert result.adaptive_retry is True
        assert result.compression_ratio >= first.compression_ratio

    def test_no_retry_when_disabled(self, engine):
        strategy = CompressionStrategy(config=CompressionConfig(compression_ratio=0.3, quality_threshold=1.0))
        assert engine.compress(VERBOSE, strategy).adaptive_retry is False


class TestLearningStats:
    def test_every_call_is_recorded(self, engine):
        strategy = CompressionStrategy(id="tracked")
        engine.compress(VERBOSE, strategy)
        engine.compress("Another text to compress here.", strategy)
        stats = engine.get_learning_stats("tracked")
        assert stats.total_compressions == 2
        engine.clear_learning_data("tracked")
        assert engine.get_learning_stats("tracked") is None

    def test_empty_input_is_not_recorded(self, engine):
        engine.compress("   ", CompressionStrategy(id="blank"))
        assert engine.get_learning_stats("blank") is None


class TestExchangeOnlyFields:
    def test_fields_round_trip_without_changing_output(self, engine):
        plain = CompressionStrategy()
        annotated = CompressionStrategy(
            config=CompressionConfig(max_tokens=10),
            adaptive=AdaptiveConfig(feedback_loop=True, min_samples=1),
        )
        data = annotated.to_json_dict()
        assert (data["config"]["maxTokens"], data["adaptive"]["feedbackLoop"], data["adaptive"]["minSamples"]) == (10, True, 1)
        assert CompressionStrategy.model_validate(data) == annotated
        assert engine.compress(VERBOSE, annotated).compressed_text == engine.compress(VERBOSE, plain).compressed_text
