"""Bounded per-strategy compression history.

History is observability only: it reports averages and a quality trend, it never
changes how later compressions behave.
"""

import threading
from collections import deque
from dataclasses import dataclass

from .types import LearningStats, LearningTrend

TREND_WINDOW = 5
TREND_THRESHOLD = 0.05


@dataclass(frozen=True, slots=True)
class Sample:
    original_length: int
    compressed_length: int
    quality_score: float

    @property
    def ratio(self) -> float:
        return self.compressed_length / self.original_length if self.original_length else 1.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


class LearningHistory:
    """Most recent ``max_samples`` samples per strategy id."""

    def __init__(self, max_samples: int = 100) -> None:
        self._max_samples = max_samples
        self._samples: dict[str, deque[Sample]] = {}
        self._lock = threading.Lock()

    def record(self, strategy_id: str, original_length: int, compressed_length: int, quality_score: float) -> None:
        with self._lock:
            samples = self._samples.setdefault(strategy_id, deque(maxlen=self._max_samples))
            samples.append(Sample(original_length, compressed_length, quality_score))

    def samples(self, strategy_id: str) -> list[Sample]:
        with self._lock:
            return list(self._samples.get(strategy_id, ()))

    def stats(self, strategy_id: str) -> LearningStats | None:
        """Averages and trend, or None when nothing was recorded for ``strategy_id``."""
        samples = self.samples(strategy_id)
        if not samples:
            return None
        return LearningStats(
            total_compressions=len(samples),
            avg_compression_ratio=_mean([sample.ratio for sample in samples]),
            avg_quality_score=_mean([sample.quality_score for sample in samples]),
            trend=self._trend(samples),
        )

    @staticmethod
    def _trend(samples: list[Sample]) -> LearningTrend:
        # last window vs the window before it
        if len(samples) < TREND_WINDOW * 2:
            return LearningTrend.STABLE
        recent = _mean([sample.quality_score for sample in samples[-TREND_WINDOW:]])
        earlier = _mean([sample.quality_score for sample in samples[-TREND_WINDOW * 2 : -TREND_WINDOW]])
        if recent > earlier + TREND_THRESHOLD:
            return LearningTrend.IMPROVING
        if recent < earlier - TREND_THRESHOLD:
            return LearningTrend.DECLINING
        return LearningTrend.STABLE

    def clear(self, strategy_id: str | None = None) -> None:
        with self._lock:
            if strategy_id is None:
                self._samples.clear()
            else:
                self._samples.pop(strategy_id, None)


__all__ = ["LearningHistory", "Sample"]
