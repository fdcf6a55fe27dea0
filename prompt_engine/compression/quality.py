"""Compression quality assessment.

The composite score is a weighted mean of five 0..1 sub-scores. Structure
preservation only counts when the caller asked for it; weights are renormalized
over the sub-scores actually computed so the composite stays in 0..1.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from .text import list_marker_count, main_concepts, split_paragraphs, split_sentences, words

KEYWORD_WEIGHT = 0.3
SEMANTIC_WEIGHT = 0.25
RATIO_WEIGHT = 0.2
READABILITY_WEIGHT = 0.15
STRUCTURE_WEIGHT = 0.1


@dataclass(frozen=True, slots=True)
class QualityBreakdown:
    keyword_retention: float
    semantic_integrity: float
    ratio_fit: float
    readability: float
    structure: float | None
    overall: float


def keyword_retention(compressed: str, keywords: Sequence[str]) -> float:
    """Fraction of keywords still present (case-insensitive substring match)."""
    if not keywords:
        return 1.0
    lowered = compressed.lower()
    return sum(1 for keyword in keywords if keyword.lower() in lowered) / len(keywords)


def semantic_integrity(original: str, compressed: str) -> float:
    """Main-concept retention averaged with a sentence-count ratio proxy."""
    concepts = main_concepts(original)
    kept = set(main_concepts(compressed))
    concept_score = sum(1 for concept in concepts if concept in kept) / len(concepts) if concepts else 1.0
    original_sentences = len(split_sentences(original))
    sentence_score = min(len(split_sentences(compressed)) / original_sentences * 2, 1.0) if original_sentences else 1.0
    return (concept_score + sentence_score) / 2


def ratio_fit(ratio: float, target_ratio: float) -> float:
    """1.0 at the target ratio, falling linearly to 0 at a distance of 0.5."""
    return max(0.0, 1.0 - abs(ratio - target_ratio) * 2)


def readability(text: str) -> float:
    """Base 0.5 plus bonuses for sentence length band, punctuation density and lexical diversity."""
    tokens = words(text)
    if not tokens:
        return 0.0
    score = 0.5
    sentences = split_sentences(text)
    avg_length = sum(len(sentence) for sentence in sentences) / len(sentences)
    if 10 < avg_length < 120:
        score += 0.2
    punctuation = sum(1 for char in text if char in ",.;:!?，。！？")
    if 0.05 < punctuation / len(tokens) < 0.5:
        score += 0.2
    if len(set(tokens)) / len(tokens) > 0.4:
        score += 0.1
    return min(score, 1.0)


def structure_preservation(original: str, compressed: str) -> float:
    """Paragraph-count ratio averaged with list-marker-count ratio."""
    original_paragraphs = len(split_paragraphs(original))
    paragraph_score = min(len(split_paragraphs(compressed)) / original_paragraphs, 1.0) if original_paragraphs > 1 else 1.0
    original_lists = list_marker_count(original)
    list_score = min(list_marker_count(compressed) / original_lists, 1.0) if original_lists else 1.0
    return (paragraph_score + list_score) / 2


def assess_quality(original: str, compressed: str, keywords: Sequence[str], *, target_ratio: float, preserve_structure: bool) -> QualityBreakdown:
    ratio = len(compressed) / len(original) if original else 1.0
    scored = [
        (keyword_retention(compressed, keywords), KEYWORD_WEIGHT),
        (semantic_integrity(original, compressed), SEMANTIC_WEIGHT),
        (ratio_fit(ratio, target_ratio), RATIO_WEIGHT),
        (readability(compressed), READABILITY_WEIGHT),
    ]
    structure = structure_preservation(original, compressed) if preserve_structure else None
    if structure is not None:
        scored.append((structure, STRUCTURE_WEIGHT))
    overall = sum(score * weight for score, weight in scored) / sum(weight for _, weight in scored)
    return QualityBreakdown(
        keyword_retention=scored[0][0],
        semantic_integrity=scored[1][0],
        ratio_fit=scored[2][0],
        readability=scored[3][0],
        structure=structure,
        overall=round(min(max(overall, 0.0), 1.0), 4),
    )


def confidence(quality: float, text_complexity: float) -> float:
    """Quality nudged up for simple text and down for complex text."""
    if text_complexity < 0.3:
        quality += 0.1
    elif text_complexity > 0.7:
        quality -= 0.1
    return round(min(max(quality, 0.0), 1.0), 4)


__all__ = [
    "QualityBreakdown",
    "assess_quality",
    "confidence",
    "keyword_retention",
    "ratio_fit",
    "readability",
    "semantic_integrity",
    "structure_preservation",
]
