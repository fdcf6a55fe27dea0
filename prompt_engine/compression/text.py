"""Text normalization and analysis helpers for the compression engine.

Everything here is pure string processing. Sentences end at ``. ! ?`` (and the
full-width ``。！？``); lines are the unit of structure, so list markers and
headings are detached before a pass rewrites a line and reattached afterwards.
"""

import math
import re
from collections import Counter
from collections.abc import Callable, Iterable

from .types import KeyInformation, TextAnalysis

STOP_WORDS = frozenset(
    """
    a an the and or but nor so yet if then than that this these those there here
    is are was were be been being am do does did done have has had having
    i me my we our you your he him his she her it its they them their what which who whom whose
    of on at in into onto to from by for with without about above below over under
    up down out off through during before after again further once
    as not no can could will would shall should may might must just also too
    all any both each few more most other some such only own same very really
    quite rather extremely highly particularly especially truly incredibly absolutely totally
    um uh erm basically actually literally obviously clearly course think believe opinion honest know
    """.split()
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|(?<=[。！？])")
_SENTENCE_END = re.compile(r"[.!?。！？]+$")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_LINE_MARKER = re.compile(r"^(\s*(?:[-*•]|\d+[.)]|#{1,6})\s+)")
_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s", re.MULTILINE)
_WORD = re.compile(r"[\w']+")
_PUNCTUATION = re.compile(r"[,.;:!?()\[\]{}，。！？]")

_QUOTES = str.maketrans({"“": '"', "”": '"', "„": '"', "«": '"', "»": '"', "‘": "'", "’": "'", "‚": "'"})
_REPEATED_PUNCT = re.compile(r"([!?,;:。！？，])\1+")
_ELLIPSIS = re.compile(r"\.{2,}")


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def preprocess(text: str, *, preserve_structure: bool = True) -> str:
    """Normalize quotes, repeated punctuation and whitespace.

    With ``preserve_structure`` line breaks survive (runs of blank lines collapse to
    one); otherwise all whitespace collapses to single spaces.
    """
    text = text.translate(_QUOTES)
    text = _REPEATED_PUNCT.sub(r"\1", text)
    text = _ELLIPSIS.sub(".", text)
    if not preserve_structure:
        return re.sub(r"\s+", " ", text).strip()
    lines = [re.sub(r"[ \t\f\v]+", " ", line).strip() for line in text.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def tidy(text: str) -> str:
    """Collapse spaces left behind by removals without touching line breaks."""
    lines = []
    for line in text.split("\n"):
        line = re.sub(r"[ \t]{2,}", " ", line)
        line = re.sub(r"\s+([,.;:!?])", r"\1", line)
        line = re.sub(r"^([,;:]\s*)+", "", line.strip())
        lines.append(line)
    return "\n".join(lines).strip()


def map_lines(text: str, transform: Callable[[str], str]) -> str:
    """Apply ``transform`` to the body of every non-empty line, keeping list markers and headings."""
    out = []
    for line in text.split("\n"):
        if not line.strip():
            out.append(line)
            continue
        marker_match = _LINE_MARKER.match(line)
        marker = marker_match.group(1) if marker_match else ""
        body = transform(line[len(marker) :])
        if body.strip() or not marker:
            out.append(marker + body)
    return "\n".join(out)


# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------


def split_sentences(text: str) -> list[str]:
    """Split text into sentences, keeping terminators."""
    sentences: list[str] = []
    for line in text.split("\n"):
        sentences.extend(part.strip() for part in _SENTENCE_SPLIT.split(line) if part.strip())
    return sentences


def sentence_terminator(sentence: str) -> str:
    match = _SENTENCE_END.search(sentence)
    return match.group() if match else ""


def split_paragraphs(text: str) -> list[str]:
    return [paragraph for paragraph in _PARAGRAPH_SPLIT.split(text) if paragraph.strip()]


def words(text: str) -> list[str]:
    """Lower-cased word tokens."""
    return _WORD.findall(text.lower())


def list_marker_count(text: str) -> int:
    return len(_LIST_MARKER.findall(text))


def jaccard(first: str, second: str) -> float:
    """Bag-of-words Jaccard similarity of two sentences."""
    a, b = set(words(first)), set(words(second))
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


def extract_keywords(text: str, limit: int = 10) -> list[str]:
    """Most frequent non-stop-words, ties broken by first occurrence."""
    counts = Counter(word for word in words(text) if len(word) > 1 and word not in STOP_WORDS and not word.isdigit())
    return [word for word, _ in counts.most_common(limit)]


def complexity(text: str, sentences: list[str]) -> float:
    """0..1 score from sentence length, lexical diversity, punctuation density and nesting."""
    if not text.strip():
        return 0.0
    score = 0.0
    if sentences:
        avg_length = sum(len(sentence) for sentence in sentences) / len(sentences)
        score += min(avg_length / 100, 0.3)
    tokens = text.lower().split()
    if tokens:
        score += len(set(tokens)) / len(tokens) * 0.3
    score += min(len(_PUNCTUATION.findall(text)) / len(text), 0.2)
    nesting = max(text.count("("), text.count('"') / 2)
    score += min(nesting / 10, 0.2)
    return min(score, 1.0)


def analyze(text: str) -> TextAnalysis:
    sentences = split_sentences(text)
    return TextAnalysis(
        sentences=tuple(sentences),
        paragraphs=tuple(split_paragraphs(text)),
        keywords=tuple(extract_keywords(text)),
        complexity=complexity(text, sentences),
    )


_CUE_PHRASES = (
    re.compile(r"\b(?:must|should|needs? to|required to|requires?)\s+([^.!?\n]{1,20})", re.IGNORECASE),
    re.compile(r"\b(?:note|important(?:ly)?|key|critical)\s*:?\s+([^.!?\n]{1,20})", re.IGNORECASE),
    re.compile(r"\b(?:including|such as|for example|e\.g\.)\s*:?\s*([^.!?\n]{1,30})", re.IGNORECASE),
)
_CUE_WORDS = ("important", "must", "required", "need", "note", "key", "critical", "essential", "always", "never")
_NAME = re.compile(r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b")
_DATE = re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b")
_NUMBER = re.compile(r"\d+(?:\.\d+)?%?")
_CONCEPTS = (
    re.compile(r"\b(\w+)\s+(?:is|are|means|represents)\b", re.IGNORECASE),
    re.compile(r"\b(?:needs?|requires?|must)\s+(\w+)", re.IGNORECASE),
    re.compile(r"\b(?:includes?|including|contains?|has)\s+(\w+)", re.IGNORECASE),
)


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def key_phrases(text: str, limit: int = 10) -> list[str]:
    """Quoted spans, then spans introduced by cue words (must, important, including...)."""
    phrases = re.findall(r'"([^"]+)"', text)
    for pattern in _CUE_PHRASES:
        phrases.extend(match.group(1).strip() for match in pattern.finditer(text))
    return _unique(phrase for phrase in phrases if phrase)[:limit]


def important_sentences(sentences: list[str]) -> list[str]:
    """Top 30% of sentences scored by cue words, position, length band and digits."""
    if not sentences:
        return []
    last = len(sentences) - 1

    def score(index: int, sentence: str) -> int:
        lowered = sentence.lower()
        value = sum(2 for word in _CUE_WORDS if word in lowered)
        if index in (0, last):
            value += 1
        if 20 < len(sentence) < 100:
            value += 1
        if any(char.isdigit() for char in sentence):
            value += 1
        return value

    ranked = sorted(enumerate(sentences), key=lambda item: -score(*item))
    return [sentence for _, sentence in ranked[: math.ceil(len(sentences) * 0.3)]]


def entities(text: str) -> list[str]:
    found = _NAME.findall(text) + _DATE.findall(text) + _NUMBER.findall(text)[:5]
    return _unique(found)


def main_concepts(text: str) -> list[str]:
    """Words that are defined, required or included by the text."""
    return _unique(match.group(1).lower() for pattern in _CONCEPTS for match in pattern.finditer(text))


def extract_key_information(text: str, preserve_keywords: Iterable[str] = ()) -> KeyInformation:
    sentences = split_sentences(text)
    return KeyInformation(
        keywords=tuple(_unique([*extract_keywords(text), *preserve_keywords])),
        key_phrases=tuple(key_phrases(text)),
        important_sentences=tuple(important_sentences(sentences)),
        entities=tuple(entities(text)),
    )


__all__ = [
    "STOP_WORDS",
    "analyze",
    "complexity",
    "entities",
    "extract_key_information",
    "extract_keywords",
    "important_sentences",
    "jaccard",
    "key_phrases",
    "list_marker_count",
    "main_concepts",
    "map_lines",
    "preprocess",
    "sentence_terminator",
    "split_paragraphs",
    "split_sentences",
    "tidy",
    "words",
]
