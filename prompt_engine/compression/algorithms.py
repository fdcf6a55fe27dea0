"""Compression passes.

Each pass is a pure ``str -> str`` function applied line by line so paragraph and
list structure survive. ``run_passes`` applies passes least aggressive first and
stops as soon as the text is short enough.
"""

import re
from collections.abc import Callable, Sequence

from prompt_engine.exceptions import CompressionError

from .text import jaccard, map_lines, sentence_terminator, split_sentences, tidy, words
from .types import CompressionRule, CompressionRuleType, KeyInformation

Pass = Callable[[str], str]

FILLER_WORDS = ("um", "uh", "erm", "you know", "basically", "actually", "literally", "kind of", "sort of", "I mean")

COMMON_PHRASES = {
    "due to the fact that": "because",
    "in spite of the fact that": "although",
    "it is important to note that": "note that",
    "at this point in time": "now",
    "in the event that": "if",
    "for the purpose of": "for",
    "in order to": "to",
    "with regard to": "regarding",
    "with respect to": "regarding",
    "a large number of": "many",
    "the majority of": "most",
    "in addition to": "besides",
    "has the ability to": "can",
    "is able to": "can",
    "are able to": "can",
    "prior to": "before",
    "in the near future": "soon",
    "as a matter of fact": "in fact",
    "in other words": "i.e.",
    "that is to say": "i.e.",
    "all things considered": "overall",
}

REDUNDANT_EXPRESSIONS = (
    "it goes without saying that",
    "needless to say",
    "as we all know",
    "as you know",
    "in my opinion",
    "to be honest",
    "I think that",
    "I believe that",
    "I think",
    "I believe",
    "of course",
    "obviously",
    "clearly",
)

INTENSIFIERS = ("very", "really", "extremely", "quite", "highly", "particularly", "especially", "truly", "incredibly", "absolutely", "totally")

CONNECTIVES = ("furthermore", "moreover", "additionally", "in addition", "besides", "also")

LONG_SENTENCE_CHARS = 80
MERGE_SIMILARITY = 0.7
RESTORE_CONTEXT_CHARS = 50
MAX_PASS_ROUNDS = 3


def _alternation(phrases: Sequence[str]) -> str:
    return "|".join(re.escape(phrase).replace(r"\ ", r"\s+") for phrase in sorted(phrases, key=len, reverse=True))


def _removal_pattern(phrases: Sequence[str]) -> re.Pattern[str]:
    # the following word character is captured so a removed sentence opener can hand its capital on
    return re.compile(rf"\b(?:{_alternation(phrases)})\b[,:]?\s*(\w)?", re.IGNORECASE)


def _remove(pattern: re.Pattern[str], text: str) -> str:
    def replace(match: re.Match[str]) -> str:
        follower = match.group(1) or ""
        if follower and match.group(0)[0].isupper():
            return follower.upper()
        return follower

    # removal can expose a new match, e.g. "very very"
    while True:
        text, count = pattern.subn(replace, text)
        if not count:
            return text


_FILLERS = _removal_pattern(FILLER_WORDS)
_REDUNDANT = _removal_pattern(REDUNDANT_EXPRESSIONS)
_INTENSIFIERS = _removal_pattern(INTENSIFIERS)
_PHRASES = re.compile(rf"\b(?:{_alternation(list(COMMON_PHRASES))})\b", re.IGNORECASE)
_CONNECTIVES = re.compile(rf"\b(?:{_alternation(CONNECTIVES)})\s*,\s*(\w)?", re.IGNORECASE)
_RELATIVE_CLAUSE = re.compile(r",\s*(?:which|that)\s+(?:is|are|was|were)\s+", re.IGNORECASE)
# every span the built-in passes rewrite on purpose
_DICTIONARY = re.compile(rf"\b(?:{_alternation([*FILLER_WORDS, *COMMON_PHRASES, *REDUNDANT_EXPRESSIONS, *INTENSIFIERS, *CONNECTIVES])})\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Syntactic passes
# ---------------------------------------------------------------------------


def simplify_punctuation(text: str) -> str:
    text = re.sub(r"([,;:!?])\1+", r"\1", text)
    text = re.sub(r"\.{2,}", ".", text)
    return tidy(text)


def remove_fillers(text: str) -> str:
    return tidy(_remove(_FILLERS, text))


def _shorten(match: re.Match[str]) -> str:
    short = COMMON_PHRASES[re.sub(r"\s+", " ", match.group(0).lower())]
    return short[:1].upper() + short[1:] if match.group(0)[0].isupper() else short


def shorten_phrases(text: str) -> str:
    return _PHRASES.sub(_shorten, text)


SYNTACTIC_PASSES: tuple[Pass, ...] = (simplify_punctuation, remove_fillers, shorten_phrases)


def apply_rules(text: str, rules: Sequence[CompressionRule]) -> tuple[str, list[str]]:
    """Apply enabled ``remove``/``replace`` rules by descending priority.

    Returns the rewritten text and the ids of rules that matched.

    Raises:
        CompressionError: If a rule pattern is not a valid regular expression.
    """
    applied: list[str] = []
    for rule in sorted(rules, key=lambda r: -r.priority):
        if not rule.enabled or rule.type not in (CompressionRuleType.REMOVE, CompressionRuleType.REPLACE):
            continue
        replacement = "" if rule.type == CompressionRuleType.REMOVE else rule.replacement
        try:
            text, count = re.subn(rule.pattern, replacement, text)
        except re.error as e:
            raise CompressionError(f"Compression rule '{rule.id}' has an invalid pattern: {e}") from e
        if count:
            applied.append(rule.id)
    return tidy(text), applied


# ---------------------------------------------------------------------------
# Semantic passes
# ---------------------------------------------------------------------------


def remove_redundant_expressions(text: str) -> str:
    return tidy(_remove(_REDUNDANT, text))


def _merge_pair(first: str, second: str) -> str:
    known = set(words(first))
    novel = [word for word in re.findall(r"[\w']+", second) if word.lower() not in known]
    if not novel:
        return first
    terminator = sentence_terminator(first)
    body = first[: len(first) - len(terminator)] if terminator else first
    return f"{body}, {' '.join(novel)}{terminator}"


def _merge_line(line: str) -> str:
    sentences = split_sentences(line)
    if len(sentences) < 2:
        return line
    merged: list[str] = []
    for sentence in sentences:
        if merged and jaccard(merged[-1], sentence) > MERGE_SIMILARITY:
            merged[-1] = _merge_pair(merged[-1], sentence)
        else:
            merged.append(sentence)
    return " ".join(merged)


def merge_similar_sentences(text: str) -> str:
    """Fold each sentence into its predecessor when their word overlap is high."""
    return map_lines(text, _merge_line)


def _compress_sentence(sentence: str) -> str:
    if len(sentence) <= LONG_SENTENCE_CHARS:
        return sentence
    sentence = _remove(_INTENSIFIERS, sentence)
    sentence = _remove(_CONNECTIVES, sentence)
    return _RELATIVE_CLAUSE.sub(", ", sentence)


def compress_long_sentences(text: str) -> str:
    return tidy(map_lines(text, lambda line: " ".join(_compress_sentence(s) for s in split_sentences(line))))


SEMANTIC_PASSES: tuple[Pass, ...] = (remove_redundant_expressions, merge_similar_sentences, compress_long_sentences)


def _clip(context: str) -> str:
    if len(context) > RESTORE_CONTEXT_CHARS:
        cut = context[:RESTORE_CONTEXT_CHARS]
        if not context[RESTORE_CONTEXT_CHARS].isspace() and " " in cut:
            cut = cut.rsplit(" ", 1)[0]
        context = cut
    return context.strip().rstrip(" ,;:")


def restore_keywords(original: str, compressed: str, key_info: KeyInformation, *, max_length: int | None = None) -> str:
    """Append ``keyword: context`` for every keyword the passes dropped.

    Keywords that only occur inside phrases the built-in passes rewrite are not
    restored. The context is the first sentence mentioning the keyword, run
    through every built-in pass and clipped on a word boundary. A fragment is
    only appended while the result stays within ``max_length`` (the length of
    ``original`` by default), so restoring never makes the text longer than its
    input.
    """
    budget = len(original) if max_length is None else max_length
    masked = _DICTIONARY.sub(" ", original).lower()
    lowered = compressed.lower()
    result = compressed
    for keyword in key_info.keywords:
        needle = keyword.lower()
        if not needle or needle in lowered or needle not in masked:
            continue
        sentence = next((s for s in split_sentences(original) if needle in _DICTIONARY.sub(" ", s).lower()), "")
        for compression_pass in (*SYNTACTIC_PASSES, *SEMANTIC_PASSES):
            sentence = compression_pass(sentence)
        fragment = f"{keyword}: {_clip(sentence)}".rstrip(": ")
        candidate = f"{result} {fragment}" if result else fragment
        if len(candidate) > budget:
            continue
        result = candidate
        lowered = result.lower()
    return result


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------


def run_passes(text: str, passes: Sequence[Pass], *, reference_length: int, target_ratio: float) -> str:
    """Apply ``passes`` in order until ``len(text) <= target_ratio * reference_length``.

    The pass list is repeated for up to ``MAX_PASS_ROUNDS`` rounds while a round
    still changes the text, so a second run over the output finds nothing left to do.
    """
    limit = target_ratio * reference_length
    for _ in range(MAX_PASS_ROUNDS):
        before = text
        for compression_pass in passes:
            if len(text) <= limit:
                return text
            text = compression_pass(text)
        if text == before:
            break
    return text


__all__ = [
    "COMMON_PHRASES",
    "CONNECTIVES",
    "FILLER_WORDS",
    "INTENSIFIERS",
    "MAX_PASS_ROUNDS",
    "REDUNDANT_EXPRESSIONS",
    "SEMANTIC_PASSES",
    "SYNTACTIC_PASSES",
    "apply_rules",
    "compress_long_sentences",
    "merge_similar_sentences",
    "remove_fillers",
    "remove_redundant_expressions",
    "restore_keywords",
    "run_passes",
    "shorten_phrases",
    "simplify_punctuation",
]
