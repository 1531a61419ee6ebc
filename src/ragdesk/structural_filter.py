"""
Heuristic detection of covers, tables of contents and other layout chunks.

Such chunks share many words with typical questions but carry no answerable
content, so they are dropped before embedding.
"""
from __future__ import annotations

import re

TOC_KEYWORDS = (
    "índice", "indice", "table of contents", "contents", "contenido", "contenidos",
)
COVER_KEYWORDS = (
    "portada", "cover", "autor", "author", "versión", "version", "fecha", "date",
    "confidencial", "confidential", "revisión", "revision", "prepared by", "elaborado por",
)

MEANINGFUL_SENTENCE_WORDS = 6
TOC_KEYWORD_LINE_RATIO = 0.2
TOC_STRUCTURAL_LINE_RATIO = 0.6
TOC_MAX_AVG_WORDS_PER_LINE = 8
TOC_MIN_LINES = 4
TOC_MIN_DOT_LEADER_LINES = 3
COVER_MAX_WORDS = 150
COVER_MAX_LINES = 15
DIGIT_RATIO_THRESHOLD = 0.6
DIGIT_TEXT_MAX_WORDS = 40
LOW_VOCAB_MAX_UNIQUE = 4
LOW_VOCAB_MAX_WORDS = 10

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+|\n")
_BULLET_BREAK_RE = re.compile(r"\n[ \t]*[-*+•·–][ \t]+")
_NUMBERED_LINE_RE = re.compile(r"^(?:\d+(?:\.\d+)*\.?|[ivxlcdm]+\.)\s+", re.IGNORECASE)
_DOT_LEADER_RE = re.compile(r"\.{3,}\s*\d+$")


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)")


_TOC_KEYWORD_RE = _keyword_pattern(TOC_KEYWORDS)
_COVER_KEYWORD_RE = _keyword_pattern(COVER_KEYWORDS)


def has_meaningful_sentence(text: str) -> bool:
    """True when any sentence carries at least six words.

    A line break ends a sentence unless the next line is a bullet item; bullet
    items continue the line that introduces them.
    """
    for sentence in _SENTENCE_SPLIT_RE.split(_BULLET_BREAK_RE.sub(" ", text)):
        if len(sentence.split()) >= MEANINGFUL_SENTENCE_WORDS:
            return True
    return False


def _digit_ratio(text: str) -> float:
    digits = sum(1 for ch in text if ch.isdigit())
    alpha = sum(1 for ch in text if ch.isalpha())
    total = digits + alpha
    return digits / total if total else 0.0


def _looks_like_toc(lower: str, lines: list[str], word_count: int) -> bool:
    if not lines:
        return False
    numbered = sum(1 for line in lines if _NUMBERED_LINE_RE.match(line))
    dot_leaders = sum(1 for line in lines if _DOT_LEADER_RE.search(line))
    structural_ratio = (numbered + dot_leaders) / len(lines)
    avg_words_per_line = word_count / len(lines)

    if _TOC_KEYWORD_RE.search(lower) and structural_ratio >= TOC_KEYWORD_LINE_RATIO:
        return True
    if (
        structural_ratio >= TOC_STRUCTURAL_LINE_RATIO
        and avg_words_per_line <= TOC_MAX_AVG_WORDS_PER_LINE
        and len(lines) >= TOC_MIN_LINES
    ):
        return True
    return dot_leaders >= TOC_MIN_DOT_LEADER_LINES


def _looks_like_cover(lower: str, lines: list[str], word_count: int) -> bool:
    return (
        _COVER_KEYWORD_RE.search(lower) is not None
        and word_count <= COVER_MAX_WORDS
        and len(lines) <= COVER_MAX_LINES
    )


def is_structural(chunk: str) -> bool:
    """Returns True when a chunk looks like a cover, index or table of contents."""
    text = str(chunk or "").strip()
    if not text:
        return True
    # Prose always wins over layout signals.
    if has_meaningful_sentence(text):
        return False

    lines = [line.strip() for line in re.split(r"\n+", text) if line.strip()]
    words = text.split()
    word_count = len(words)
    lower = text.lower()

    if _looks_like_toc(lower, lines, word_count):
        return True
    if _looks_like_cover(lower, lines, word_count):
        return True
    if _digit_ratio(text) >= DIGIT_RATIO_THRESHOLD and word_count <= DIGIT_TEXT_MAX_WORDS:
        return True
    unique_words = {word.lower() for word in words}
    return len(unique_words) <= LOW_VOCAB_MAX_UNIQUE and word_count <= LOW_VOCAB_MAX_WORDS
