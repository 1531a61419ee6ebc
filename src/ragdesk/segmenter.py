"""
Paragraph/sentence aware text segmentation.

Text is packed paragraph by paragraph into chunks of at most ``chunk_size``
characters. Oversized paragraphs are broken into sentences, and sentences
without usable punctuation are sliced at word boundaries. Each new chunk is
seeded with the tail of the previous one so context survives the cut; a
piece that cannot fit beside that seed is cut further instead of dropping it.
"""
from __future__ import annotations

import re
from collections import deque
from typing import Any

from langchain_text_splitters import TextSplitter

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "
FALLBACK_FRAGMENT_CHARS = 800

PIECE_PARAGRAPH = "paragraph"
PIECE_SENTENCE = "sentence"
PIECE_FRAGMENT = "fragment"

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE = re.compile(r"([.!?])\s+(?=[A-ZÁÉÍÓÚÑÜ])")
_TRAILING_WORD_RE = re.compile(r"([^\s(\"'¿¡]+)\.$")

# Titles and reference markers that end with a period mid-sentence.
ABBREVIATIONS = frozenset({
    "sr", "sra", "srta", "dr", "dra", "prof", "ing", "lic",
    "mr", "mrs", "ms", "etc", "vs", "p", "pp", "ej", "pág", "págs",
    "no", "fig", "cap", "art", "e.g", "i.e",
})
OVERLAP_BOUNDARIES = ("\n", ".", " ")


def normalize_line_endings(text: str) -> str:
    return str(text or "").replace("\r\n", "\n").replace("\r", "\n")


def split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text) if p.strip()]


def _ends_with_abbreviation(fragment: str) -> bool:
    match = _TRAILING_WORD_RE.search(fragment[-12:])
    if not match:
        return False
    return match.group(1).lower() in ABBREVIATIONS


def split_fixed_width(text: str, width: int) -> list[str]:
    """
    Slices text into ``width``-sized fragments.
    Breaks at the last interior space when it falls past the window midpoint.
    """
    width = max(1, int(width))
    fragments: list[str] = []
    index = 0
    while index < len(text):
        window = text[index:index + width]
        last_space = window.rfind(" ")
        if last_space > width * 0.5 and index + width < len(text):
            fragments.append(text[index:index + last_space].strip())
            index += last_space + 1
        else:
            fragments.append(window.strip())
            index += width
    return [f for f in fragments if f]


def split_sentences(text: str) -> list[str]:
    """Splits on ., ! or ? followed by whitespace and an uppercase letter."""
    sentences: list[str] = []
    start = 0
    for match in _SENTENCE_END_RE.finditer(text):
        candidate = text[start:match.start() + 1]
        if match.group(1) == "." and _ends_with_abbreviation(candidate):
            continue
        candidate = candidate.strip()
        if candidate:
            sentences.append(candidate)
        start = match.end()
    tail = text[start:].strip()
    if tail:
        sentences.append(tail)
    return sentences


def overlap_tail(chunk: str, overlap: int) -> str:
    """
    Returns the last ``overlap`` characters of a chunk, moved forward to the
    first newline, period or space so the seed never starts mid-word.
    """
    if overlap <= 0:
        return ""
    if len(chunk) <= overlap:
        return chunk.strip()
    tail = chunk[-overlap:]
    for boundary in OVERLAP_BOUNDARIES:
        position = tail.find(boundary)
        if position < 0:
            continue
        remainder = tail[position + 1:].strip()
        if remainder:
            return remainder
    return tail.strip()


class ParagraphSentenceSplitter(TextSplitter):
    """Splits text along paragraphs, then sentences, then word-bounded slices."""

    def __init__(self, chunk_size: int = 1200, chunk_overlap: int = 200, **kwargs: Any):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0:
            raise ValueError(f"chunk_overlap must be non-negative, got {chunk_overlap}")
        if chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        super().__init__(chunk_size=chunk_size, chunk_overlap=chunk_overlap, **kwargs)
        self.fallback_width = min(FALLBACK_FRAGMENT_CHARS, chunk_size)

    def _sentence_pieces(self, paragraph: str) -> list[str]:
        pieces: list[str] = []
        for sentence in split_sentences(paragraph):
            if len(sentence) > self._chunk_size:
                pieces.extend(split_fixed_width(sentence, self.fallback_width))
            else:
                pieces.append(sentence)
        return pieces

    def _break_down(self, piece: str, separator: str, kind: str) -> list[tuple[str, str, str]]:
        """Smaller pieces for a piece that cannot sit next to the overlap seed."""
        if kind == PIECE_PARAGRAPH:
            sentences = self._sentence_pieces(piece)
            if len(sentences) > 1:
                return [
                    (sentence, separator if index == 0 else SENTENCE_SEPARATOR, PIECE_SENTENCE)
                    for index, sentence in enumerate(sentences)
                ]
        # Any seed plus separator fits next to a fragment of this width.
        width = self._chunk_size - self._chunk_overlap - len(PARAGRAPH_SEPARATOR)
        if width <= 0 or len(piece) <= width:
            return []
        fragments = split_fixed_width(piece, width)
        if len(fragments) < 2:
            return []
        return [
            (fragment, separator if index == 0 else SENTENCE_SEPARATOR, PIECE_FRAGMENT)
            for index, fragment in enumerate(fragments)
        ]

    def _fits(self, buffer: str, separator: str, piece: str) -> bool:
        return len(buffer) + len(separator) + len(piece) <= self._chunk_size

    def split_text(self, text: str) -> list[str]:
        paragraphs = split_paragraphs(normalize_line_endings(text))
        if not paragraphs:
            return []

        pending: deque[tuple[str, str, str]] = deque()
        for paragraph in paragraphs:
            if len(paragraph) > self._chunk_size:
                pending.extend(
                    (piece, PARAGRAPH_SEPARATOR if index == 0 else SENTENCE_SEPARATOR, PIECE_SENTENCE)
                    for index, piece in enumerate(self._sentence_pieces(paragraph))
                )
            else:
                pending.append((paragraph, PARAGRAPH_SEPARATOR, PIECE_PARAGRAPH))

        chunks: list[str] = []
        buffer = ""
        # True while the buffer holds nothing but the seed taken from the last chunk.
        seed_only = False
        while pending:
            piece, separator, kind = pending.popleft()
            if not buffer:
                buffer, seed_only = piece, False
                continue
            if self._fits(buffer, separator, piece):
                buffer, seed_only = f"{buffer}{separator}{piece}", False
                continue
            if not seed_only:
                chunks.append(buffer.strip())
                buffer = overlap_tail(buffer, self._chunk_overlap)
                if not buffer or self._fits(buffer, separator, piece):
                    buffer, seed_only = (f"{buffer}{separator}{piece}" if buffer else piece), False
                    continue
                seed_only = True
            smaller = self._break_down(piece, separator, kind)
            if smaller:
                pending.extendleft(reversed(smaller))
            else:
                # An atomic piece that cannot be cut further may push past chunk_size.
                buffer, seed_only = f"{buffer}{separator}{piece}", False

        if buffer.strip() and not seed_only:
            chunks.append(buffer.strip())
        return [chunk for chunk in chunks if chunk]


def segment(text: str, chunk_size: int, overlap: int) -> list[str]:
    """Returns ordered, overlapping chunks of ``text``."""
    return ParagraphSentenceSplitter(chunk_size=chunk_size, chunk_overlap=overlap).split_text(text)
