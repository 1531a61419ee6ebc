# /ragdesk/aggregator.py
"""
Document-level evidence selection for the synthesis prompt.

Candidates are grouped by source document. Two documents are used only when
both clear the high threshold; otherwise the single best document is used.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from . import config
from .models import Candidate, ChunkGroup, Citation
from .observability import get_logger

logger = get_logger(__name__)

CONTEXT_LABEL = "[Documento {index}]"
CONTEXT_SEPARATOR = "\n\n---\n\n"

NameLookup = Callable[[str], "str | None"]


@dataclass
class Selection:
    context_chunks: list[Candidate] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.context_chunks


def group_candidates(candidates: Iterable[Candidate], min_threshold: float) -> list[ChunkGroup]:
    """Groups candidates at or above ``min_threshold``, best document first."""
    groups: dict[str, ChunkGroup] = {}
    for candidate in candidates:
        if candidate.similarity < min_threshold:
            continue
        group = groups.get(candidate.document_id)
        if group is None:
            group = groups[candidate.document_id] = ChunkGroup(document_id=candidate.document_id)
        group.add(candidate)
    return sorted(groups.values(), key=lambda g: g.max_similarity, reverse=True)


def choose_groups(groups: list[ChunkGroup], high_threshold: float, max_docs: int) -> list[ChunkGroup]:
    if not groups:
        return []
    strong = [g for g in groups if g.max_similarity >= high_threshold]
    if len(strong) >= 2:
        return strong[: max(1, int(max_docs))]
    return groups[:1]


def excerpt(content: str, length: int = config.CITATION_EXCERPT_CHARS) -> str:
    return str(content or "")[: max(0, int(length))]


def select(
    candidates: Iterable[Candidate],
    min_threshold: float = config.MIN_SIMILARITY_THRESHOLD,
    high_threshold: float = config.HIGH_SIMILARITY_THRESHOLD,
    max_docs: int = config.MAX_CONTEXT_DOCUMENTS,
    name_lookup: NameLookup | None = None,
    excerpt_chars: int = config.CITATION_EXCERPT_CHARS,
) -> Selection:
    """
    Picks the representative chunk of each selected document and one citation
    per document. Documents the lookup cannot name still feed the context but
    get no citation.
    """
    groups = group_candidates(candidates, min_threshold)
    chosen = choose_groups(groups, high_threshold, max_docs)

    selection = Selection()
    for group in chosen:
        best = group.best()
        selection.context_chunks.append(best)
        title = name_lookup(group.document_id) if name_lookup else group.document_id
        if title:
            selection.citations.append(Citation(title=title, excerpt=excerpt(best.content, excerpt_chars)))

    logger.info(
        "retrieval_selection",
        groups=len(groups),
        selected=[g.document_id for g in chosen],
        max_similarities=[round(g.max_similarity, 4) for g in chosen],
    )
    return selection


def build_context_block(chunks: Iterable[Candidate]) -> str:
    """Labels each fragment positionally and joins them for the prompt."""
    fragments = [
        f"{CONTEXT_LABEL.format(index=position)}\n{chunk.content}"
        for position, chunk in enumerate(chunks, start=1)
    ]
    return CONTEXT_SEPARATOR.join(fragments)
