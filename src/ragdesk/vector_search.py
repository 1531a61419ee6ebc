# /ragdesk/vector_search.py
"""
Similarity search over stored chunk embeddings.

Two strategies share one interface: ``ServerMatchStrategy`` delegates to the
record store's nearest-neighbour function, ``BruteForceStrategy`` scores a
bounded sample of embedded chunks in process. The strategy is chosen once,
when the index is built.
"""
from __future__ import annotations

from typing import Protocol, Sequence

from . import config
from .document_store import DocumentStore
from .exceptions import RagDeskError
from .models import Candidate
from .observability import get_logger
from .similarity import cosine_similarity, parse_embedding

logger = get_logger(__name__)

STRATEGY_AUTO = "auto"
STRATEGY_SERVER = "server"
STRATEGY_CLIENT = "client"


class SimilaritySearchStrategy(Protocol):
    name: str

    def search(self, query_vector: Sequence[float], top_k: int) -> list[Candidate]:
        ...


class ServerMatchStrategy:
    """Runs the match inside the record store; rows arrive already scored."""

    name = STRATEGY_SERVER

    def __init__(self, store: DocumentStore, match_threshold: float = config.MATCH_THRESHOLD):
        self.store = store
        self.match_threshold = float(match_threshold)

    def search(self, query_vector: Sequence[float], top_k: int) -> list[Candidate]:
        rows = self.store.match_chunks(query_vector, self.match_threshold, top_k)
        return [Candidate.from_row(row) for row in rows]


class BruteForceStrategy:
    """
    Scores a bounded sample of embedded chunks against the query in process.
    Returns up to ``2 * top_k`` candidates without threshold filtering.
    """

    name = STRATEGY_CLIENT

    def __init__(self, store: DocumentStore, sample_limit: int = config.FALLBACK_SAMPLE_LIMIT):
        self.store = store
        self.sample_limit = int(sample_limit)

    def search(self, query_vector: Sequence[float], top_k: int) -> list[Candidate]:
        rows = self.store.sample_embedded_chunks(self.sample_limit)
        dimension = len(query_vector)
        scored: list[Candidate] = []
        skipped = 0
        for row in rows:
            vector = parse_embedding(row.get("embedding"))
            if vector is None or len(vector) != dimension:
                skipped += 1
                continue
            scored.append(Candidate.from_row(row, similarity=cosine_similarity(query_vector, vector)))

        if skipped:
            logger.info("brute_force_rows_skipped", skipped=skipped, sampled=len(rows))
        scored.sort(key=lambda c: (-c.similarity, c.document_id, c.chunk_index))
        return scored[: max(1, int(top_k)) * 2]


def select_search_strategy(store: DocumentStore, mode: str = config.SEARCH_STRATEGY) -> SimilaritySearchStrategy:
    """Picks the strategy once: forced by ``mode`` or probed when ``auto``."""
    normalized = str(mode or STRATEGY_AUTO).strip().lower()
    if normalized == STRATEGY_CLIENT:
        strategy: SimilaritySearchStrategy = BruteForceStrategy(store)
    elif normalized == STRATEGY_SERVER:
        strategy = ServerMatchStrategy(store)
    else:
        if normalized != STRATEGY_AUTO:
            logger.warning("unknown_search_strategy", requested=normalized)
        try:
            server_available = bool(store.supports_vector_match())
        except RagDeskError as exc:
            logger.warning("vector_match_probe_failed", error=str(exc))
            server_available = False
        strategy = ServerMatchStrategy(store) if server_available else BruteForceStrategy(store)
    logger.info("search_strategy_selected", strategy=strategy.name, requested=normalized)
    return strategy


class EmbeddingIndex:
    """Ranked candidate lookup. An unreachable index yields an empty result."""

    def __init__(self, strategy: SimilaritySearchStrategy):
        self.strategy = strategy

    @classmethod
    def for_store(cls, store: DocumentStore, mode: str = config.SEARCH_STRATEGY) -> "EmbeddingIndex":
        return cls(select_search_strategy(store, mode))

    def search(self, query_vector: Sequence[float], top_k: int = config.SEARCH_TOP_K) -> list[Candidate]:
        if not query_vector:
            return []
        try:
            candidates = self.strategy.search(query_vector, top_k)
        except RagDeskError as exc:
            logger.warning("similarity_search_failed", strategy=self.strategy.name, error=str(exc))
            return []
        candidates.sort(key=lambda c: -c.similarity)
        logger.info(
            "similarity_search_completed",
            strategy=self.strategy.name,
            candidates=len(candidates),
            top_similarity=round(candidates[0].similarity, 4) if candidates else None,
        )
        return candidates
