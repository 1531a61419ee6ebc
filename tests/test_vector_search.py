import json
import unittest

from ragdesk.exceptions import StorageError
from ragdesk.similarity import cosine_similarity, parse_embedding
from ragdesk.vector_search import (
    BruteForceStrategy,
    EmbeddingIndex,
    ServerMatchStrategy,
    select_search_strategy,
)


class _FakeStore:
    def __init__(self, rows=None, vector_match=True, match_rows=None, fail=False):
        self.rows = rows or []
        self.vector_match = vector_match
        self.match_rows = match_rows or []
        self.fail = fail
        self.match_calls = []
        self.sample_limits = []

    def supports_vector_match(self):
        return self.vector_match

    def match_chunks(self, query_vector, threshold, count):
        if self.fail:
            raise StorageError("match function unavailable")
        self.match_calls.append((list(query_vector), threshold, count))
        return list(self.match_rows)

    def sample_embedded_chunks(self, limit):
        if self.fail:
            raise StorageError("table unavailable")
        self.sample_limits.append(limit)
        return list(self.rows)


def _row(chunk_id, embedding, document_id="doc", chunk_index=0):
    return {
        "id": chunk_id,
        "document_id": document_id,
        "chunk_index": chunk_index,
        "content": f"content {chunk_id}",
        "embedding": embedding,
    }


class TestCosineSimilarity(unittest.TestCase):
    def test_identity(self):
        self.assertAlmostEqual(cosine_similarity([0.3, -1.2, 4.0], [0.3, -1.2, 4.0]), 1.0)

    def test_symmetry(self):
        a, b = [1.0, 2.0, 0.5], [0.2, 1.0, 3.0]
        self.assertAlmostEqual(cosine_similarity(a, b), cosine_similarity(b, a))

    def test_dimension_mismatch_and_zero_vector(self):
        self.assertEqual(cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]), 0.0)
        self.assertEqual(cosine_similarity([0.0, 0.0], [1.0, 1.0]), 0.0)
        self.assertEqual(cosine_similarity([], []), 0.0)

    def test_opposite_vectors_clamp_to_zero(self):
        self.assertEqual(cosine_similarity([1.0, 0.0], [-1.0, 0.0]), 0.0)

    def test_parse_embedding_formats(self):
        self.assertEqual(parse_embedding([1, 2]), [1.0, 2.0])
        self.assertEqual(parse_embedding("[0.5, 1.5]"), [0.5, 1.5])
        self.assertIsNone(parse_embedding("not json"))
        self.assertIsNone(parse_embedding('{"a": 1}'))
        self.assertIsNone(parse_embedding([]))
        self.assertIsNone(parse_embedding(["x", "y"]))
        self.assertIsNone(parse_embedding(None))


class TestBruteForceStrategy(unittest.TestCase):
    def test_skips_bad_rows_and_ranks_the_rest(self):
        store = _FakeStore(rows=[
            _row("low", [0.0, 1.0]),
            _row("json", json.dumps([1.0, 0.1])),
            _row("best", [1.0, 0.0]),
            _row("mismatch", [1.0, 0.0, 0.0]),
            _row("garbage", "{{not-a-vector"),
            _row("none", None),
        ])
        results = BruteForceStrategy(store, sample_limit=200).search([1.0, 0.0], top_k=5)
        self.assertEqual([c.id for c in results], ["best", "json", "low"])
        self.assertAlmostEqual(results[0].similarity, 1.0)
        self.assertEqual(results[2].similarity, 0.0)
        self.assertEqual(store.sample_limits, [200])

    def test_returns_twice_top_k_unfiltered(self):
        store = _FakeStore(rows=[_row(f"c{i}", [1.0, i / 10.0], chunk_index=i) for i in range(10)])
        results = BruteForceStrategy(store).search([1.0, 0.0], top_k=2)
        self.assertEqual(len(results), 4)
        self.assertEqual(results[0].id, "c0")
        similarities = [c.similarity for c in results]
        self.assertEqual(similarities, sorted(similarities, reverse=True))


class TestServerMatchStrategy(unittest.TestCase):
    def test_delegates_threshold_and_count(self):
        store = _FakeStore(match_rows=[{**_row("a", None), "similarity": 0.91}])
        results = ServerMatchStrategy(store, match_threshold=0.5).search([0.1, 0.2], top_k=10)
        self.assertEqual(store.match_calls, [([0.1, 0.2], 0.5, 10)])
        self.assertEqual(results[0].id, "a")
        self.assertAlmostEqual(results[0].similarity, 0.91)


class TestStrategySelection(unittest.TestCase):
    def test_auto_uses_server_when_available(self):
        self.assertIsInstance(select_search_strategy(_FakeStore(vector_match=True), "auto"), ServerMatchStrategy)

    def test_auto_falls_back_to_client(self):
        self.assertIsInstance(select_search_strategy(_FakeStore(vector_match=False), "auto"), BruteForceStrategy)

    def test_forced_modes(self):
        self.assertIsInstance(select_search_strategy(_FakeStore(vector_match=True), "client"), BruteForceStrategy)
        self.assertIsInstance(select_search_strategy(_FakeStore(vector_match=False), "server"), ServerMatchStrategy)


class TestEmbeddingIndex(unittest.TestCase):
    def test_unreachable_store_yields_empty_result(self):
        index = EmbeddingIndex(BruteForceStrategy(_FakeStore(fail=True)))
        self.assertEqual(index.search([1.0, 0.0], 10), [])
        index = EmbeddingIndex(ServerMatchStrategy(_FakeStore(fail=True)))
        self.assertEqual(index.search([1.0, 0.0], 10), [])

    def test_empty_query_vector(self):
        self.assertEqual(EmbeddingIndex(BruteForceStrategy(_FakeStore())).search([], 10), [])

    def test_for_store_probes_once(self):
        index = EmbeddingIndex.for_store(_FakeStore(vector_match=False), "auto")
        self.assertEqual(index.strategy.name, "client")


if __name__ == "__main__":
    unittest.main()
