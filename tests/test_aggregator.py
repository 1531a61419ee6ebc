import unittest

from ragdesk.aggregator import build_context_block, group_candidates, select
from ragdesk.models import Candidate, Citation


def _candidate(document_id: str, similarity: float, index: int = 0, content: str | None = None) -> Candidate:
    return Candidate(
        id=f"{document_id}-{index}",
        document_id=document_id,
        chunk_index=index,
        content=content or f"Contenido del documento {document_id}, fragmento {index}. " * 5,
        similarity=similarity,
    )


NAMES = {"a": "vacaciones.pdf", "b": "beneficios.md", "c": "seguridad.txt"}


class TestSelect(unittest.TestCase):
    def test_two_strong_documents_are_both_selected(self):
        candidates = [_candidate("c", 0.55), _candidate("a", 0.75), _candidate("b", 0.65)]
        selection = select(candidates, 0.5, 0.6, 2, NAMES.get)
        self.assertEqual([c.document_id for c in selection.context_chunks], ["a", "b"])
        self.assertEqual([c.title for c in selection.citations], ["vacaciones.pdf", "beneficios.md"])

    def test_medium_band_selects_only_the_best_document(self):
        candidates = [_candidate("b", 0.52), _candidate("a", 0.55)]
        selection = select(candidates, 0.5, 0.6, 2, NAMES.get)
        self.assertEqual([c.document_id for c in selection.context_chunks], ["a"])
        self.assertEqual(len(selection.citations), 1)

    def test_single_strong_document_is_not_paired_with_a_medium_one(self):
        candidates = [_candidate("a", 0.7), _candidate("b", 0.58)]
        selection = select(candidates, 0.5, 0.6, 2, NAMES.get)
        self.assertEqual([c.document_id for c in selection.context_chunks], ["a"])

    def test_at_most_max_docs_strong_documents(self):
        candidates = [_candidate("a", 0.9), _candidate("b", 0.8), _candidate("c", 0.7)]
        selection = select(candidates, 0.5, 0.6, 2, NAMES.get)
        self.assertEqual(len(selection.context_chunks), 2)

    def test_everything_below_minimum_is_empty(self):
        selection = select([_candidate("a", 0.49), _candidate("b", 0.2)], 0.5, 0.6, 2, NAMES.get)
        self.assertTrue(selection.is_empty)
        self.assertEqual(selection.citations, [])

    def test_best_chunk_represents_each_document(self):
        candidates = [
            _candidate("a", 0.62, index=0, content="fragmento menos relevante"),
            _candidate("a", 0.81, index=3, content="fragmento más relevante sobre vacaciones"),
        ]
        selection = select(candidates, 0.5, 0.6, 2, NAMES.get)
        self.assertEqual(selection.context_chunks[0].chunk_index, 3)
        self.assertEqual(
            selection.citations,
            [Citation(title="vacaciones.pdf", excerpt="fragmento más relevante sobre vacaciones")],
        )

    def test_excerpt_is_a_prefix_of_the_representative_chunk(self):
        long_text = "La jornada laboral comienza a las ocho. " * 20
        selection = select([_candidate("a", 0.9, content=long_text)], 0.5, 0.6, 2, NAMES.get, excerpt_chars=150)
        excerpt = selection.citations[0].excerpt
        self.assertEqual(len(excerpt), 150)
        self.assertTrue(long_text.startswith(excerpt))

    def test_unknown_document_keeps_context_but_has_no_citation(self):
        selection = select([_candidate("zzz", 0.9)], 0.5, 0.6, 2, NAMES.get)
        self.assertEqual(len(selection.context_chunks), 1)
        self.assertEqual(selection.citations, [])


class TestGrouping(unittest.TestCase):
    def test_groups_track_max_similarity_in_descending_order(self):
        groups = group_candidates(
            [_candidate("a", 0.6), _candidate("b", 0.7), _candidate("a", 0.9, index=1), _candidate("c", 0.1)],
            0.5,
        )
        self.assertEqual([g.document_id for g in groups], ["a", "b"])
        self.assertAlmostEqual(groups[0].max_similarity, 0.9)
        self.assertEqual(len(groups[0].candidates), 2)


class TestContextBlock(unittest.TestCase):
    def test_fragments_are_labelled_and_separated(self):
        block = build_context_block([_candidate("a", 0.9, content="uno"), _candidate("b", 0.8, content="dos")])
        self.assertEqual(block, "[Documento 1]\nuno\n\n---\n\n[Documento 2]\ndos")


if __name__ == "__main__":
    unittest.main()
