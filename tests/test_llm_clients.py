import unittest

from langchain_core.language_models.fake_chat_models import FakeListChatModel

from ragdesk.exceptions import EmbeddingServiceError, ServiceNotConfiguredError
from ragdesk.llm_clients import OpenAIChatService, OpenAIEmbeddingService


class _BrokenEmbeddings:
    def embed_query(self, text):
        raise RuntimeError("rate limited")


class _StaticEmbeddings:
    def embed_query(self, text):
        return [1, 0, 2]


class TestDisabledClients(unittest.TestCase):
    def test_embedding_service_without_key(self):
        service = OpenAIEmbeddingService(api_key="")
        self.assertFalse(service.is_configured)
        with self.assertRaises(ServiceNotConfiguredError) as ctx:
            service.embed("hola")
        self.assertIn("OPENAI_API_KEY", ctx.exception.message)

    def test_chat_service_without_key(self):
        service = OpenAIChatService(api_key="")
        self.assertFalse(service.is_configured)
        with self.assertRaises(ServiceNotConfiguredError):
            service.complete("sistema", [], "pregunta")


class TestEmbeddingService(unittest.TestCase):
    def test_vector_is_returned_as_floats(self):
        service = OpenAIEmbeddingService(api_key="")
        service._client = _StaticEmbeddings()
        self.assertEqual(service.embed("texto"), [1.0, 0.0, 2.0])

    def test_provider_error_is_wrapped(self):
        service = OpenAIEmbeddingService(api_key="")
        service._client = _BrokenEmbeddings()
        with self.assertRaises(EmbeddingServiceError) as ctx:
            service.embed("texto")
        self.assertEqual(ctx.exception.details["error"], "rate limited")


class TestChatService(unittest.TestCase):
    def test_prompt_history_and_question_reach_the_model(self):
        service = OpenAIChatService(api_key="")
        service._llm = FakeListChatModel(responses=["Tienes veintidós días."])
        self.assertTrue(service.is_configured)
        answer = service.complete(
            "Contexto {sin formato}",
            ["¿Cuál es la política de vacaciones?"],
            "¿Y se pueden acumular?",
        )
        self.assertEqual(answer, "Tienes veintidós días.")

    def test_history_becomes_human_messages(self):
        service = OpenAIChatService(api_key="")
        messages = service._prompt.format_messages(
            system_prompt="sistema",
            history=[],
            question="pregunta",
        )
        self.assertEqual([m.type for m in messages], ["system", "human"])


if __name__ == "__main__":
    unittest.main()
