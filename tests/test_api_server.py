import json
import random
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fastapi.testclient import TestClient

from ragdesk import api_server, config
from ragdesk.api_server import create_app
from ragdesk.exceptions import ServiceNotConfiguredError
from ragdesk.metrics import MetricsCollector
from ragdesk.models import ChunkRecord, DocumentStatus
from ragdesk.query_router import GREETING_RESPONSES
from ragdesk.services import build_services

VOCABULARY = ("vacaciones", "salario", "seguridad", "horario")

VACATION_PROSE = (
    "La política de vacaciones concede veintidós días hábiles de vacaciones a cada empleado. "
    "Las solicitudes se aprueban por el responsable directo con un mes de antelación."
)


class _KeywordEmbedder:
    def __init__(self, configured: bool = True):
        self.configured = configured

    @property
    def is_configured(self):
        return self.configured

    def embed(self, text):
        if not self.configured:
            raise ServiceNotConfiguredError("Embedding service", "Set OPENAI_API_KEY.")
        lower = text.lower()
        return [float(lower.count(word)) for word in VOCABULARY]


class _EchoCompleter:
    is_configured = True

    def complete(self, system_prompt, history, user_message):
        return f"Según los documentos: {user_message}"


class _ApiCase(unittest.TestCase):
    configured = True

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.metrics = MetricsCollector(log_dir=root / "logs")

        def _factory():
            return build_services(
                db_path=root / "store.sqlite",
                storage_dir=root / "blobs",
                embedder=_KeywordEmbedder(configured=self.configured),
                completer=_EchoCompleter(),
                rng=random.Random(1),
            )

        self.app = create_app(services_factory=_factory, metrics=self.metrics)

    def tearDown(self):
        self.tmp.cleanup()

    def _upload(self, client, name, data, **params):
        return client.post("/documents", files={"file": (name, data, "text/plain")}, params=params)


class TestDocumentEndpoints(_ApiCase):
    def test_upload_indexes_by_default(self):
        with TestClient(self.app) as client:
            response = self._upload(client, "vacaciones.txt", VACATION_PROSE.encode("utf-8"))
            self.assertEqual(response.status_code, 201)
            body = response.json()
            self.assertTrue(body["processed"])
            self.assertEqual(body["document"]["file_name"], "vacaciones.txt")
            self.assertEqual(body["document"]["status"], "processed")
            self.assertEqual(body["document"]["embedded_chunks"], 1)

            listing = client.get("/documents").json()
            self.assertEqual([doc["file_name"] for doc in listing], ["vacaciones.txt"])

    def test_deferred_processing(self):
        with TestClient(self.app) as client:
            body = self._upload(client, "vacaciones.md", VACATION_PROSE.encode("utf-8"), process="false").json()
            self.assertIsNone(body["processed"])
            self.assertEqual(body["document"]["embedded_chunks"], 0)

            summary = client.post("/documents/process").json()
            self.assertEqual(summary["processed"], [body["document"]["id"]])
            self.assertEqual(summary["failed"], [])

            again = client.post("/documents/process").json()
            self.assertEqual(again, {"processed": [], "skipped": [], "failed": []})

    def test_single_document_lookup(self):
        with TestClient(self.app) as client:
            body = self._upload(client, "vacaciones.txt", VACATION_PROSE.encode("utf-8")).json()
            found = client.get(f"/documents/{body['document']['id']}")
            self.assertEqual(found.status_code, 200)
            self.assertEqual(found.json()["embedded_chunks"], 1)

            missing = client.get("/documents/does-not-exist")
            self.assertEqual(missing.status_code, 404)
            self.assertIn("does-not-exist", missing.json()["detail"])

    def test_unsupported_upload_is_rejected(self):
        with TestClient(self.app) as client:
            response = self._upload(client, "setup.exe", b"MZ\x90\x00")
            self.assertEqual(response.status_code, 415)
            self.assertEqual(client.get("/documents").json(), [])


class TestQueryEndpoint(_ApiCase):
    def test_content_question_returns_answer_and_sources(self):
        with TestClient(self.app) as client:
            self._upload(client, "vacaciones.txt", VACATION_PROSE.encode("utf-8"))
            response = client.post("/query", json={"question": "¿Cuál es la política de vacaciones?"})
            self.assertEqual(response.status_code, 200)
            body = response.json()
            self.assertEqual(body["intent"], "content")
            self.assertIn("política de vacaciones", body["answer"])
            self.assertEqual([s["title"] for s in body["sources"]], ["vacaciones.txt"])

    def test_greeting_and_metrics(self):
        with TestClient(self.app) as client:
            greeting = client.post("/query", json={"question": "hola"}).json()
            self.assertIn(greeting["answer"], GREETING_RESPONSES)
            self.assertEqual(greeting["sources"], [])
            client.post("/query", json={"question": "¿Cuántos documentos hay?"})

            summary = client.get("/metrics").json()
            self.assertEqual(summary["throughput"]["total_requests"], 2)
            self.assertEqual(summary["routes"]["greeting"], 1)
            self.assertEqual(summary["routes"]["system_meta"], 1)
            self.assertEqual(summary["errors"]["count"], 0)

        lines = self.metrics.log_path.read_text(encoding="utf-8").splitlines()
        self.assertEqual([json.loads(line)["route"] for line in lines], ["greeting", "system_meta"])

    def test_empty_question_is_invalid(self):
        with TestClient(self.app) as client:
            self.assertEqual(client.post("/query", json={"question": ""}).status_code, 422)

    def test_history_is_accepted(self):
        with TestClient(self.app) as client:
            response = client.post(
                "/query",
                json={
                    "question": "¿Y se pueden acumular?",
                    "history": [{"role": "user", "content": "¿Cuál es la política de vacaciones?"}],
                },
            )
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["sources"], [])


class TestUnconfiguredService(_ApiCase):
    configured = False

    def test_missing_credentials_map_to_service_unavailable(self):
        with TestClient(self.app) as client:
            store = client.app.state.services.store
            doc = store.insert_document("vacaciones.txt", status=DocumentStatus.PROCESSED)
            store.insert_chunk(ChunkRecord(doc.id, 0, VACATION_PROSE, [2.0, 0.0, 0.0, 0.0]))

            response = client.post("/query", json={"question": "¿Cuál es la política de vacaciones?"})
            self.assertEqual(response.status_code, 503)
            self.assertIn("OPENAI_API_KEY", response.json()["detail"])
            self.assertEqual(client.get("/metrics").json()["errors"]["count"], 1)

    def test_upload_without_credentials_is_stored_but_not_indexed(self):
        with TestClient(self.app) as client:
            body = self._upload(client, "vacaciones.txt", VACATION_PROSE.encode("utf-8")).json()
            self.assertFalse(body["processed"])
            self.assertEqual(body["document"]["status"], "processed")


class TestMetricsCollector(unittest.TestCase):
    def test_summary_aggregates_requests(self):
        with tempfile.TemporaryDirectory() as tmp:
            collector = MetricsCollector(log_dir=tmp)
            empty = collector.get_summary()
            self.assertEqual(empty["throughput"]["total_requests"], 0)
            self.assertEqual(empty["latency"]["min_ms"], 0.0)

            collector.record_request(10.0, success=True, route="content", citations=2)
            collector.record_request(30.0, success=False, route="content")
            summary = collector.get_summary()

        self.assertEqual(summary["latency"]["avg_ms"], 20.0)
        self.assertEqual(summary["latency"]["min_ms"], 10.0)
        self.assertEqual(summary["latency"]["max_ms"], 30.0)
        self.assertEqual(summary["latency"]["p50_ms"], 20.0)
        self.assertEqual(summary["routes"]["content"], 2)
        self.assertEqual(summary["citations"]["total"], 2)
        self.assertEqual(summary["errors"]["rate_percent"], 50.0)
        self.assertGreater(summary["memory"]["rss_mb"], 0)

    def test_percentiles_cover_recent_window_only(self):
        with tempfile.TemporaryDirectory() as tmp:
            collector = MetricsCollector(log_dir=tmp, window=2)
            for latency in (1000.0, 10.0, 20.0):
                collector.record_request(latency, success=True, route="greeting")
            summary = collector.get_summary()
        self.assertEqual(summary["latency"]["max_ms"], 20.0)
        self.assertEqual(summary["latency"]["avg_ms"], 343.33)
        self.assertEqual(summary["routes"]["greeting"], 3)


class TestServerRunner(unittest.TestCase):
    def test_main_serves_the_module_app(self):
        with mock.patch("ragdesk.api_server.uvicorn.run") as run:
            api_server.main()
        run.assert_called_once_with(api_server.app, host=config.API_HOST, port=config.API_PORT)


if __name__ == "__main__":
    unittest.main()
