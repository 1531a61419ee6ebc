# /ragdesk/services.py
"""Builds the collaborator graph shared by the CLI and the HTTP service."""
from __future__ import annotations

import random
from dataclasses import dataclass
from pathlib import Path

from . import config
from .chat_service import ChatService
from .document_store import SqliteDocumentStore
from .ingestion import DocumentIngestor, DocumentUploader
from .llm_clients import ChatCompletionService, EmbeddingService, build_chat_service, build_embedding_service
from .storage_provider import LocalBlobStorage
from .vector_search import EmbeddingIndex


@dataclass
class Services:
    store: SqliteDocumentStore
    storage: LocalBlobStorage
    embedder: EmbeddingService
    completer: ChatCompletionService
    index: EmbeddingIndex
    ingestor: DocumentIngestor
    uploader: DocumentUploader
    chat: ChatService

    def close(self):
        self.store.close()


def build_services(
    *,
    db_path: str | Path = config.DB_PATH,
    storage_dir: str | Path = config.STORAGE_DIR,
    embedder: EmbeddingService | None = None,
    completer: ChatCompletionService | None = None,
    search_strategy: str = config.SEARCH_STRATEGY,
    rng: random.Random | None = None,
) -> Services:
    store = SqliteDocumentStore(db_path, claim_ttl_seconds=config.INGEST_CLAIM_TTL_SECONDS)
    storage = LocalBlobStorage(Path(storage_dir))
    storage.ensure_ready()
    embedder = embedder or build_embedding_service()
    completer = completer or build_chat_service()
    index = EmbeddingIndex.for_store(store, search_strategy)
    return Services(
        store=store,
        storage=storage,
        embedder=embedder,
        completer=completer,
        index=index,
        ingestor=DocumentIngestor(store, storage, embedder),
        uploader=DocumentUploader(store, storage),
        chat=ChatService(store, index, embedder, completer, rng=rng),
    )
