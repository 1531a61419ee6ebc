# /ragdesk/ingestion.py
"""
Document ingestion: blob -> text -> chunks -> structural filter -> embeddings.

Embeddings for one document are generated on a bounded thread pool; chunks
are always written in segmentation order with contiguous ``chunk_index``.
"""
from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import fitz

from . import config
from .document_store import DocumentStore
from .exceptions import (
    DocumentNotFoundError,
    RagDeskError,
    StorageError,
    TextExtractionError,
    UnsupportedDocumentError,
)
from .llm_clients import EmbeddingService
from .models import ChunkRecord, DocumentRecord, DocumentStatus
from .observability import get_logger
from .segmenter import ParagraphSentenceSplitter
from .storage_provider import BlobStorage
from .structural_filter import is_structural

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = ("txt", "pdf", "md")
PDF_PAGE_SEPARATOR = "\n\n"

ProgressCallback = Callable[[int], None]

OUTCOME_PROCESSED = "processed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_EMPTY = "empty"
OUTCOME_FAILED = "failed"


def extract_text(data: bytes, extension: str) -> str:
    """Returns the plain text of a supported document; PDF pages are joined by a blank line."""
    ext = str(extension or "").lower().lstrip(".")
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedDocumentError("<bytes>", ext)
    if ext == "pdf":
        try:
            with closing(fitz.open(stream=data, filetype="pdf")) as pdf_doc:
                pages = [page.get_text("text") for page in pdf_doc]
        except Exception as exc:
            raise TextExtractionError("Could not read PDF content", {"error": str(exc)}) from exc
        return PDF_PAGE_SEPARATOR.join(pages)
    return data.decode("utf-8", errors="replace")


@dataclass
class IngestionSummary:
    processed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"processed": list(self.processed), "skipped": list(self.skipped), "failed": list(self.failed)}


class DocumentIngestor:
    def __init__(
        self,
        store: DocumentStore,
        storage: BlobStorage,
        embedder: EmbeddingService,
        *,
        chunk_size: int = config.CHUNK_SIZE,
        chunk_overlap: int = config.CHUNK_OVERLAP,
        max_workers: int = config.INGEST_MAX_WORKERS,
    ):
        self.store = store
        self.storage = storage
        self.embedder = embedder
        self.splitter = ParagraphSentenceSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.max_workers = max(1, int(max_workers))

    def process_document(self, document_id: str, on_progress: ProgressCallback | None = None) -> bool:
        """
        Makes one document searchable. True when the document ends up indexed
        or needs no work; False on any failure or when nothing could be extracted.
        """
        return self._ingest(document_id, on_progress) in (OUTCOME_PROCESSED, OUTCOME_SKIPPED)

    def process_pending_documents(self) -> IngestionSummary:
        """Processes every processed-status document without chunks, newest first, one at a time."""
        summary = IngestionSummary()
        documents = self.store.list_documents(status=DocumentStatus.PROCESSED)
        already_chunked = self.store.document_ids_with_chunks(doc.id for doc in documents)
        pending = [doc for doc in documents if doc.id not in already_chunked]
        logger.info("pending_documents_found", total=len(documents), pending=len(pending))

        for document in pending:
            outcome = self._ingest(document.id, None)
            if outcome == OUTCOME_PROCESSED:
                summary.processed.append(document.id)
            elif outcome == OUTCOME_FAILED:
                summary.failed.append(document.id)
            else:
                summary.skipped.append(document.id)
        logger.info("pending_documents_processed", **{k: len(v) for k, v in summary.to_dict().items()})
        return summary

    def _ingest(self, document_id: str, on_progress: ProgressCallback | None) -> str:
        def report(percent: int):
            if on_progress is not None:
                on_progress(int(percent))

        try:
            document = self.store.require_document(document_id)
        except DocumentNotFoundError as exc:
            logger.warning("ingest_document_missing", error=exc.message, **exc.details)
            return OUTCOME_FAILED
        if self.store.document_has_chunks(document.id):
            logger.info("ingest_skipped_has_chunks", document_id=document.id)
            report(100)
            return OUTCOME_SKIPPED
        if document.extension not in SUPPORTED_EXTENSIONS:
            logger.warning("ingest_unsupported_format", document_id=document.id, extension=document.extension)
            return OUTCOME_FAILED
        if not self.embedder.is_configured:
            logger.error("ingest_embedding_service_not_configured", document_id=document.id)
            return OUTCOME_FAILED
        if not self.store.claim_document(document.id):
            logger.info("ingest_skipped_claimed", document_id=document.id)
            return OUTCOME_SKIPPED

        try:
            return self._ingest_claimed(document, report)
        finally:
            self.store.release_claim(document.id)

    def _ingest_claimed(self, document: DocumentRecord, report: Callable[[int], None]) -> str:
        report(10)
        try:
            data = self.storage.read_bytes(document.blob_key)
        except StorageError as exc:
            logger.error("ingest_download_failed", document_id=document.id, key=document.blob_key, error=str(exc))
            return OUTCOME_FAILED

        report(20)
        try:
            text = extract_text(data, document.extension)
        except TextExtractionError as exc:
            logger.error("ingest_extraction_failed", document_id=document.id, error=str(exc))
            return OUTCOME_FAILED
        if not text.strip():
            logger.warning("ingest_empty_text", document_id=document.id, file_name=document.file_name)
            return OUTCOME_EMPTY

        report(30)
        chunks = self.splitter.split_text(text)
        retained = [chunk for chunk in chunks if not is_structural(chunk)]
        logger.info(
            "structural_chunks_filtered",
            document_id=document.id,
            discarded=len(chunks) - len(retained),
            total=len(chunks),
        )
        if not retained:
            logger.warning("ingest_all_chunks_structural", document_id=document.id)
            report(100)
            return OUTCOME_SKIPPED

        report(50)
        vectors = self._embed_chunks(document.id, retained, report)
        embedded = sum(1 for vector in vectors if vector is not None)
        if embedded == 0:
            logger.error("ingest_no_embeddings", document_id=document.id, chunks=len(retained))
            return OUTCOME_FAILED

        records = [
            ChunkRecord(document_id=document.id, chunk_index=index, content=content, embedding=vector)
            for index, (content, vector) in enumerate(zip(retained, vectors))
        ]
        try:
            self.store.insert_chunks(records)
        except StorageError as exc:
            logger.error("ingest_chunk_insert_failed", document_id=document.id, error=str(exc))
            return OUTCOME_FAILED

        logger.info(
            "document_ingested",
            document_id=document.id,
            chunks=len(records),
            embedded=embedded,
            searchable=self.store.count_embedded_chunks(document.id),
        )
        report(100)
        return OUTCOME_PROCESSED

    def _embed_one(self, document_id: str, index: int, content: str) -> list[float] | None:
        try:
            return self.embedder.embed(content)
        except RagDeskError as exc:
            logger.warning("chunk_embedding_failed", document_id=document_id, chunk_index=index, error=str(exc))
            return None

    def _embed_chunks(
        self,
        document_id: str,
        contents: list[str],
        report: Callable[[int], None],
    ) -> list[list[float] | None]:
        """Embeds chunks concurrently; the result list keeps the input order."""
        results: list[list[float] | None] = [None] * len(contents)
        workers = min(self.max_workers, len(contents))
        done = 0
        with ThreadPoolExecutor(max_workers=workers) as pool:
            future_map = {
                pool.submit(self._embed_one, document_id, index, content): index
                for index, content in enumerate(contents)
            }
            for future in as_completed(future_map):
                results[future_map[future]] = future.result()
                done += 1
                report(60 + int(35 * done / len(contents)))
        return results


class DocumentUploader:
    """Copies a file into blob storage and records it as a processed document."""

    def __init__(self, store: DocumentStore, storage: BlobStorage):
        self.store = store
        self.storage = storage
        self._lock = threading.Lock()

    @staticmethod
    def _display_name(source_name: str, title: str | None) -> str:
        suffix = Path(source_name).suffix
        if not title:
            return source_name
        return title if title.lower().endswith(suffix.lower()) else f"{title}{suffix}"

    @staticmethod
    def _check_extension(file_name: str):
        extension = Path(file_name).suffix.lower().lstrip(".")
        if extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedDocumentError(file_name, extension)

    def upload(self, file_path: str | Path, title: str | None = None) -> DocumentRecord:
        source_path = Path(file_path)
        if not source_path.is_file():
            raise StorageError(f"File not found: {source_path}", {"file_path": str(source_path)})
        self._check_extension(source_path.name)

        document_id = uuid.uuid4().hex
        key = f"documents/{document_id}{source_path.suffix.lower()}"
        with self._lock:
            self.storage.save_file(source_path, key)
            record = self.store.insert_document(
                self._display_name(source_path.name, title),
                storage_path=key,
                status=DocumentStatus.PROCESSED,
                document_id=document_id,
            )
        logger.info(
            "document_uploaded",
            document_id=record.id,
            file_type=source_path.suffix.lower(),
            bytes=int(source_path.stat().st_size),
            storage_path=key,
        )
        return record

    def upload_bytes(self, data: bytes, file_name: str) -> DocumentRecord:
        name = Path(str(file_name or "")).name
        self._check_extension(name)

        document_id = uuid.uuid4().hex
        key = f"documents/{document_id}{Path(name).suffix.lower()}"
        with self._lock:
            self.storage.save_bytes(data, key)
            record = self.store.insert_document(
                name,
                storage_path=key,
                status=DocumentStatus.PROCESSED,
                document_id=document_id,
            )
        logger.info("document_uploaded", document_id=record.id, file_type=Path(name).suffix.lower(), bytes=len(data))
        return record
