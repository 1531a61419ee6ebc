# /ragdesk/document_store.py
"""
Record storage for documents and their embedded chunks.

The SQLite implementation mirrors the hosted schema
``document_chunks(id, document_id, chunk_index, content, embedding, created_at)``
and registers a ``cosine_similarity`` SQL function so nearest-neighbour
matching can run inside the database.
"""
from __future__ import annotations

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

from .db_migrations import migrate_document_store
from .exceptions import DocumentNotFoundError, StorageError
from .models import ChunkRecord, DocumentRecord, DocumentStatus
from .observability import get_logger
from .similarity import cosine_similarity, parse_embedding, serialize_embedding

logger = get_logger(__name__)

DEFAULT_CLAIM_TTL_SECONDS = 900


class DocumentStore(Protocol):
    def insert_document(
        self,
        file_name: str,
        *,
        storage_path: str | None = None,
        status: DocumentStatus = DocumentStatus.PROCESSING,
        document_id: str | None = None,
    ) -> DocumentRecord:
        ...

    def get_document(self, document_id: str) -> DocumentRecord | None:
        ...

    def require_document(self, document_id: str) -> DocumentRecord:
        ...

    def list_documents(self, status: DocumentStatus | None = None, limit: int | None = None) -> list[DocumentRecord]:
        ...

    def update_status(self, document_id: str, status: DocumentStatus) -> bool:
        ...

    def count_documents(self, status: DocumentStatus | None = None) -> int:
        ...

    def insert_chunk(self, chunk: ChunkRecord) -> str:
        ...

    def insert_chunks(self, chunks: Sequence[ChunkRecord]) -> list[str]:
        ...

    def document_has_chunks(self, document_id: str) -> bool:
        ...

    def document_ids_with_chunks(self, document_ids: Iterable[str]) -> set[str]:
        ...

    def count_embedded_chunks(self, document_id: str | None = None) -> int:
        ...

    def sample_embedded_chunks(self, limit: int) -> list[dict[str, Any]]:
        ...

    def supports_vector_match(self) -> bool:
        ...

    def match_chunks(self, query_vector: Sequence[float], threshold: float, count: int) -> list[dict[str, Any]]:
        ...

    def claim_document(self, document_id: str) -> bool:
        ...

    def release_claim(self, document_id: str):
        ...


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


@lru_cache(maxsize=16)
def _parse_query_vector(raw: str) -> tuple[float, ...] | None:
    parsed = parse_embedding(raw)
    return tuple(parsed) if parsed is not None else None


def _sql_cosine_similarity(embedding_json: Any, query_json: Any) -> float | None:
    """SQL scalar: similarity of a stored embedding against a JSON query vector."""
    if embedding_json is None or query_json is None:
        return None
    query = _parse_query_vector(str(query_json))
    stored = parse_embedding(embedding_json)
    if query is None or stored is None or len(stored) != len(query):
        return None
    return cosine_similarity(stored, query)


class SqliteDocumentStore:
    """SQLite-backed document and chunk records, safe to share across threads."""

    def __init__(self, db_path: str | Path, claim_ttl_seconds: float = DEFAULT_CLAIM_TTL_SECONDS):
        self.db_path = Path(db_path)
        self.claim_ttl_seconds = claim_ttl_seconds
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._vector_match_enabled = False
        self._conn: sqlite3.Connection | None = self._connect()
        try:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.Error:
            logger.warning("sqlite_pragma_failed", db_path=str(self.db_path))
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            conn.create_function("cosine_similarity", 2, _sql_cosine_similarity, deterministic=True)
            self._vector_match_enabled = True
        except sqlite3.Error as exc:
            logger.warning("sqlite_vector_function_unavailable", error=str(exc))
        return conn

    @contextmanager
    def _connection(self):
        with self._lock:
            if self._conn is None:
                raise StorageError("document store connection is closed")
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StorageError(f"SQLite operation failed: {exc}", {"db_path": str(self.db_path)}) from exc
            except Exception:
                self._conn.rollback()
                raise

    def close(self):
        with self._lock:
            if self._conn is None:
                return
            self._conn.commit()
            self._conn.close()
            self._conn = None

    def _ensure_schema(self):
        with self._connection() as conn:
            migrate_document_store(conn)

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> DocumentRecord:
        return DocumentRecord(
            id=str(row["id"]),
            file_name=str(row["file_name"]),
            status=DocumentStatus(str(row["status"])),
            storage_path=row["storage_path"],
            uploaded_at=str(row["uploaded_at"] or ""),
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def insert_document(
        self,
        file_name: str,
        *,
        storage_path: str | None = None,
        status: DocumentStatus = DocumentStatus.PROCESSING,
        document_id: str | None = None,
    ) -> DocumentRecord:
        record = DocumentRecord(
            id=document_id or uuid.uuid4().hex,
            file_name=str(file_name),
            status=DocumentStatus(status),
            storage_path=storage_path,
            uploaded_at=_utcnow_iso(),
        )
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO documents (id, file_name, status, storage_path, uploaded_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (record.id, record.file_name, record.status.value, record.storage_path, record.uploaded_at),
            )
        logger.info("document_inserted", document_id=record.id, file_name=record.file_name, status=record.status.value)
        return record

    def get_document(self, document_id: str) -> DocumentRecord | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, file_name, status, storage_path, uploaded_at FROM documents WHERE id = ?",
                (str(document_id),),
            ).fetchone()
        return self._row_to_document(row) if row else None

    def require_document(self, document_id: str) -> DocumentRecord:
        """Like ``get_document`` but raises DocumentNotFoundError for an unknown id."""
        document = self.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    def list_documents(self, status: DocumentStatus | None = None, limit: int | None = None) -> list[DocumentRecord]:
        """Returns documents newest first, optionally filtered by status."""
        sql = "SELECT id, file_name, status, storage_path, uploaded_at FROM documents"
        params: list[Any] = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(DocumentStatus(status).value)
        sql += " ORDER BY uploaded_at DESC, id ASC"
        if limit is not None and int(limit) > 0:
            sql += " LIMIT ?"
            params.append(int(limit))
        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_document(row) for row in rows]

    def update_status(self, document_id: str, status: DocumentStatus) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE documents SET status = ? WHERE id = ?",
                (DocumentStatus(status).value, str(document_id)),
            )
        changed = cursor.rowcount > 0
        if changed:
            logger.info("document_status_updated", document_id=str(document_id), status=DocumentStatus(status).value)
        return changed

    def count_documents(self, status: DocumentStatus | None = None) -> int:
        with self._connection() as conn:
            if status is None:
                row = conn.execute("SELECT COUNT(*) AS cnt FROM documents").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS cnt FROM documents WHERE status = ?",
                    (DocumentStatus(status).value,),
                ).fetchone()
        return int(row["cnt"]) if row else 0

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def insert_chunk(self, chunk: ChunkRecord) -> str:
        return self.insert_chunks([chunk])[0]

    def insert_chunks(self, chunks: Sequence[ChunkRecord]) -> list[str]:
        """Inserts chunks in the given order within a single transaction."""
        if not chunks:
            return []
        created_at = _utcnow_iso()
        rows = []
        for chunk in chunks:
            chunk.id = chunk.id or uuid.uuid4().hex
            rows.append(
                (
                    chunk.id,
                    str(chunk.document_id),
                    int(chunk.chunk_index),
                    str(chunk.content),
                    serialize_embedding(chunk.embedding),
                    created_at,
                )
            )
        with self._connection() as conn:
            conn.executemany(
                """
                INSERT INTO document_chunks (id, document_id, chunk_index, content, embedding, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return [row[0] for row in rows]

    def get_chunks(self, document_id: str) -> list[ChunkRecord]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT id, document_id, chunk_index, content, embedding
                FROM document_chunks
                WHERE document_id = ?
                ORDER BY chunk_index ASC
                """,
                (str(document_id),),
            ).fetchall()
        return [
            ChunkRecord(
                id=str(row["id"]),
                document_id=str(row["document_id"]),
                chunk_index=int(row["chunk_index"]),
                content=str(row["content"]),
                embedding=parse_embedding(row["embedding"]),
            )
            for row in rows
        ]

    def document_has_chunks(self, document_id: str) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM document_chunks WHERE document_id = ? LIMIT 1",
                (str(document_id),),
            ).fetchone()
        return bool(row)

    def document_ids_with_chunks(self, document_ids: Iterable[str]) -> set[str]:
        ids = [str(doc_id) for doc_id in document_ids if doc_id]
        if not ids:
            return set()
        placeholders = ",".join("?" for _ in ids)
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT DISTINCT document_id FROM document_chunks WHERE document_id IN ({placeholders})",
                ids,
            ).fetchall()
        return {str(row["document_id"]) for row in rows}

    def count_embedded_chunks(self, document_id: str | None = None) -> int:
        """Counts retrievable chunks: non-null embedding on a processed document."""
        sql = (
            """
            SELECT COUNT(*) AS cnt
            FROM document_chunks c
            JOIN documents d ON d.id = c.document_id
            WHERE c.embedding IS NOT NULL AND d.status = ?
            """
        )
        params: list[Any] = [DocumentStatus.PROCESSED.value]
        if document_id is not None:
            sql += " AND c.document_id = ?"
            params.append(str(document_id))
        with self._connection() as conn:
            row = conn.execute(sql, params).fetchone()
        return int(row["cnt"]) if row else 0

    def sample_embedded_chunks(self, limit: int) -> list[dict[str, Any]]:
        """Returns up to ``limit`` retrievable chunk rows with their raw embedding."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT c.id, c.document_id, c.chunk_index, c.content, c.embedding
                FROM document_chunks c
                JOIN documents d ON d.id = c.document_id
                WHERE c.embedding IS NOT NULL AND d.status = ?
                ORDER BY c.created_at ASC, c.document_id ASC, c.chunk_index ASC
                LIMIT ?
                """,
                (DocumentStatus.PROCESSED.value, max(1, int(limit))),
            ).fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Server-side similarity search
    # ------------------------------------------------------------------

    def supports_vector_match(self) -> bool:
        if not self._vector_match_enabled:
            return False
        try:
            with self._connection() as conn:
                row = conn.execute("SELECT cosine_similarity('[1.0]', '[1.0]') AS probe").fetchone()
        except StorageError:
            return False
        return bool(row) and row["probe"] is not None

    def match_chunks(self, query_vector: Sequence[float], threshold: float, count: int) -> list[dict[str, Any]]:
        """Nearest retrievable chunks with similarity >= threshold, best first."""
        query_json = serialize_embedding(query_vector)
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT id, document_id, chunk_index, content, similarity
                FROM (
                    SELECT c.id, c.document_id, c.chunk_index, c.content,
                           cosine_similarity(c.embedding, ?) AS similarity
                    FROM document_chunks c
                    JOIN documents d ON d.id = c.document_id
                    WHERE c.embedding IS NOT NULL AND d.status = ?
                )
                WHERE similarity IS NOT NULL AND similarity >= ?
                ORDER BY similarity DESC, document_id ASC, chunk_index ASC
                LIMIT ?
                """,
                (query_json, DocumentStatus.PROCESSED.value, float(threshold), max(1, int(count))),
            ).fetchall()
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Ingestion claims
    # ------------------------------------------------------------------

    def claim_document(self, document_id: str) -> bool:
        """
        Conditionally claims a document for ingestion; False if already claimed.

        A claim older than ``claim_ttl_seconds`` was left by a worker that never
        released it and is taken over.
        """
        cutoff = (datetime.now(timezone.utc) - timedelta(seconds=self.claim_ttl_seconds)).isoformat(
            timespec="microseconds"
        )
        with self._connection() as conn:
            expired = conn.execute(
                "DELETE FROM ingestion_claims WHERE document_id = ? AND claimed_at < ?",
                (str(document_id), cutoff),
            )
            if expired.rowcount:
                logger.warning("ingestion_claim_expired", document_id=str(document_id), ttl_seconds=self.claim_ttl_seconds)
            cursor = conn.execute(
                "INSERT OR IGNORE INTO ingestion_claims (document_id, claimed_at) VALUES (?, ?)",
                (str(document_id), _utcnow_iso()),
            )
        return cursor.rowcount == 1

    def release_claim(self, document_id: str):
        with self._connection() as conn:
            conn.execute("DELETE FROM ingestion_claims WHERE document_id = ?", (str(document_id),))
