"""Core records shared by ingestion, retrieval and chat orchestration."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class DocumentStatus(str, enum.Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class QueryIntent(str, enum.Enum):
    GREETING = "greeting"
    SYSTEM_META = "system_meta"
    CONTENT = "content"


@dataclass
class DocumentRecord:
    id: str
    file_name: str
    status: DocumentStatus = DocumentStatus.PROCESSING
    storage_path: str | None = None
    uploaded_at: str = ""

    @property
    def extension(self) -> str:
        _, dot, ext = self.file_name.rpartition(".")
        return ext.lower() if dot else ""

    @property
    def blob_key(self) -> str:
        return self.storage_path or f"documents/{self.file_name}"


@dataclass
class ChunkRecord:
    document_id: str
    chunk_index: int
    content: str
    embedding: list[float] | None = None
    id: str | None = None


@dataclass
class Candidate:
    """A stored chunk scored against one query. Never persisted."""

    id: str
    document_id: str
    chunk_index: int
    content: str
    similarity: float

    @classmethod
    def from_row(cls, row: dict[str, Any], similarity: float | None = None) -> "Candidate":
        score = row.get("similarity") if similarity is None else similarity
        return cls(
            id=str(row.get("id", "")),
            document_id=str(row.get("document_id", "")),
            chunk_index=int(row.get("chunk_index", -1)),
            content=str(row.get("content", "") or ""),
            similarity=float(score or 0.0),
        )


@dataclass
class ChunkGroup:
    document_id: str
    candidates: list[Candidate] = field(default_factory=list)
    max_similarity: float = 0.0

    def add(self, candidate: Candidate):
        self.candidates.append(candidate)
        if candidate.similarity > self.max_similarity:
            self.max_similarity = candidate.similarity

    def best(self) -> Candidate:
        return max(self.candidates, key=lambda c: c.similarity)


@dataclass(frozen=True)
class Citation:
    title: str
    excerpt: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "excerpt": self.excerpt}


@dataclass
class ConversationTurn:
    role: str  # user | assistant
    content: str
    sources: list[Citation] = field(default_factory=list)


@dataclass
class ChatResponse:
    answer: str
    sources: list[Citation] = field(default_factory=list)
    intent: QueryIntent = QueryIntent.CONTENT
    error: str | None = None  # service_not_configured | internal_error
