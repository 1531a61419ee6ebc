"""
FastAPI service layer for the RagDesk document Q&A system.

Exposes question answering, document upload/processing and metrics.

Run with:
    ragdesk-api
or:
    uvicorn ragdesk.api_server:app --host 0.0.0.0 --port 8000
"""
from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Literal

import uvicorn
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from . import config
from .chat_service import ERROR_NOT_CONFIGURED
from .exceptions import DocumentNotFoundError, StorageError, UnsupportedDocumentError
from .metrics import MetricsCollector, metrics_collector
from .models import ConversationTurn, DocumentRecord
from .observability import get_logger
from .services import Services, build_services

logger = get_logger(__name__)

_THREAD_POOL_WORKERS = 8


# ---------------------------------------------------------------------------
# Pydantic request / response models
# ---------------------------------------------------------------------------

class HistoryTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1, description="User question")
    history: list[HistoryTurn] = Field(default_factory=list, description="Prior turns of this client session")


class SourceModel(BaseModel):
    title: str
    excerpt: str


class QueryResponse(BaseModel):
    answer: str
    sources: list[SourceModel]
    intent: str
    latency_ms: float


class DocumentModel(BaseModel):
    id: str
    file_name: str
    status: str
    storage_path: str | None = None
    uploaded_at: str
    embedded_chunks: int = 0


class UploadResponse(BaseModel):
    document: DocumentModel
    processed: bool | None = None


class ProcessResponse(BaseModel):
    processed: list[str]
    skipped: list[str]
    failed: list[str]


def _document_model(record: DocumentRecord, embedded_chunks: int = 0) -> DocumentModel:
    return DocumentModel(
        id=record.id,
        file_name=record.file_name,
        status=record.status.value,
        storage_path=record.storage_path,
        uploaded_at=record.uploaded_at,
        embedded_chunks=embedded_chunks,
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    services_factory: Callable[[], Services] = build_services,
    metrics: MetricsCollector = metrics_collector,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build collaborators once at startup; release them on shutdown."""
        services = services_factory()
        executor = ThreadPoolExecutor(max_workers=_THREAD_POOL_WORKERS)
        app.state.services = services
        app.state.executor = executor
        if not services.embedder.is_configured or not services.completer.is_configured:
            logger.warning("model_services_not_configured")

        yield

        executor.shutdown(wait=False)
        services.close()

    app = FastAPI(
        title="RagDesk API",
        description="Question answering over internal documents",
        version="1.0.0",
        lifespan=lifespan,
    )

    async def _run(request: Request, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(request.app.state.executor, fn, *args)

    @app.post("/query", response_model=QueryResponse)
    async def query_endpoint(payload: QueryRequest, request: Request):
        """Answer a question from the indexed documents."""
        services: Services = request.app.state.services
        history = tuple(ConversationTurn(role=turn.role, content=turn.content) for turn in payload.history)
        start = time.perf_counter()

        response = await _run(request, services.chat.answer, payload.question, history)

        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record_request(
            latency_ms,
            success=response.error is None,
            route=response.intent.value,
            citations=len(response.sources),
        )
        if response.error == ERROR_NOT_CONFIGURED:
            raise HTTPException(status_code=503, detail=response.answer)

        return QueryResponse(
            answer=response.answer,
            sources=[SourceModel(**citation.to_dict()) for citation in response.sources],
            intent=response.intent.value,
            latency_ms=round(latency_ms, 2),
        )

    @app.post("/documents", response_model=UploadResponse, status_code=201)
    async def upload_endpoint(request: Request, file: UploadFile = File(...), process: bool = True):
        """Store an uploaded file and, by default, index it right away."""
        services: Services = request.app.state.services
        data = await file.read()
        try:
            record = await _run(request, services.uploader.upload_bytes, data, file.filename or "")
        except UnsupportedDocumentError as exc:
            raise HTTPException(status_code=415, detail=exc.message) from exc
        except StorageError as exc:
            raise HTTPException(status_code=500, detail=exc.message) from exc

        processed = None
        if process:
            processed = await _run(request, services.ingestor.process_document, record.id)
        embedded = await _run(request, services.store.count_embedded_chunks, record.id)
        return UploadResponse(document=_document_model(record, embedded), processed=processed)

    @app.post("/documents/process", response_model=ProcessResponse)
    async def process_endpoint(request: Request):
        """Index every uploaded document that has no chunks yet."""
        services: Services = request.app.state.services
        summary = await _run(request, services.ingestor.process_pending_documents)
        return ProcessResponse(**summary.to_dict())

    @app.get("/documents", response_model=list[DocumentModel])
    async def list_endpoint(request: Request):
        services: Services = request.app.state.services

        def _collect() -> list[DocumentModel]:
            return [
                _document_model(record, services.store.count_embedded_chunks(record.id))
                for record in services.store.list_documents()
            ]

        return await _run(request, _collect)

    @app.get("/documents/{document_id}", response_model=DocumentModel)
    async def document_endpoint(document_id: str, request: Request):
        services: Services = request.app.state.services

        def _load() -> DocumentModel:
            record = services.store.require_document(document_id)
            return _document_model(record, services.store.count_embedded_chunks(record.id))

        try:
            return await _run(request, _load)
        except DocumentNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc

    @app.get("/metrics")
    async def metrics_endpoint():
        """Return aggregated service metrics."""
        return metrics.get_summary()

    return app


app = create_app()


def main():
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)


if __name__ == "__main__":
    main()
