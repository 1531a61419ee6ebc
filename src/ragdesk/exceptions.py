"""
Exception hierarchy for the document Q&A service.

Every error carries a human-readable message plus an optional details dict
that is emitted with structured log events.
"""
from __future__ import annotations

from typing import Any


class RagDeskError(Exception):
    """Base exception for all service errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ServiceNotConfiguredError(RagDeskError):
    """Raised when a model service is called without credentials."""

    def __init__(self, service: str, remediation: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["service"] = service
        self.service = service
        self.remediation = remediation
        super().__init__(f"{service} is not configured. {remediation}", details)


class EmbeddingServiceError(RagDeskError):
    """Raised when the embedding provider call fails."""


class CompletionServiceError(RagDeskError):
    """Raised when the chat completion provider call fails."""


class StorageError(RagDeskError):
    """Raised when the record store or blob storage cannot serve a request."""


class DocumentNotFoundError(RagDeskError):
    def __init__(self, document_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["document_id"] = document_id
        super().__init__(f"Document not found: {document_id}", details)


class UnsupportedDocumentError(RagDeskError):
    def __init__(self, file_name: str, extension: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details.update({"file_name": file_name, "extension": extension})
        super().__init__(f"Unsupported document format '{extension}' for {file_name}", details)


class TextExtractionError(RagDeskError):
    """Raised when no usable text can be extracted from a document."""
