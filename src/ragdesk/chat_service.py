# /ragdesk/chat_service.py
"""
Question answering over the indexed documents.

``ChatService.answer`` routes the question, short-circuits greetings and
questions about the system itself, and otherwise runs the retrieval
pipeline and asks the completion service for a grounded answer.
"""
from __future__ import annotations

import random
from typing import Iterable, Sequence

from . import config, prompts
from .aggregator import build_context_block, select
from .document_store import DocumentStore
from .exceptions import RagDeskError, ServiceNotConfiguredError
from .llm_clients import ChatCompletionService, EmbeddingService
from .models import ChatResponse, ConversationTurn, DocumentStatus, QueryIntent
from .observability import get_logger
from .query_router import (
    classify,
    greeting_response,
    indicates_no_information,
    is_system_question,
    system_topic,
)
from .vector_search import EmbeddingIndex

logger = get_logger(__name__)

DOCUMENT_LISTING_LIMIT = 10
ERROR_NOT_CONFIGURED = "service_not_configured"
ERROR_INTERNAL = "internal_error"


class SystemQuestionResponder:
    """Answers questions about the system from record counts; never embeds anything."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def answer(self, question: str) -> str:
        topic = system_topic(question)
        logger.info("system_question_answered", topic=topic)
        if topic == "counts":
            return self._counts()
        if topic == "listing":
            return self._listing()
        if topic == "how_it_works":
            return prompts.SYSTEM_HOW_IT_WORKS
        if topic == "file_types":
            return prompts.SYSTEM_SUPPORTED_TYPES
        return prompts.SYSTEM_GENERIC

    def _counts(self) -> str:
        documents = self.store.count_documents(DocumentStatus.PROCESSED)
        if documents == 0:
            return prompts.SYSTEM_NO_PROCESSED_DOCUMENTS
        chunks = self.store.count_embedded_chunks()
        return prompts.SYSTEM_COUNTS_TEMPLATE.format(
            documents=documents,
            doc_plural=prompts.plural_suffix(documents),
            chunks=chunks,
            chunk_plural=prompts.plural_suffix(chunks),
        )

    def _listing(self) -> str:
        documents = self.store.list_documents(status=DocumentStatus.PROCESSED, limit=DOCUMENT_LISTING_LIMIT)
        if not documents:
            return prompts.SYSTEM_NO_DOCUMENTS_TO_LIST
        listing = "\n".join(f"• {doc.file_name}" for doc in documents)
        return prompts.SYSTEM_DOCUMENT_LIST_TEMPLATE.format(listing=listing)


def recent_user_questions(history: Iterable[ConversationTurn], turns: int = config.HISTORY_USER_TURNS) -> list[str]:
    """The last ``turns`` user messages, minus questions about the system itself."""
    if turns <= 0:
        return []
    user_turns = [turn.content for turn in history if turn.role == "user"][-turns:]
    return [text for text in user_turns if not is_system_question(text)]


class ChatService:
    def __init__(
        self,
        store: DocumentStore,
        index: EmbeddingIndex,
        embedder: EmbeddingService,
        completer: ChatCompletionService,
        *,
        rng: random.Random | None = None,
        top_k: int = config.SEARCH_TOP_K,
        min_threshold: float = config.MIN_SIMILARITY_THRESHOLD,
        high_threshold: float = config.HIGH_SIMILARITY_THRESHOLD,
        max_docs: int = config.MAX_CONTEXT_DOCUMENTS,
        history_turns: int = config.HISTORY_USER_TURNS,
    ):
        self.store = store
        self.index = index
        self.embedder = embedder
        self.completer = completer
        self.rng = rng or random.Random()
        self.system_responder = SystemQuestionResponder(store)
        self.top_k = int(top_k)
        self.min_threshold = float(min_threshold)
        self.high_threshold = float(high_threshold)
        self.max_docs = int(max_docs)
        self.history_turns = int(history_turns)

    def answer(self, question: str, history: Sequence[ConversationTurn] = ()) -> ChatResponse:
        """Answers one question; failures become a single user-facing message."""
        intent = classify(question)
        logger.info("query_routed", intent=intent.value)
        try:
            if intent == QueryIntent.GREETING:
                return ChatResponse(answer=greeting_response(self.rng), intent=intent)
            if intent == QueryIntent.SYSTEM_META:
                return ChatResponse(answer=self.system_responder.answer(question), intent=intent)
            return self._answer_content(question, history)
        except ServiceNotConfiguredError as exc:
            logger.error("query_service_not_configured", service=exc.service)
            return ChatResponse(answer=exc.message, intent=intent, error=ERROR_NOT_CONFIGURED)
        except RagDeskError as exc:
            logger.error("query_failed", error=str(exc), details=exc.details)
            return ChatResponse(answer=prompts.ERROR_MESSAGE, intent=intent, error=ERROR_INTERNAL)
        except Exception as exc:
            logger.exception("query_failed_unexpected", error=str(exc))
            return ChatResponse(answer=prompts.ERROR_MESSAGE, intent=intent, error=ERROR_INTERNAL)

    def _answer_content(self, question: str, history: Sequence[ConversationTurn]) -> ChatResponse:
        documents = self.store.count_documents(DocumentStatus.PROCESSED)
        if documents == 0:
            return ChatResponse(answer=prompts.NO_DOCUMENTS_MESSAGE)
        if self.store.count_embedded_chunks() == 0:
            return ChatResponse(answer=prompts.still_processing_message(documents))

        query_vector = self.embedder.embed(question)
        candidates = self.index.search(query_vector, self.top_k)
        if not candidates:
            return ChatResponse(answer=prompts.NO_CANDIDATES_MESSAGE)

        selection = select(
            candidates,
            min_threshold=self.min_threshold,
            high_threshold=self.high_threshold,
            max_docs=self.max_docs,
            name_lookup=self._document_name,
        )
        if selection.is_empty:
            return ChatResponse(answer=prompts.NO_MATCH_MESSAGE)

        system_prompt = prompts.build_system_prompt(build_context_block(selection.context_chunks))
        prior = recent_user_questions(history, self.history_turns)
        answer = self.completer.complete(system_prompt, prior, question) or prompts.FALLBACK_ANSWER

        citations = selection.citations
        if indicates_no_information(answer):
            logger.info("citations_suppressed", reason="no_information_answer", candidates=len(candidates))
            citations = []
        return ChatResponse(answer=answer, sources=list(citations))

    def _document_name(self, document_id: str) -> str | None:
        try:
            document = self.store.get_document(document_id)
        except RagDeskError as exc:
            logger.warning("citation_lookup_failed", document_id=document_id, error=str(exc))
            return None
        return document.file_name if document else None


class ChatSession:
    """In-memory conversation for one client; discarded with the session."""

    def __init__(self, service: ChatService):
        self.service = service
        self.turns: list[ConversationTurn] = []

    def ask(self, question: str) -> ChatResponse:
        response = self.service.answer(question, tuple(self.turns))
        self.turns.append(ConversationTurn(role="user", content=question))
        self.turns.append(ConversationTurn(role="assistant", content=response.answer, sources=list(response.sources)))
        return response

    def reset(self):
        self.turns.clear()
