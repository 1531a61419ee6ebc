# /ragdesk/llm_clients.py
"""
Clients for the hosted embedding and chat completion services.

Both clients accept a missing API key and start disabled: every call then
raises ``ServiceNotConfiguredError`` instead of returning an empty result.
"""
from __future__ import annotations

from typing import Protocol, Sequence

from langchain_core.messages import HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_openai import ChatOpenAI, OpenAIEmbeddings

from . import config
from .exceptions import CompletionServiceError, EmbeddingServiceError, ServiceNotConfiguredError
from .observability import get_logger
from .prompts import OPENAI_REMEDIATION

logger = get_logger(__name__)


class EmbeddingService(Protocol):
    @property
    def is_configured(self) -> bool:
        ...

    def embed(self, text: str) -> list[float]:
        ...


class ChatCompletionService(Protocol):
    @property
    def is_configured(self) -> bool:
        ...

    def complete(self, system_prompt: str, history: Sequence[str], user_message: str) -> str:
        ...


class OpenAIEmbeddingService:
    def __init__(
        self,
        api_key: str = config.OPENAI_API_KEY,
        model: str = config.EMBEDDING_MODEL_NAME,
    ):
        self.model = model
        self._client = OpenAIEmbeddings(model=model, api_key=api_key) if api_key else None
        if self._client is None:
            logger.warning("embedding_service_disabled", model=model)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def embed(self, text: str) -> list[float]:
        if self._client is None:
            raise ServiceNotConfiguredError("Embedding service", OPENAI_REMEDIATION)
        try:
            vector = self._client.embed_query(str(text))
        except Exception as exc:
            logger.error("embedding_request_failed", model=self.model, error=str(exc))
            raise EmbeddingServiceError(
                "Error generating embedding. Verify the OpenAI API key and model name.",
                {"model": self.model, "error": str(exc)},
            ) from exc
        return [float(component) for component in vector]


class OpenAIChatService:
    def __init__(
        self,
        api_key: str = config.OPENAI_API_KEY,
        model: str = config.CHAT_MODEL_NAME,
        temperature: float = config.CHAT_TEMPERATURE,
        max_tokens: int = config.CHAT_MAX_TOKENS,
    ):
        self.model = model
        self._prompt = ChatPromptTemplate.from_messages(
            [
                ("system", "{system_prompt}"),
                MessagesPlaceholder("history"),
                ("human", "{question}"),
            ]
        )
        self._llm = (
            ChatOpenAI(model=model, temperature=temperature, max_tokens=max_tokens, api_key=api_key)
            if api_key
            else None
        )
        if self._llm is None:
            logger.warning("chat_service_disabled", model=model)

    @property
    def is_configured(self) -> bool:
        return self._llm is not None

    def complete(self, system_prompt: str, history: Sequence[str], user_message: str) -> str:
        if self._llm is None:
            raise ServiceNotConfiguredError("Chat completion service", OPENAI_REMEDIATION)
        chain = self._prompt | self._llm
        try:
            message = chain.invoke(
                {
                    "system_prompt": system_prompt,
                    "history": [HumanMessage(content=turn) for turn in history],
                    "question": user_message,
                }
            )
        except Exception as exc:
            logger.error("completion_request_failed", model=self.model, error=str(exc))
            raise CompletionServiceError(
                "Error generating the answer. Verify the OpenAI API key and model name.",
                {"model": self.model, "error": str(exc)},
            ) from exc
        return str(getattr(message, "content", "") or "")


def build_embedding_service() -> OpenAIEmbeddingService:
    return OpenAIEmbeddingService()


def build_chat_service() -> OpenAIChatService:
    return OpenAIChatService()
