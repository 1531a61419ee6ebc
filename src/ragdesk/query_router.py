# /ragdesk/query_router.py
"""
Keyword classifiers that decide whether a question needs retrieval at all.
The phrase tables are plain data; the functions only read them.
"""
from __future__ import annotations

import random
import re
from typing import Iterable, Sequence

from .models import QueryIntent

GREETING_PHRASES: tuple[str, ...] = (
    "hola", "hello", "hi", "hey", "buenos días", "buenos dias", "buenas tardes",
    "buenas noches", "saludos", "qué tal", "que tal", "cómo estás", "como estas",
    "buen día", "buen dia", "buena tarde", "buena noche",
)

GREETING_MAX_TOKENS = 5

SYSTEM_COUNT_KEYWORDS: tuple[str, ...] = (
    "cuántos documentos", "cuantos documentos", "cuántos archivos", "cuantos archivos",
    "how many documents",
)
SYSTEM_LISTING_KEYWORDS: tuple[str, ...] = (
    "qué información puedo", "que información puedo", "que informacion puedo",
    "what documents", "which documents",
)
SYSTEM_HOW_IT_WORKS_KEYWORDS: tuple[str, ...] = (
    "cómo funciona el sistema", "como funciona el sistema", "how does the system work",
)
SYSTEM_FILE_TYPE_KEYWORDS: tuple[str, ...] = (
    "qué tipos de documentos", "que tipos de documentos", "what file types",
)
SYSTEM_QUESTION_KEYWORDS: tuple[str, ...] = (
    SYSTEM_COUNT_KEYWORDS
    + SYSTEM_LISTING_KEYWORDS
    + SYSTEM_HOW_IT_WORKS_KEYWORDS
    + SYSTEM_FILE_TYPE_KEYWORDS
    + ("qué documentos", "que documentos")
)

SYSTEM_TOPICS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("counts", SYSTEM_COUNT_KEYWORDS),
    ("listing", SYSTEM_LISTING_KEYWORDS),
    ("how_it_works", SYSTEM_HOW_IT_WORKS_KEYWORDS),
    ("file_types", SYSTEM_FILE_TYPE_KEYWORDS),
)

NO_INFORMATION_PHRASES: tuple[str, ...] = (
    "no tengo información", "no tengo informacion",
    "no encontré información", "no encontre informacion",
    "no tengo esa información",
    "no está en el contexto", "no esta en el contexto",
    "no está disponible",
    "no puedo responder",
    "no hay información",
    "no se encontró",
    "no se encuentra",
    "i don't have information", "not in the context",
)

GREETING_RESPONSES: tuple[str, ...] = (
    "¡Hola! 👋 Me da mucho gusto ayudarte. ¿En qué puedo asistirte hoy?",
    "¡Hola! 😊 Estoy aquí para ayudarte a encontrar información en tus documentos. ¿Qué te gustaría saber?",
    "¡Hola! Bienvenido. Cuéntame, ¿qué información necesitas buscar hoy?",
)

_PUNCTUATION_RE = re.compile(r"[.,!?;:¿¡]")


def _normalize(text: str) -> str:
    return _PUNCTUATION_RE.sub("", str(text or "").strip().lower()).strip()


def _contains_any(text: str, phrases: Iterable[str]) -> bool:
    return any(phrase in text for phrase in phrases)


def is_greeting(question: str, phrases: Sequence[str] = GREETING_PHRASES) -> bool:
    text = _normalize(question)
    if not text:
        return False
    for phrase in phrases:
        if text == phrase or text.startswith(phrase + " "):
            return True
    if len(text.split()) > GREETING_MAX_TOKENS:
        return False
    # Whole-word containment: "hi" must not fire inside "archivo".
    return any(re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) for phrase in phrases)


def is_system_question(question: str, keywords: Sequence[str] = SYSTEM_QUESTION_KEYWORDS) -> bool:
    return _contains_any(str(question or "").lower(), keywords)


def indicates_no_information(answer: str, phrases: Sequence[str] = NO_INFORMATION_PHRASES) -> bool:
    return _contains_any(str(answer or "").lower(), phrases)


def classify(question: str) -> QueryIntent:
    if is_greeting(question):
        return QueryIntent.GREETING
    if is_system_question(question):
        return QueryIntent.SYSTEM_META
    return QueryIntent.CONTENT


def greeting_response(rng: random.Random | None = None) -> str:
    chooser = rng or random.Random()
    return chooser.choice(GREETING_RESPONSES)


def system_topic(question: str) -> str:
    """Which system-question handler applies; ``generic`` when none does."""
    lower = str(question or "").lower()
    for topic, keywords in SYSTEM_TOPICS:
        if _contains_any(lower, keywords):
            return topic
    return "generic"
