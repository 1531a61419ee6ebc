# /ragdesk/prompts.py
"""User-facing message catalogue and the synthesis system prompt (Spanish)."""
from __future__ import annotations

from langchain_core.prompts import PromptTemplate

SYSTEM_PROMPT_TEMPLATE = PromptTemplate.from_template(
    """Eres un asistente de IA amigable y conversacional que ayuda a los usuarios a encontrar información en sus documentos internos. Tu tono es cálido, natural y útil, como un compañero de trabajo.

INSTRUCCIONES:
- Responde SOLO usando la información proporcionada en el contexto de documentos.
- Si la información está en el contexto, responde de forma clara y completa y menciona el documento fuente de forma natural.
- Si la pregunta trata algo que NO está en el contexto, dilo con empatía y sugiere cómo reformular la pregunta o qué detalles aportar.
- Si la pregunta es vaga, pide una aclaración concreta.
- Mantén la continuidad con las preguntas anteriores del usuario cuando sea pertinente.
- Responde en el mismo idioma que la pregunta del usuario.
- No inventes datos que no aparezcan en el contexto.

CONTEXTO DE DOCUMENTOS:
{context}"""
)

FALLBACK_ANSWER = "No pude generar una respuesta."

NO_DOCUMENTS_MESSAGE = (
    "Por ahora no tengo documentos disponibles para consultar. ¿Te gustaría subir algunos "
    "documentos primero? Una vez que los subas, podré ayudarte a encontrar la información "
    "que necesitas."
)

STILL_PROCESSING_TEMPLATE = (
    "Veo que hay {count} documento{plural} en el sistema, pero aún se están procesando.\n\n"
    "Los documentos se procesan automáticamente cuando los subes. Si acabas de subirlos, "
    "dale unos momentos para que terminen de procesarse.\n\n"
    "**Para verificar:**\n"
    "• Revisa que los documentos hayan terminado de procesarse\n"
    "• Asegúrate de que sean archivos TXT, PDF o MD\n"
    "• Si pasan varios minutos y aún no se procesan, verifica que la configuración esté correcta"
)

NO_CANDIDATES_MESSAGE = (
    "Hmm, no encontré información específica sobre eso en los documentos que tengo disponibles. "
    "¿Podrías reformular tu pregunta o darme más detalles sobre lo que buscas?"
)

NO_MATCH_MESSAGE = (
    "No encontré información que coincida directamente con tu pregunta en los documentos "
    "disponibles. ¿Podrías ser un poco más específico? Por ejemplo, menciona el tema o el "
    "área de interés y con gusto te ayudo a buscar."
)

ERROR_MESSAGE = (
    "Error al procesar la consulta. Por favor, verifica la configuración del servicio de "
    "embeddings y de completado (OPENAI_API_KEY) y del almacenamiento de documentos."
)

OPENAI_REMEDIATION = (
    "Set OPENAI_API_KEY in your environment or .env file and restart the service."
)

# --- System-question answers ---
SYSTEM_NO_PROCESSED_DOCUMENTS = (
    "Por ahora no hay documentos procesados en el sistema. ¿Te gustaría subir algunos "
    "documentos para empezar?"
)

SYSTEM_COUNTS_TEMPLATE = (
    "Actualmente tengo {documents} documento{doc_plural} procesado{doc_plural} en el sistema, "
    "con un total de {chunks} fragmento{chunk_plural} de información indexado{chunk_plural}. "
    "¡Estoy listo para ayudarte a encontrar lo que necesitas!"
)

SYSTEM_NO_DOCUMENTS_TO_LIST = (
    "Por ahora no tengo documentos disponibles. ¿Te gustaría subir algunos? Una vez que los "
    "subas, podré ayudarte a encontrar cualquier información que necesites en ellos."
)

SYSTEM_DOCUMENT_LIST_TEMPLATE = (
    "¡Claro! Puedo ayudarte a consultar información sobre estos documentos:\n\n{listing}\n\n"
    "Solo hazme una pregunta específica sobre el contenido de cualquiera de ellos y buscaré "
    "la información relevante."
)

SYSTEM_HOW_IT_WORKS = (
    "¡Te explico cómo trabajo!\n\nCuando me haces una pregunta:\n\n"
    "1. Convierto tu pregunta en una representación numérica (embedding) para entender qué buscas\n"
    "2. Busco en todos los documentos los fragmentos más parecidos a tu pregunta\n"
    "3. Genero una respuesta clara basada solo en la información que encontré\n"
    "4. Te muestro las fuentes de donde obtuve la información para que puedas verificarla"
)

SYSTEM_SUPPORTED_TYPES = (
    "Acepto los siguientes tipos de documentos:\n\n"
    "• Archivos PDF (.pdf)\n"
    "• Archivos de texto (.txt)\n"
    "• Archivos Markdown (.md)\n\n"
    "Una vez que los subas, los proceso para extraer su contenido y hacerlo buscable."
)

SYSTEM_GENERIC = (
    "¡Claro! Estoy aquí para ayudarte. Puedes hacerme preguntas sobre los documentos que "
    "tengas subidos, o preguntarme cuántos documentos hay, qué tipos acepto o cómo funciona "
    "el sistema."
)


def plural_suffix(count: int) -> str:
    return "s" if int(count) != 1 else ""


def build_system_prompt(context: str) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(context=context)


def still_processing_message(document_count: int) -> str:
    return STILL_PROCESSING_TEMPLATE.format(count=document_count, plural=plural_suffix(document_count))
