# /ragdesk/config.py
"""
Centralized configuration for the document Q&A service.
Includes model names, paths, chunking and retrieval tuning.
"""
import os
from pathlib import Path
from dotenv import load_dotenv
from rich.console import Console
from .observability import configure_logging

# ==============================================================================
# CONSOLE & ENVIRONMENT
# ==============================================================================
console = Console()
load_dotenv()


def _env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip()


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        value = int(raw)
    except ValueError:
        return int(default)
    return max(minimum, value)


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        return float(default)
    return max(float(minimum), value)


# ==============================================================================
# GLOBAL CONFIGURATION
# ==============================================================================
# --- Model Services ---
OPENAI_API_KEY = _env_str("OPENAI_API_KEY")
EMBEDDING_MODEL_NAME = _env_str("EMBEDDING_MODEL_NAME", "text-embedding-3-small")
EMBEDDING_DIMENSION = _env_int("EMBEDDING_DIMENSION", 1536, minimum=1)
CHAT_MODEL_NAME = _env_str("CHAT_MODEL_NAME", "gpt-4o-mini")
CHAT_TEMPERATURE = _env_float("CHAT_TEMPERATURE", 0.8, minimum=0.0)
CHAT_MAX_TOKENS = _env_int("CHAT_MAX_TOKENS", 600, minimum=16)

# --- Path Configuration ---
# Data directory is at ../../data relative to this file (src/ragdesk/config.py)
_BASE_DIR = Path(__file__).resolve().parent.parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(_BASE_DIR / "data")))

DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "ragdesk.sqlite")))
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", str(DATA_DIR / "blob_storage")))

# --- Chunking Configuration ---
CHUNK_SIZE = _env_int("CHUNK_SIZE", 1200, minimum=128)
CHUNK_OVERLAP = _env_int("CHUNK_OVERLAP", 200, minimum=0)
if CHUNK_OVERLAP >= CHUNK_SIZE:
    CHUNK_OVERLAP = max(0, CHUNK_SIZE // 4)

# --- Retrieval Tuning ---
# Thresholds moved between 0.3 and 0.7 over time; keep them tunable.
MIN_SIMILARITY_THRESHOLD = _env_float("MIN_SIMILARITY_THRESHOLD", 0.5, minimum=0.0)
HIGH_SIMILARITY_THRESHOLD = _env_float("HIGH_SIMILARITY_THRESHOLD", 0.6, minimum=0.0)
MAX_CONTEXT_DOCUMENTS = _env_int("MAX_CONTEXT_DOCUMENTS", 2, minimum=1)
MATCH_THRESHOLD = _env_float("MATCH_THRESHOLD", 0.5, minimum=0.0)
SEARCH_TOP_K = _env_int("SEARCH_TOP_K", 10, minimum=1)
FALLBACK_SAMPLE_LIMIT = _env_int("FALLBACK_SAMPLE_LIMIT", 200, minimum=1)
CITATION_EXCERPT_CHARS = _env_int("CITATION_EXCERPT_CHARS", 150, minimum=1)
HISTORY_USER_TURNS = _env_int("HISTORY_USER_TURNS", 2, minimum=0)
SEARCH_STRATEGY = _env_str("SEARCH_STRATEGY", "auto").lower()  # auto | server | client

# --- Ingestion Tuning ---
INGEST_MAX_WORKERS = _env_int("INGEST_MAX_WORKERS", 4, minimum=1)
# A claim older than this is treated as left behind by a crashed worker.
INGEST_CLAIM_TTL_SECONDS = _env_int("INGEST_CLAIM_TTL_SECONDS", 900, minimum=1)

# --- API Server ---
API_HOST = _env_str("API_HOST", "0.0.0.0")
API_PORT = _env_int("API_PORT", 8000, minimum=1)

# --- Create necessary directories ---
DATA_DIR.mkdir(parents=True, exist_ok=True)
STORAGE_DIR.mkdir(parents=True, exist_ok=True)
LOG_PATH = Path(os.getenv("LOG_PATH", str(DATA_DIR / "logs" / "app.log")))
LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
configure_logging(LOG_PATH)
