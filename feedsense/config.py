"""
Configuration loader for the app.

Loads environment variables from .env (if present) and provides safe defaults.
By default a local SQLite DB is used (sqlite:///./feedsense.db) unless DATABASE_URL is set.
Vector search needs PostgreSQL with the pgvector extension.
"""

import os
from typing import List
from dotenv import load_dotenv

load_dotenv()

def _getenv(name: str, default: str = "") -> str:
    return os.getenv(name, default)

def _getbool(name: str, default: str = "true") -> bool:
    return _getenv(name, default).strip().lower() in ("1", "true", "yes", "on")

class Settings:
    DATABASE_URL: str = _getenv("DATABASE_URL") or "sqlite:///./feedsense.db"
    # LLM provider (OpenAI-compatible HTTP API)
    LLM_BASE_URL: str = _getenv("LLM_BASE_URL", "https://api.openai.com").rstrip("/")
    LLM_API_KEY: str = _getenv("LLM_API_KEY", "")
    EMBEDDING_MODEL: str = _getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    CHAT_MODEL: str = _getenv("CHAT_MODEL", "gpt-4o-mini")
    EMBEDDING_DIM: int = int(_getenv("EMBEDDING_DIM", "1024"))
    LLM_TIMEOUT_SECONDS: float = float(_getenv("LLM_TIMEOUT_SECONDS", "15"))
    # Search
    SEARCH_FUZZY_LIMIT: int = int(_getenv("SEARCH_FUZZY_LIMIT", "20"))
    SEARCH_VECTOR_LIMIT: int = int(_getenv("SEARCH_VECTOR_LIMIT", "50"))
    SEARCH_VECTOR_THRESHOLD: float = float(_getenv("SEARCH_VECTOR_THRESHOLD", "0.4"))
    SEARCH_SEMANTIC_WEIGHT: float = float(_getenv("SEARCH_SEMANTIC_WEIGHT", "1.5"))
    SEARCH_LEXICAL_WEIGHT: float = float(_getenv("SEARCH_LEXICAL_WEIGHT", "1.0"))
    SEARCH_DECAY_PER_DAY: float = float(_getenv("SEARCH_DECAY_PER_DAY", "0.1"))
    SEARCH_TIMEOUT_SECONDS: float = float(_getenv("SEARCH_TIMEOUT_SECONDS", "10"))
    SEARCH_WORKERS: int = int(_getenv("SEARCH_WORKERS", "8"))
    RECOMMEND_LIMIT: int = int(_getenv("RECOMMEND_LIMIT", "2"))
    # Feed
    FEED_SIMILARITY_THRESHOLD: float = float(_getenv("FEED_SIMILARITY_THRESHOLD", "0.3"))
    FEED_DEFAULT_SIZE: int = int(_getenv("FEED_DEFAULT_SIZE", "20"))
    FEED_MAX_SIZE: int = int(_getenv("FEED_MAX_SIZE", "100"))
    # Subscriptions: 0 means unlimited
    SUBSCRIPTION_LIMIT: int = int(_getenv("SUBSCRIPTION_LIMIT", "0"))
    TOPIC_MAX_LENGTH: int = int(_getenv("TOPIC_MAX_LENGTH", "30"))
    # Ingestion: FEEDS is a comma-separated list of RSS URLs registered as sources on every run
    FEEDS: List[str] = [f.strip() for f in _getenv("FEEDS", "").split(",") if f.strip()]
    INGEST_ENABLED: bool = _getbool("INGEST_ENABLED", "true")
    FETCH_INTERVAL_SECONDS: int = int(_getenv("FETCH_INTERVAL_SECONDS", "300"))
    MAX_ITEMS_PER_FEED: int = int(_getenv("MAX_ITEMS_PER_FEED", "15"))
    # Enrichment retry: articles of the last RETRY_WINDOW_DAYS without a successful enrichment
    RETRY_INTERVAL_SECONDS: int = int(_getenv("RETRY_INTERVAL_SECONDS", "3600"))
    RETRY_WINDOW_DAYS: int = int(_getenv("RETRY_WINDOW_DAYS", "7"))
    # Logging
    LOG_LEVEL: str = _getenv("LOG_LEVEL", "INFO").upper()

settings = Settings()
