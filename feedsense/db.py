"""
Database initialization and session provider.

Uses SQLAlchemy. By default uses SQLite file feedsense.db in the project root.
Set DATABASE_URL to a PostgreSQL URL (with pgvector installed) for vector search.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from feedsense.config import settings
import logging

logger = logging.getLogger("feedsense.db")

# create engine with check_same_thread disabled for SQLite when using multiple threads
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
Base = declarative_base()

# pg_trgm backs the substring search, hnsw the cosine-distance search
_POSTGRES_BOOTSTRAP = [
    "CREATE EXTENSION IF NOT EXISTS vector",
    "CREATE EXTENSION IF NOT EXISTS pg_trgm",
]
_POSTGRES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_title_trgm_gin ON articles USING GIN (title gin_trgm_ops)",
    "CREATE INDEX IF NOT EXISTS idx_author_trgm_gin ON articles USING GIN (author gin_trgm_ops)",
    "CREATE INDEX IF NOT EXISTS idx_source_name_trgm_gin ON articles USING GIN (source_name gin_trgm_ops)",
    "CREATE INDEX IF NOT EXISTS idx_article_extra_vector_hnsw ON article_extra "
    "USING hnsw (vector vector_cosine_ops) WITH (m = 16, ef_construction = 64)",
]

def get_db() -> Session:
    """
    Yield a SQLAlchemy session (use as dependency in FastAPI).
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def _run_statements(bind, statements):
    with bind.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))

def init_db(bind=None):
    """Create extensions, tables and search indexes. Safe to call on startup."""
    import sqlalchemy
    # models must be imported so their tables are registered on Base.metadata
    from feedsense import models  # noqa: F401

    bind = bind or engine
    is_postgres = bind.dialect.name == "postgresql"
    try:
        if is_postgres:
            _run_statements(bind, _POSTGRES_BOOTSTRAP)
        Base.metadata.create_all(bind=bind)
        logger.info("Database initialized: %s", bind.url.render_as_string(hide_password=True))
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.exception("Failed to initialize database: %s", e)
        raise

    if is_postgres:
        try:
            _run_statements(bind, _POSTGRES_INDEXES)
        except sqlalchemy.exc.SQLAlchemyError as e:
            # an index with a different definition may already exist; search still works without it
            logger.error("Failed to create search indexes: %s", e)
