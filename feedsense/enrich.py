"""
LLM enrichment of articles.

enrich_article() asks the chat model for an overview, 1-3 key points and ~5 tags,
then embeds "title + overview" for semantic search. The outcome is stored as the
article's ArticleExtra row: SUCCESS (the vector may still be missing if only the
embedding call failed) or FAILED with the error message.

retry_enrichment() gives recent articles without a usable enrichment another
try; the ingest loop calls it every RETRY_INTERVAL_SECONDS.
"""

import json
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from feedsense.config import settings
from feedsense.llm import LlmClient
from feedsense.models import Article, ArticleExtra, EnrichmentStatus

logger = logging.getLogger("feedsense.enrich")

SYSTEM_PROMPT = (
    "You summarize news articles. Reply with JSON only, in the article's language: "
    '{"overview": "<2-3 sentence overview>", '
    '"key_info": ["<1 to 3 key points, 40 characters each at most>"], '
    '"tags": ["<about 5 short tags>"]}'
)
MAX_CONTENT_CHARS = 6000

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def build_prompt(article: Article) -> str:
    body = article.content or article.description or ""
    return f"Title: {article.title}\n\n{body[:MAX_CONTENT_CHARS]}"


def parse_enrichment(reply: str) -> dict:
    """Parse the model reply, tolerating ```json fences. Raises ValueError on malformed output."""
    data = json.loads(_FENCE_RE.sub("", reply.strip()))
    if not isinstance(data, dict):
        raise ValueError("Enrichment reply is not a JSON object")
    key_info = data.get("key_info") or []
    tags = data.get("tags") or []
    return {
        "overview": str(data.get("overview") or ""),
        "key_information": [str(x) for x in key_info] if isinstance(key_info, list) else [],
        "tags": [str(x) for x in tags] if isinstance(tags, list) else [],
    }


def _save(db: Session, article_id: int, **fields) -> ArticleExtra:
    extra = db.scalars(select(ArticleExtra).where(ArticleExtra.article_id == article_id)).first()
    if extra is None:
        extra = ArticleExtra(article_id=article_id)
        db.add(extra)
    for name, value in fields.items():
        setattr(extra, name, value)
    db.commit()
    return extra


def enrich_article(db: Session, article: Article, llm: LlmClient) -> Optional[ArticleExtra]:
    try:
        reply = llm.chat(build_prompt(article), system=SYSTEM_PROMPT)
        if reply is None:
            raise ValueError("Chat model unavailable")
        result = parse_enrichment(reply)
    except ValueError as e:
        logger.error("Enrichment failed for article %s: %s", article.id, e)
        return _save(db, article.id, status=EnrichmentStatus.FAILED, error_message=str(e), vector=None)

    vector_text = f"{article.title}\n{result['overview']}".strip()
    vector = llm.generate_embedding(vector_text)
    if vector is None:
        logger.warning("Article %s enriched without a vector; it will only match lexical search", article.id)
    extra = _save(
        db,
        article.id,
        overview=result["overview"],
        key_information=result["key_information"],
        tags=result["tags"],
        vector=vector,
        status=EnrichmentStatus.SUCCESS,
        error_message=None,
    )
    logger.info("Article %s enrichment completed", article.id)
    return extra


def find_retry_candidates(db: Session, since: datetime) -> List[int]:
    """Ids of articles stored since `since` lacking a usable enrichment (none, FAILED, or no vector), oldest first."""
    stmt = (
        select(Article.id)
        .outerjoin(ArticleExtra, ArticleExtra.article_id == Article.id)
        .where(
            Article.created_at >= since,
            or_(
                ArticleExtra.id.is_(None),
                ArticleExtra.status == EnrichmentStatus.FAILED,
                ArticleExtra.vector.is_(None),
            ),
        )
        .order_by(Article.id)
    )
    return list(db.scalars(stmt))


def retry_enrichment(db: Session, llm: LlmClient, window_days: int = settings.RETRY_WINDOW_DAYS) -> int:
    """
    Re-run enrichment for recent articles that are missing it or failed it.

    Returns the number of articles that are SUCCESS afterwards. One article failing does not stop the others.
    """
    since = datetime.now(timezone.utc) - timedelta(days=window_days)
    article_ids = find_retry_candidates(db, since)
    if not article_ids:
        logger.info("No articles missing enrichment in the last %d days", window_days)
        return 0

    logger.info("Retrying enrichment for %d articles", len(article_ids))
    succeeded = 0
    for article_id in article_ids:
        try:
            article = db.get(Article, article_id)
            if article is None:
                continue
            extra = enrich_article(db, article, llm)
        except Exception:
            db.rollback()
            logger.exception("Enrichment retry failed for article %s", article_id)
            continue
        if extra is not None and extra.status == EnrichmentStatus.SUCCESS:
            succeeded += 1
    return succeeded
