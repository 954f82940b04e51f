"""
FastAPI application entrypoint.

Exposes endpoints:
 - GET /articles/search : hybrid (lexical + semantic) article search
 - GET /articles/{id} : article detail with its enrichment
 - GET /articles/{id}/recommendations : nearest articles by embedding
 - PUT/DELETE /articles/{id}/favorite : favorite / unfavorite
 - GET /feed : cursor-paginated feed of the user's subscriptions
 - GET/POST /subscriptions, DELETE /subscriptions/{id}
 - POST /topics : create (or reuse) a topic
 - GET/POST /sources, PATCH /sources/{id} : list, register and enable/disable RSS sources
 - POST /ingest/run-once, POST /ingest/retry-enrichment : manual ingestion runs
 - GET /health : simple health check

The caller is identified by the X-User-Id header; authentication happens upstream.
On startup the DB is created (if missing) and the ingest background thread is started.
"""

import logging
from typing import List, Optional
from fastapi import FastAPI, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session
from feedsense import articles, subscriptions
from feedsense.config import settings
from feedsense.db import init_db, get_db
from feedsense.errors import FeedsenseError
from feedsense.enrich import retry_enrichment
from feedsense.ingest import run_forever, run_once, set_source_enabled, upsert_source
from feedsense.llm import LlmClient
from feedsense.models import RssSource
from feedsense.schemas import (
    ArticleOut, CreateSourceRequest, CreateSubscriptionRequest, CreateTopicRequest, FeedItem, SearchScope, SourceOut,
    SubscriptionOut, TopicOut, UpdateSourceRequest,
)
from feedsense.search import SearchService

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, "INFO"))
logger = logging.getLogger("feedsense.main")

app = FastAPI(title="Feedsense", version="0.1.0")

_llm: Optional[LlmClient] = None
_search_service: Optional[SearchService] = None


def get_llm() -> LlmClient:
    global _llm
    if _llm is None:
        _llm = LlmClient()
    return _llm


def get_search_service() -> SearchService:
    global _search_service
    if _search_service is None:
        _search_service = SearchService(llm=get_llm())
    return _search_service


def current_user_id(x_user_id: Optional[int] = Header(None)) -> Optional[int]:
    return x_user_id


def require_user_id(user_id: Optional[int] = Depends(current_user_id)) -> int:
    if user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id


@app.exception_handler(FeedsenseError)
def handle_feedsense_error(request: Request, exc: FeedsenseError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.on_event("startup")
def startup_event():
    # initialize database and start background ingestion thread
    init_db()
    if settings.INGEST_ENABLED:
        run_forever(llm=get_llm(), start_immediately=True)
        logger.info("Application startup complete. Ingest loop started (interval=%s seconds).", settings.FETCH_INTERVAL_SECONDS)


@app.on_event("shutdown")
def shutdown_event():
    if _search_service is not None:
        _search_service.close()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/sources", response_model=List[SourceOut])
def list_sources(skip: int = 0, limit: int = Query(50, le=200), db: Session = Depends(get_db)):
    stmt = select(RssSource).where(RssSource.enabled.is_(True)).order_by(RssSource.id).offset(skip).limit(limit)
    return list(db.scalars(stmt))


@app.post("/sources", response_model=SourceOut)
def create_source(request: CreateSourceRequest, db: Session = Depends(get_db)):
    """Register an RSS feed; registering a known url returns the existing source."""
    return upsert_source(db, request.url, request.name)


@app.patch("/sources/{source_id}", response_model=SourceOut)
def update_source(source_id: int, request: UpdateSourceRequest, db: Session = Depends(get_db)):
    return set_source_enabled(db, source_id, request.enabled)


@app.get("/articles/search", response_model=List[FeedItem])
def search_articles(
    query: str,
    scope: SearchScope = SearchScope.ALL,
    source_id: Optional[int] = None,
    user_id: Optional[int] = Depends(current_user_id),
    service: SearchService = Depends(get_search_service),
):
    return service.search(query, scope=scope, source_id=source_id, user_id=user_id)


@app.get("/articles/{article_id}", response_model=ArticleOut)
def get_article(article_id: int, user_id: Optional[int] = Depends(current_user_id), db: Session = Depends(get_db)):
    return articles.get_article(db, article_id, user_id)


@app.get("/articles/{article_id}/recommendations", response_model=List[FeedItem])
def recommend_articles(article_id: int, service: SearchService = Depends(get_search_service)):
    return service.recommend(article_id)


@app.put("/articles/{article_id}/favorite", status_code=204)
def favorite_article(article_id: int, user_id: int = Depends(require_user_id), db: Session = Depends(get_db)):
    articles.favorite(db, user_id, article_id)


@app.delete("/articles/{article_id}/favorite", status_code=204)
def unfavorite_article(article_id: int, user_id: int = Depends(require_user_id), db: Session = Depends(get_db)):
    articles.unfavorite(db, user_id, article_id)


@app.get("/feed", response_model=List[FeedItem])
def get_feed(
    subscription_id: Optional[int] = None,
    cursor: Optional[str] = None,
    size: Optional[int] = None,
    user_id: int = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """
    One page of the user's feed. Pass "<pub_date>,<id>" of the last item received as cursor for the next page.
    """
    return subscriptions.get_feed(db, user_id, subscription_id, cursor, size)


@app.get("/subscriptions", response_model=List[SubscriptionOut])
def list_subscriptions(user_id: int = Depends(require_user_id), db: Session = Depends(get_db)):
    return subscriptions.list_subscriptions(db, user_id)


@app.post("/subscriptions", response_model=SubscriptionOut)
def create_subscription(
    request: CreateSubscriptionRequest, user_id: int = Depends(require_user_id), db: Session = Depends(get_db)
):
    subscription = subscriptions.create_subscription(db, user_id, request.type, request.target_id)
    return subscriptions.to_subscription_out(subscription)


@app.delete("/subscriptions/{subscription_id}", status_code=204)
def delete_subscription(subscription_id: int, user_id: int = Depends(require_user_id), db: Session = Depends(get_db)):
    subscriptions.delete_subscription(db, user_id, subscription_id)


@app.post("/topics", response_model=TopicOut)
def create_topic(request: CreateTopicRequest, llm: LlmClient = Depends(get_llm), db: Session = Depends(get_db)):
    return subscriptions.create_topic(db, llm, request.content)


@app.post("/ingest/run-once")
def endpoint_run_once(db: Session = Depends(get_db), llm: LlmClient = Depends(get_llm)):
    """
    Trigger a single ingestion run (useful for manual runs in dev/test).
    """
    inserted = run_once(db, llm)
    return {"status": "ok", "inserted": inserted}


@app.post("/ingest/retry-enrichment")
def endpoint_retry_enrichment(db: Session = Depends(get_db), llm: LlmClient = Depends(get_llm)):
    """
    Re-run enrichment for recent articles without a usable one.
    """
    succeeded = retry_enrichment(db, llm)
    return {"status": "ok", "succeeded": succeeded}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
