"""
Hybrid article search and recommendations.

search() runs two recall branches concurrently and fuses them:
 - lexical: substring recall of the query, topped up with its top keyword
 - vector: embedding of the query, then cosine-distance recall

Each branch runs on the worker pool with its own DB session. A branch that
raises, times out, or cannot get an embedding contributes an empty list, so a
search degrades to fewer results instead of failing.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from feedsense.config import settings
from feedsense.db import SessionLocal
from feedsense.errors import InputError, NotFoundError
from feedsense.fusion import FusionWeights, fuse
from feedsense.llm import LlmClient
from feedsense.recall import (
    ALL_SOURCES, FavoritesOf, Scope, SourceSet, SubscribedSourcesOf, VectorHit, find_similar_ids, recall_by_vector,
    recall_with_keyword,
)
from feedsense.repository import article_exists, find_feed_by_ids, find_subscribed_source_ids, has_vector
from feedsense.schemas import FeedItem, SearchScope

logger = logging.getLogger("feedsense.search")


def normalize_query(query: Optional[str]) -> str:
    normalized = (query or "").strip()
    if not normalized:
        raise InputError("Search query cannot be blank")
    return normalized


class SearchService:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        llm: Optional[LlmClient] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        fuzzy_limit: int = settings.SEARCH_FUZZY_LIMIT,
        vector_limit: int = settings.SEARCH_VECTOR_LIMIT,
        vector_threshold: float = settings.SEARCH_VECTOR_THRESHOLD,
        timeout: float = settings.SEARCH_TIMEOUT_SECONDS,
        recommend_limit: int = settings.RECOMMEND_LIMIT,
        weights: Optional[FusionWeights] = None,
    ):
        self.session_factory = session_factory
        self.llm = llm or LlmClient()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.SEARCH_WORKERS, thread_name_prefix="search"
        )
        self.fuzzy_limit = fuzzy_limit
        self.vector_limit = vector_limit
        self.vector_threshold = vector_threshold
        self.timeout = timeout
        self.recommend_limit = recommend_limit
        self.weights = weights or FusionWeights()

    def close(self):
        self.executor.shutdown(wait=False, cancel_futures=True)

    def search(
        self,
        query: str,
        scope: SearchScope = SearchScope.ALL,
        source_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> List[FeedItem]:
        """
        Ranked articles matching query.

        A source_id narrows the search to that source whatever the scope.
        SUBSCRIBED and FAVORITE need a user and return nothing without one.
        """
        query = normalize_query(query)
        try:
            scope = SearchScope(scope)
        except ValueError as e:
            raise InputError(f"Unknown search scope: {scope!r}") from e
        recall_scope = self._resolve_scope(scope, source_id, user_id)
        if recall_scope is None:
            return []

        fuzzy_ids, vector_hits = self._recall_parallel(query, recall_scope)
        with self.session_factory() as session:
            results = fuse(fuzzy_ids, vector_hits, lambda ids: find_feed_by_ids(session, ids), weights=self.weights)
        logger.info(
            "Search %r scope=%s: %d lexical, %d vector, %d results",
            query, scope.value, len(fuzzy_ids), len(vector_hits), len(results),
        )
        return results

    def _resolve_scope(self, scope: SearchScope, source_id: Optional[int], user_id: Optional[int]) -> Optional[Scope]:
        if source_id is not None:
            if source_id <= 0:
                raise InputError("sourceId must be positive")
            return SourceSet((source_id,))
        if scope == SearchScope.ALL:
            return ALL_SOURCES
        if user_id is None:
            return None
        if scope == SearchScope.FAVORITE:
            return FavoritesOf(user_id)
        with self.session_factory() as session:
            if not find_subscribed_source_ids(session, user_id):
                return None
        return SubscribedSourcesOf(user_id)

    def _recall_parallel(self, query: str, scope: Scope):
        lexical = self.executor.submit(self._lexical_recall, query, scope)
        vector = self.executor.submit(self._vector_recall, query, scope)
        deadline = time.monotonic() + self.timeout
        fuzzy_ids = self._join("lexical", lexical, deadline)
        vector_hits = self._join("vector", vector, deadline)
        return fuzzy_ids, vector_hits

    def _join(self, name: str, future: Future, deadline: float) -> list:
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic())) or []
        except FuturesTimeoutError:
            future.cancel()
            logger.warning("%s recall timed out after %.1fs, continuing without it", name, self.timeout)
        except Exception:
            logger.warning("%s recall failed, continuing without it", name, exc_info=True)
        return []

    def _lexical_recall(self, query: str, scope: Scope) -> List[int]:
        with self.session_factory() as session:
            return recall_with_keyword(session, query, scope, self.fuzzy_limit)

    def _vector_recall(self, query: str, scope: Scope) -> List[VectorHit]:
        vector = self.llm.generate_embedding(query)
        if vector is None or len(vector) == 0:
            logger.warning("Embedding unavailable for %r, falling back to lexical search only", query)
            return []
        with self.session_factory() as session:
            return recall_by_vector(session, vector, scope, self.vector_threshold, self.vector_limit)

    def recommend(self, article_id: int) -> List[FeedItem]:
        """Nearest neighbours of an article by its own embedding; [] when it has none."""
        if article_id is None or article_id <= 0:
            raise InputError("articleId must be positive")
        with self.session_factory() as session:
            if not article_exists(session, article_id):
                raise NotFoundError(f"Article not found: {article_id}")
            if not has_vector(session, article_id):
                return []
            similar_ids = find_similar_ids(session, article_id, self.recommend_limit)
            feeds = {item.id: item for item in find_feed_by_ids(session, similar_ids)}
        return [feeds[i] for i in similar_ids if i in feeds]
