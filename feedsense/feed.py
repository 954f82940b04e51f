"""
Hybrid feed assembly.

A user's feed is the time-ordered union of
 - one chronological branch over all subscribed sources, and
 - one similarity branch per subscribed topic (cosine distance below a threshold).

All branches go into a single UNION query so a page is read from one snapshot,
and every branch applies the same cursor predicate, so pages never overlap.
No relevance scoring happens here: topic matches compete on recency.
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_, select, union
from sqlalchemy.orm import Session

from feedsense.config import settings
from feedsense.cursor import FeedCursor
from feedsense.models import Article, ArticleExtra
from feedsense.repository import FEED_COLUMNS, to_feed_items
from feedsense.schemas import FeedItem

logger = logging.getLogger("feedsense.feed")


def normalize_page_size(
    size: Optional[int],
    default: int = settings.FEED_DEFAULT_SIZE,
    maximum: int = settings.FEED_MAX_SIZE,
) -> int:
    if size is None or size <= 0:
        return default
    return min(size, maximum)


def _before_cursor(cursor: FeedCursor):
    return or_(
        Article.pub_date < cursor.time,
        and_(Article.pub_date == cursor.time, Article.id < cursor.id),
    )


def build_branches(
    source_ids: Sequence[int],
    topic_vectors: Sequence[Sequence[float]],
    cursor: FeedCursor,
    threshold: float,
) -> list:
    branches = []
    if source_ids:
        branches.append(
            select(*FEED_COLUMNS).where(Article.source_id.in_(list(source_ids)), _before_cursor(cursor))
        )
    for vector in topic_vectors:
        branches.append(
            select(*FEED_COLUMNS)
            .join(ArticleExtra, ArticleExtra.article_id == Article.id)
            .where(
                ArticleExtra.vector.isnot(None),
                ArticleExtra.vector.cosine_distance(vector) < threshold,
                _before_cursor(cursor),
            )
        )
    return branches


def build_feed_query(
    source_ids: Sequence[int],
    topic_vectors: Sequence[Sequence[float]],
    cursor: FeedCursor,
    page_size: int,
    threshold: float = settings.FEED_SIMILARITY_THRESHOLD,
):
    """The page query, or None when there is nothing subscribed."""
    branches = build_branches(list(dict.fromkeys(source_ids)), topic_vectors, cursor, threshold)
    if not branches:
        return None
    if len(branches) == 1:
        return branches[0].order_by(Article.pub_date.desc(), Article.id.desc()).limit(page_size)
    # UNION (not UNION ALL) drops an article matched by several branches
    feed = union(*branches).subquery("feed")
    return select(feed).order_by(feed.c.pub_date.desc(), feed.c.id.desc()).limit(page_size)


def get_feed(
    session: Session,
    source_ids: Sequence[int],
    topic_vectors: Sequence[Sequence[float]],
    cursor: Optional[FeedCursor] = None,
    page_size: Optional[int] = None,
    threshold: float = settings.FEED_SIMILARITY_THRESHOLD,
) -> List[FeedItem]:
    """One page of the feed, newest first, strictly after cursor."""
    cursor = cursor or FeedCursor.start()
    stmt = build_feed_query(source_ids, topic_vectors, cursor, normalize_page_size(page_size), threshold)
    if stmt is None:
        return []
    logger.debug(
        "Feed page: %d sources, %d topics, cursor=%s", len(source_ids), len(topic_vectors), cursor.encode()
    )
    return to_feed_items(session.execute(stmt).all())
