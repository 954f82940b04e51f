"""
Read-side queries shared by search, recommendations and the feed.
"""

from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from feedsense.models import Article, ArticleExtra, Subscription, SubscriptionType
from feedsense.schemas import FeedItem

# the list view never needs article bodies or the enrichment payload
FEED_COLUMNS = (
    Article.id,
    Article.source_id,
    Article.source_name,
    Article.title,
    Article.cover_image,
    Article.pub_date,
    Article.word_count,
)


def to_feed_items(rows: Iterable) -> List[FeedItem]:
    return [FeedItem.model_validate(row) for row in rows]


def find_feed_by_ids(session: Session, ids: Iterable[int]) -> List[FeedItem]:
    """Batch lookup; ids without an article are simply absent from the result."""
    ids = list(ids)
    if not ids:
        return []
    rows = session.execute(select(*FEED_COLUMNS).where(Article.id.in_(ids))).all()
    return to_feed_items(rows)


def article_exists(session: Session, article_id: int) -> bool:
    return session.get(Article, article_id) is not None


def has_vector(session: Session, article_id: int) -> bool:
    stmt = select(ArticleExtra.id).where(ArticleExtra.article_id == article_id, ArticleExtra.vector.isnot(None))
    return session.execute(stmt.limit(1)).first() is not None


def find_subscriptions(session: Session, user_id: int) -> List[Subscription]:
    stmt = (
        select(Subscription)
        .options(joinedload(Subscription.source), joinedload(Subscription.topic))
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    )
    return list(session.scalars(stmt))


def find_subscribed_source_ids(session: Session, user_id: int) -> List[int]:
    stmt = (
        select(Subscription.source_id)
        .where(
            Subscription.user_id == user_id,
            Subscription.type == SubscriptionType.RSS,
            Subscription.source_id.isnot(None),
        )
        .order_by(Subscription.id)
    )
    return list(session.scalars(stmt))
