"""
Topics, subscriptions and the personalized feed.

Provides:
 - create_topic(db, llm, content) : find or create a topic with its embedding
 - create_subscription / delete_subscription / list_subscriptions
 - get_feed(db, user_id, subscription_id, cursor, size) : one cursor page of the user's feed
"""

import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedsense.config import settings
from feedsense.cursor import FeedCursor
from feedsense.errors import EmbeddingUnavailableError, InputError, NotFoundError
from feedsense.feed import get_feed as assemble_feed
from feedsense.llm import LlmClient
from feedsense.models import RssSource, Subscription, SubscriptionType, Topic
from feedsense.repository import find_subscriptions
from feedsense.schemas import FeedItem, SubscriptionOut

logger = logging.getLogger("feedsense.subscriptions")


def _find_topic(db: Session, content: str) -> Optional[Topic]:
    return db.scalars(select(Topic).where(Topic.content == content)).first()


def create_topic(db: Session, llm: LlmClient, content: Optional[str], max_length: int = settings.TOPIC_MAX_LENGTH) -> Topic:
    """Return the topic with this content, creating it (and its embedding) if needed."""
    content = (content or "").strip()
    if not content:
        raise InputError("Topic content cannot be blank")
    if len(content) > max_length:
        raise InputError(f"Topic content must be at most {max_length} characters")

    existing = _find_topic(db, content)
    if existing:
        return existing

    vector = llm.generate_embedding(content)
    if vector is None or len(vector) == 0:
        raise EmbeddingUnavailableError("Failed to generate topic vector")

    topic = Topic(content=content, vector=vector)
    db.add(topic)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Concurrent creation of topic %r, using the stored one", content)
        existing = _find_topic(db, content)
        if existing is None:
            raise
        return existing
    db.refresh(topic)
    logger.info("Created topic id=%s content=%r", topic.id, content)
    return topic


def _ensure_subscription_limit(db: Session, user_id: int, limit: int):
    if limit and limit > 0:
        count = db.scalar(select(func.count()).select_from(Subscription).where(Subscription.user_id == user_id))
        if count >= limit:
            raise InputError(f"Subscription limit reached: {limit}")


def create_subscription(
    db: Session,
    user_id: int,
    subscription_type: SubscriptionType,
    target_id: int,
    limit: int = settings.SUBSCRIPTION_LIMIT,
) -> Subscription:
    """Subscribe a user to a source or topic; subscribing twice returns the existing subscription."""
    if target_id is None or target_id <= 0:
        raise InputError("targetId must be positive")

    if subscription_type == SubscriptionType.RSS:
        if db.get(RssSource, target_id) is None:
            raise NotFoundError(f"RSS source not found: {target_id}")
        target_column = Subscription.source_id
    else:
        if db.get(Topic, target_id) is None:
            raise NotFoundError(f"Topic not found: {target_id}")
        target_column = Subscription.topic_id

    existing = db.scalars(
        select(Subscription).where(Subscription.user_id == user_id, target_column == target_id)
    ).first()
    if existing:
        return existing

    _ensure_subscription_limit(db, user_id, limit)
    subscription = Subscription(user_id=user_id, type=subscription_type)
    if subscription_type == SubscriptionType.RSS:
        subscription.source_id = target_id
    else:
        subscription.topic_id = target_id
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


def _get_owned_subscription(db: Session, user_id: int, subscription_id: int) -> Subscription:
    if subscription_id <= 0:
        raise InputError("subscriptionId must be positive")
    subscription = db.scalars(
        select(Subscription).where(Subscription.id == subscription_id, Subscription.user_id == user_id)
    ).first()
    if subscription is None:
        raise NotFoundError(f"Subscription not found: {subscription_id}")
    return subscription


def delete_subscription(db: Session, user_id: int, subscription_id: int):
    db.delete(_get_owned_subscription(db, user_id, subscription_id))
    db.commit()


def to_subscription_out(subscription: Subscription) -> SubscriptionOut:
    if subscription.type == SubscriptionType.RSS:
        target_id = subscription.source_id
        name = subscription.source.name if subscription.source else ""
    else:
        target_id = subscription.topic_id
        name = subscription.topic.content if subscription.topic else ""
    return SubscriptionOut(
        id=subscription.id,
        type=subscription.type,
        target_id=target_id,
        name=name,
        created_at=subscription.created_at,
    )


def list_subscriptions(db: Session, user_id: int) -> List[SubscriptionOut]:
    return [to_subscription_out(s) for s in find_subscriptions(db, user_id)]


def get_feed(
    db: Session,
    user_id: int,
    subscription_id: Optional[int] = None,
    cursor: Optional[str] = None,
    size: Optional[int] = None,
    threshold: float = settings.FEED_SIMILARITY_THRESHOLD,
) -> List[FeedItem]:
    """
    One page of a user's feed, newest first.

    subscription_id narrows the feed to one subscription; otherwise all of the
    user's sources and topics contribute.
    """
    feed_cursor = FeedCursor.parse(cursor)
    if subscription_id is not None:
        subscriptions = [_get_owned_subscription(db, user_id, subscription_id)]
    else:
        subscriptions = find_subscriptions(db, user_id)

    source_ids = []
    topic_vectors = []
    for subscription in subscriptions:
        if subscription.type == SubscriptionType.RSS and subscription.source_id is not None:
            source_ids.append(subscription.source_id)
        elif subscription.type == SubscriptionType.TOPIC and subscription.topic is not None \
                and subscription.topic.vector is not None:
            topic_vectors.append(subscription.topic.vector)

    if not source_ids and not topic_vectors:
        return []
    return assemble_feed(db, source_ids, topic_vectors, feed_cursor, size, threshold)
