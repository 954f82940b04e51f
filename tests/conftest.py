"""Shared fixtures: an in-memory SQLite database and small row factories."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedsense.config import settings
from feedsense.db import init_db
from feedsense.models import (
    Article, ArticleExtra, ArticleFavorite, EnrichmentStatus, RssSource, Subscription, SubscriptionType, Topic,
)

# an hour back so default feed cursors ("now") always include it
NOW = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=1)


def unit_vector(index: int = 0) -> list:
    vector = [0.0] * settings.EMBEDDING_DIM
    vector[index] = 1.0
    return vector


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_source(db):
    def _make(name: str = "Example News", url: Optional[str] = None) -> RssSource:
        source = RssSource(name=name, url=url or f"https://example.com/{name.replace(' ', '-').lower()}.xml")
        db.add(source)
        db.commit()
        return source
    return _make


@pytest.fixture
def make_article(db):
    def _make(
        title: str,
        source: Optional[RssSource] = None,
        pub_date: Optional[datetime] = NOW,
        author: Optional[str] = None,
        vector: Optional[list] = None,
    ) -> Article:
        article = Article(
            source_id=source.id if source else None,
            source_name=source.name if source else None,
            title=title,
            link=f"https://example.com/{title.replace(' ', '-').lower()}",
            author=author,
            pub_date=pub_date,
            word_count=100,
        )
        db.add(article)
        db.commit()
        if vector is not None:
            db.add(ArticleExtra(article_id=article.id, vector=vector, status=EnrichmentStatus.SUCCESS))
            db.commit()
        return article
    return _make


@pytest.fixture
def subscribe(db):
    def _subscribe(user_id: int, source: Optional[RssSource] = None, topic: Optional[Topic] = None) -> Subscription:
        subscription = Subscription(
            user_id=user_id,
            type=SubscriptionType.RSS if source is not None else SubscriptionType.TOPIC,
            source_id=source.id if source is not None else None,
            topic_id=topic.id if topic is not None else None,
        )
        db.add(subscription)
        db.commit()
        return subscription
    return _subscribe


@pytest.fixture
def add_favorite(db):
    def _favorite(user_id: int, article: Article):
        db.add(ArticleFavorite(user_id=user_id, article_id=article.id))
        db.commit()
    return _favorite


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)
