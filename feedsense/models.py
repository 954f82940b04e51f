"""
Database models.

- RssSource: one per RSS feed
- Article: stored articles, unique by (source, guid); keeps the source name after the source is deleted
- ArticleExtra: LLM enrichment of an article (overview, tags, embedding)
- Topic: a short user phrase with its embedding
- Subscription: a user's subscription to either an RssSource or a Topic
- ArticleFavorite: a user's favorited article
"""

import enum

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Boolean, Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint, Index, JSON, Enum,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from feedsense.config import settings
from feedsense.db import Base


class SubscriptionType(str, enum.Enum):
    RSS = "RSS"
    TOPIC = "TOPIC"


class EnrichmentStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RssSource(Base):
    __tablename__ = "rss_sources"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    url = Column(String(2048), nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    articles = relationship("Article", back_populates="source", passive_deletes=True)

    def __repr__(self):
        return f"<RssSource(id={self.id} name={self.name} url={self.url})>"


class Article(Base):
    __tablename__ = "articles"
    id = Column(Integer, primary_key=True, index=True)
    source_id = Column(Integer, ForeignKey("rss_sources.id", ondelete="SET NULL"), nullable=True)
    source_name = Column(String(200), nullable=True)
    title = Column(String(500), nullable=False)
    link = Column(String(2000), nullable=False)
    guid = Column(String(500), nullable=True)
    author = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    cover_image = Column(String(2000), nullable=True)
    word_count = Column(Integer, nullable=True)
    pub_date = Column(DateTime(timezone=True), nullable=True)
    fetched_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    source = relationship("RssSource", back_populates="articles")
    extra = relationship("ArticleExtra", back_populates="article", uselist=False, passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("source_id", "guid", name="uix_article_source_guid"),
        Index("ix_article_pub_date", "pub_date"),
        Index("ix_article_source_pub_date", "source_id", "pub_date"),
    )

    def __repr__(self):
        return f"<Article(id={self.id} title={self.title[:30]!r})>"


class ArticleExtra(Base):
    __tablename__ = "article_extra"
    id = Column(Integer, primary_key=True)
    article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, unique=True)
    overview = Column(Text, nullable=True)
    key_information = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=True)
    # null until enrichment succeeds
    vector = Column(Vector(settings.EMBEDDING_DIM), nullable=True)
    status = Column(Enum(EnrichmentStatus, name="enrichment_status", native_enum=False, length=20), nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    article = relationship("Article", back_populates="extra")


class Topic(Base):
    __tablename__ = "topics"
    id = Column(Integer, primary_key=True)
    content = Column(String(255), nullable=False, unique=True)
    vector = Column(Vector(settings.EMBEDDING_DIM), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Topic(id={self.id} content={self.content!r})>"


class Subscription(Base):
    __tablename__ = "subscriptions"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    type = Column(Enum(SubscriptionType, name="subscription_type", native_enum=False, length=10), nullable=False)
    source_id = Column(Integer, ForeignKey("rss_sources.id", ondelete="CASCADE"), nullable=True)
    topic_id = Column(Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    source = relationship("RssSource")
    topic = relationship("Topic")

    __table_args__ = (
        UniqueConstraint("user_id", "source_id", name="uk_subscription_user_source"),
        UniqueConstraint("user_id", "topic_id", name="uk_subscription_user_topic"),
        Index("ix_subscription_user_type", "user_id", "type"),
    )


class ArticleFavorite(Base):
    __tablename__ = "article_favorites"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    article = relationship("Article")

    __table_args__ = (
        UniqueConstraint("user_id", "article_id", name="uix_favorite_user_article"),
    )
