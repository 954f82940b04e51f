"""
Article detail and favorites.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedsense.errors import InputError, NotFoundError
from feedsense.models import Article, ArticleExtra, ArticleFavorite, EnrichmentStatus
from feedsense.schemas import ArticleOut


def _require_positive(article_id: int):
    if article_id is None or article_id <= 0:
        raise InputError("articleId must be positive")


def _get_article(db: Session, article_id: int) -> Article:
    _require_positive(article_id)
    article = db.get(Article, article_id)
    if article is None:
        raise NotFoundError(f"Article not found: {article_id}")
    return article


def _find_favorite(db: Session, user_id: int, article_id: int) -> Optional[ArticleFavorite]:
    return db.scalars(
        select(ArticleFavorite).where(ArticleFavorite.user_id == user_id, ArticleFavorite.article_id == article_id)
    ).first()


def get_article(db: Session, article_id: int, user_id: Optional[int] = None) -> ArticleOut:
    article = _get_article(db, article_id)
    extra = db.scalars(select(ArticleExtra).where(ArticleExtra.article_id == article_id)).first()
    out = ArticleOut(
        id=article.id,
        source_id=article.source_id,
        source_name=article.source_name,
        title=article.title,
        link=article.link,
        author=article.author,
        description=article.description,
        content=article.content,
        cover_image=article.cover_image,
        word_count=article.word_count,
        pub_date=article.pub_date,
        is_favorite=user_id is not None and _find_favorite(db, user_id, article_id) is not None,
    )
    # failed enrichments carry no usable overview
    if extra is not None and extra.status == EnrichmentStatus.SUCCESS:
        out.overview = extra.overview
        out.key_information = list(extra.key_information or [])
        out.tags = list(extra.tags or [])
    return out


def favorite(db: Session, user_id: int, article_id: int):
    _get_article(db, article_id)
    if _find_favorite(db, user_id, article_id):
        return
    db.add(ArticleFavorite(user_id=user_id, article_id=article_id))
    try:
        db.commit()
    except IntegrityError:
        # favorited concurrently
        db.rollback()


def unfavorite(db: Session, user_id: int, article_id: int):
    _require_positive(article_id)
    existing = _find_favorite(db, user_id, article_id)
    if existing:
        db.delete(existing)
        db.commit()
