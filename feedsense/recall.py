"""
Candidate recall for article search.

Two independent recall engines, scoped identically:
 - recall / recall_with_keyword : case-insensitive substring match on title, author and source name
 - recall_by_vector : cosine distance between a query vector and ArticleExtra.vector (pgvector)

Both return article ids only; metadata is fetched once after fusion.
"""

from dataclasses import dataclass
from typing import List, NamedTuple, Sequence, Tuple, Union

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, aliased

from feedsense.keywords import extract_top_keyword
from feedsense.models import Article, ArticleExtra, ArticleFavorite, Subscription, SubscriptionType


@dataclass(frozen=True)
class AllSources:
    pass


@dataclass(frozen=True)
class SourceSet:
    source_ids: Tuple[int, ...]


@dataclass(frozen=True)
class FavoritesOf:
    user_id: int


@dataclass(frozen=True)
class SubscribedSourcesOf:
    user_id: int


Scope = Union[AllSources, SourceSet, FavoritesOf, SubscribedSourcesOf]
ALL_SOURCES = AllSources()


class VectorHit(NamedTuple):
    article_id: int
    distance: float


def apply_scope(stmt, scope: Scope):
    """Restrict a statement selecting from Article to the given scope."""
    if isinstance(scope, AllSources):
        return stmt
    if isinstance(scope, SourceSet):
        return stmt.where(Article.source_id.in_(scope.source_ids))
    if isinstance(scope, FavoritesOf):
        favorites = select(ArticleFavorite.article_id).where(ArticleFavorite.user_id == scope.user_id)
        return stmt.where(Article.id.in_(favorites))
    if isinstance(scope, SubscribedSourcesOf):
        subscribed = select(Subscription.source_id).where(
            Subscription.user_id == scope.user_id,
            Subscription.type == SubscriptionType.RSS,
            Subscription.source_id.isnot(None),
        )
        return stmt.where(Article.source_id.in_(subscribed))
    raise TypeError(f"Unknown search scope: {scope!r}")


def recall(session: Session, pattern: str, scope: Scope = ALL_SOURCES, limit: int = 20) -> List[int]:
    """Ids of articles whose title, author or source name contains pattern, newest first."""
    stmt = (
        select(Article.id)
        .where(or_(
            Article.title.icontains(pattern, autoescape=True),
            Article.author.icontains(pattern, autoescape=True),
            Article.source_name.icontains(pattern, autoescape=True),
        ))
        .order_by(Article.pub_date.desc().nullslast(), Article.id.desc())
        .limit(limit)
    )
    return list(session.scalars(apply_scope(stmt, scope)))


def merge_ids(first: Sequence[int], second: Sequence[int], limit: int) -> List[int]:
    """Concatenate two id lists without duplicates, keeping first-seen order."""
    return list(dict.fromkeys([*first, *second]))[:limit]


def recall_with_keyword(session: Session, query: str, scope: Scope = ALL_SOURCES, limit: int = 20) -> List[int]:
    """
    Substring recall for the raw query, topped up with a recall for its top keyword.

    Query hits come first; keyword hits fill the remainder up to limit.
    """
    query_ids = recall(session, query, scope, limit)
    keyword = extract_top_keyword(query)
    if keyword is None:
        return query_ids
    keyword_ids = recall(session, keyword, scope, limit)
    if not keyword_ids:
        return query_ids
    return merge_ids(query_ids, keyword_ids, limit)


def recall_by_vector(
    session: Session,
    query_vector: Sequence[float],
    scope: Scope = ALL_SOURCES,
    threshold: float = 0.4,
    limit: int = 50,
) -> List[VectorHit]:
    """Articles whose embedding lies within threshold cosine distance of query_vector, closest first."""
    distance_expr = ArticleExtra.vector.cosine_distance(query_vector)
    distance = distance_expr.label("distance")
    stmt = (
        select(ArticleExtra.article_id, distance)
        .join(Article, Article.id == ArticleExtra.article_id)
        .where(ArticleExtra.vector.isnot(None), distance_expr < threshold)
        .order_by(distance, ArticleExtra.article_id)
        .limit(limit)
    )
    rows = session.execute(apply_scope(stmt, scope)).all()
    return [VectorHit(row.article_id, float(row.distance)) for row in rows]


def find_similar_ids(session: Session, article_id: int, limit: int = 2) -> List[int]:
    """Nearest neighbours of an article's own embedding, excluding the article itself."""
    target = aliased(ArticleExtra)
    other = aliased(ArticleExtra)
    stmt = (
        select(other.article_id)
        .join(target, target.article_id == article_id)
        .where(target.vector.isnot(None), other.vector.isnot(None), other.article_id != article_id)
        .order_by(other.vector.cosine_distance(target.vector), other.article_id)
        .limit(limit)
    )
    return list(session.scalars(stmt))
