"""
Score fusion for hybrid search.

fuse() merges the lexical and the vector candidate lists into one ranked list:

    score = ((1 - distance) * semantic_weight  if the article was a vector hit
             + lexical_weight                  if the article was a lexical hit)
            * 1 / (1 + age_days * decay_per_day)

It is a pure function of its inputs; metadata comes from the feed_lookup callable
and "now" can be pinned for deterministic results.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from feedsense.config import settings
from feedsense.recall import VectorHit
from feedsense.schemas import FeedItem


@dataclass(frozen=True)
class FusionWeights:
    semantic_weight: float = settings.SEARCH_SEMANTIC_WEIGHT
    lexical_weight: float = settings.SEARCH_LEXICAL_WEIGHT
    decay_per_day: float = settings.SEARCH_DECAY_PER_DAY


FeedLookup = Callable[[List[int]], Iterable[FeedItem]]


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite returns them naive)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def age_in_days(pub_date: Optional[datetime], now: datetime) -> int:
    """Whole days since pub_date, never negative; unknown dates count as fresh."""
    if pub_date is None:
        return 0
    return max(0, (as_utc(now) - as_utc(pub_date)).days)


def score(
    item: FeedItem,
    lexical_ids: set,
    distances: Dict[int, float],
    now: datetime,
    weights: FusionWeights,
) -> float:
    relevance = 0.0
    distance = distances.get(item.id)
    if distance is not None:
        relevance += (1.0 - distance) * weights.semantic_weight
    if item.id in lexical_ids:
        relevance += weights.lexical_weight
    decay = 1.0 / (1.0 + age_in_days(item.pub_date, now) * weights.decay_per_day)
    return relevance * decay


def fuse(
    fuzzy_ids: Optional[Sequence[int]],
    vector_hits: Optional[Sequence[VectorHit]],
    feed_lookup: FeedLookup,
    now: Optional[datetime] = None,
    weights: Optional[FusionWeights] = None,
) -> List[FeedItem]:
    """
    Rank the union of both candidate lists.

    Each article appears once. Ids without metadata are dropped. Equal scores
    keep the union order: lexical ids first, then vector-only ids.
    """
    fuzzy_ids = fuzzy_ids or []
    vector_hits = vector_hits or []
    weights = weights or FusionWeights()
    now = now or datetime.now(timezone.utc)

    lexical_ids = set(fuzzy_ids)
    distances = {}
    for hit in vector_hits:
        distances.setdefault(hit.article_id, hit.distance)
    union = list(dict.fromkeys([*fuzzy_ids, *distances]))
    if not union:
        return []

    feeds = {item.id: item for item in feed_lookup(union)}
    candidates = [feeds[article_id] for article_id in union if article_id in feeds]
    scored = [(score(item, lexical_ids, distances, now, weights), item) for item in candidates]
    # sorted() is stable, so ties stay in union order
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]
