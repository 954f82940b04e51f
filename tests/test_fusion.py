"""Tests for feedsense.fusion."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from feedsense.fusion import FusionWeights, age_in_days, fuse, score
from feedsense.recall import VectorHit
from feedsense.schemas import FeedItem

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _item(article_id: int, days_old: float = 0, pub_date=...) -> FeedItem:
    if pub_date is ...:
        pub_date = NOW - timedelta(days=days_old)
    return FeedItem(id=article_id, source_id=1, source_name="src", title=f"title {article_id}", pub_date=pub_date)


def _lookup(*items: FeedItem):
    return lambda ids: [item for item in items if item.id in ids]


class TestAgeInDays:
    def test_whole_days(self) -> None:
        assert age_in_days(NOW - timedelta(days=3, hours=20), NOW) == 3

    def test_future_dates_count_as_zero(self) -> None:
        assert age_in_days(NOW + timedelta(days=2), NOW) == 0

    def test_missing_date_counts_as_zero(self) -> None:
        assert age_in_days(None, NOW) == 0

    def test_naive_dates_are_utc(self) -> None:
        naive = (NOW - timedelta(days=5)).replace(tzinfo=None)
        assert age_in_days(naive, NOW) == 5


class TestScore:
    def test_semantic_and_lexical_add_up(self) -> None:
        item = _item(1)
        assert score(item, {1}, {1: 0.2}, NOW, FusionWeights(1.5, 1.0, 0.1)) == pytest.approx(0.8 * 1.5 + 1.0)

    def test_ten_days_halves_the_score(self) -> None:
        item = _item(1, days_old=10)
        assert score(item, {1}, {}, NOW, FusionWeights(1.5, 1.0, 0.1)) == pytest.approx(0.5)

    def test_no_signal_scores_zero(self) -> None:
        assert score(_item(1), set(), {}, NOW, FusionWeights()) == 0.0


class TestFuse:
    def test_empty_union_skips_lookup(self) -> None:
        lookup = MagicMock()
        assert fuse([], [], lookup, now=NOW) == []
        assert fuse(None, None, lookup, now=NOW) == []
        lookup.assert_not_called()

    def test_vector_only_orders_by_distance(self) -> None:
        # a query with no literal title match: ranking comes from distance alone
        hits = [VectorHit(11, 0.10), VectorHit(12, 0.25), VectorHit(13, 0.40)]
        items = [_item(11, 2), _item(12, 2), _item(13, 2)]
        result = fuse([], hits, _lookup(*items), now=NOW)
        assert [r.id for r in result] == [11, 12, 13]

    def test_article_in_both_signals_appears_once(self) -> None:
        result = fuse([1, 2], [VectorHit(2, 0.3), VectorHit(3, 0.1)], _lookup(_item(1), _item(2), _item(3)), now=NOW)
        assert sorted(r.id for r in result) == [1, 2, 3]
        assert result[0].id == 2

    def test_lookup_receives_union_once(self) -> None:
        lookup = MagicMock(return_value=[])
        fuse([1, 2], [VectorHit(2, 0.3), VectorHit(3, 0.1)], lookup, now=NOW)
        lookup.assert_called_once_with([1, 2, 3])

    def test_unresolved_ids_are_dropped(self) -> None:
        result = fuse([1, 99], [VectorHit(98, 0.1)], _lookup(_item(1)), now=NOW)
        assert [r.id for r in result] == [1]

    def test_newer_article_never_scores_lower(self) -> None:
        result = fuse([1, 2, 3], [], _lookup(_item(1, 30), _item(2, 0), _item(3, 5)), now=NOW)
        assert [r.id for r in result] == [2, 3, 1]

    def test_recency_can_outweigh_lexical_signal(self) -> None:
        old_both = _item(1, days_old=40)  # (0.9 * 1.5 + 1) / 5 = 0.47
        fresh_vector = _item(2, days_old=0)  # 0.5 * 1.5 = 0.75
        result = fuse([1], [VectorHit(1, 0.1), VectorHit(2, 0.5)], _lookup(old_both, fresh_vector), now=NOW)
        assert [r.id for r in result] == [2, 1]

    def test_ties_keep_union_order(self) -> None:
        items = [_item(5), _item(3), _item(4)]
        result = fuse([5, 3, 4], [], _lookup(*items), now=NOW)
        assert [r.id for r in result] == [5, 3, 4]

    def test_weights_are_configurable(self) -> None:
        items = [_item(1), _item(2)]
        lexical_heavy = FusionWeights(semantic_weight=0.5, lexical_weight=2.0, decay_per_day=0.1)
        result = fuse([1], [VectorHit(2, 0.0)], _lookup(*items), now=NOW, weights=lexical_heavy)
        assert [r.id for r in result] == [1, 2]
        result = fuse([1], [VectorHit(2, 0.0)], _lookup(*items), now=NOW)
        assert [r.id for r in result] == [2, 1]

    def test_missing_pub_date_is_not_penalized(self) -> None:
        undated = _item(1, pub_date=None)
        dated = _item(2, days_old=3)
        result = fuse([2, 1], [], _lookup(undated, dated), now=NOW)
        assert [r.id for r in result] == [1, 2]
