"""Tests for feedsense.ingest."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import feedparser
import pytest
from sqlalchemy import func, select

from feedsense.errors import InputError, NotFoundError
from feedsense.ingest import build_article, count_words, run_once, set_source_enabled, upsert_source
from feedsense.models import Article, RssSource

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Example News</title>
    <link>https://example.com/</link>
    <description>Example feed</description>
    <item>
      <title>First story</title>
      <link>https://example.com/first</link>
      <guid isPermaLink="false">first-guid</guid>
      <pubDate>Mon, 19 Oct 2026 08:00:00 GMT</pubDate>
      <dc:creator>Ann Lee</dc:creator>
      <description>&lt;p&gt;Short &lt;b&gt;summary&lt;/b&gt;&lt;/p&gt;</description>
      <content:encoded><![CDATA[<p>Full text here</p><img src="https://example.com/cover.jpg" />]]></content:encoded>
    </item>
    <item>
      <title>Second story</title>
      <link>https://example.com/second</link>
      <guid isPermaLink="false">second-guid</guid>
      <description>Plain text body</description>
    </item>
  </channel>
</rss>
"""


@pytest.fixture(scope="module")
def parsed():
    return feedparser.parse(RSS)


class TestCountWords:
    def test_latin(self) -> None:
        assert count_words("the quick  brown fox") == 4

    def test_cjk_characters_are_words(self) -> None:
        assert count_words("人工智能 news") == 5

    def test_empty(self) -> None:
        assert count_words(None) == 0
        assert count_words("") == 0


class TestBuildArticle:
    def test_maps_entry(self, make_source, parsed) -> None:
        source = make_source("Example News")
        article = build_article(source, parsed.entries[0])

        assert article.source_id == source.id
        assert article.source_name == "Example News"
        assert article.title == "First story"
        assert article.link == "https://example.com/first"
        assert article.guid == "first-guid"
        assert article.author == "Ann Lee"
        assert article.description == "Short summary"
        assert article.content == "Full text here"
        assert article.word_count == 3
        assert article.cover_image == "https://example.com/cover.jpg"
        assert article.pub_date == datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)

    def test_missing_date_uses_fetch_time(self, make_source, parsed) -> None:
        article = build_article(make_source(), parsed.entries[1])
        assert article.pub_date == article.fetched_at

    def test_entry_without_link(self, make_source) -> None:
        assert build_article(make_source(), {"title": "orphan"}) is None


class TestRunOnce:
    def _count(self, db) -> int:
        return db.scalar(select(func.count()).select_from(Article))

    def test_inserts_then_deduplicates(self, db, make_source, parsed) -> None:
        make_source()
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed):
            assert run_once(db) == 2
            assert run_once(db) == 0
        assert self._count(db) == 2

    def test_skips_disabled_sources(self, db, make_source, parsed) -> None:
        source = make_source()
        source.enabled = False
        db.commit()
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed) as mock_parse:
            assert run_once(db) == 0
        mock_parse.assert_not_called()

    def test_failing_source_does_not_stop_others(self, db, make_source, parsed) -> None:
        broken = make_source("Broken")
        make_source("Working")

        def fake_parse(url):
            if url == broken.url:
                raise RuntimeError("connection reset")
            return parsed

        with patch("feedsense.ingest.feedparser.parse", side_effect=fake_parse):
            assert run_once(db) == 2

    def test_max_items(self, db, make_source, parsed) -> None:
        make_source()
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed):
            assert run_once(db, max_items=1) == 1

    def test_enriches_new_articles(self, db, make_source, parsed) -> None:
        make_source()
        llm = MagicMock()
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed), \
                patch("feedsense.ingest.enrich_article") as mock_enrich:
            run_once(db, llm)
        assert mock_enrich.call_count == 2

    def test_registers_configured_feeds(self, db, parsed) -> None:
        feeds = ["https://example.com/rss.xml", "https://example.org/feed"]
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed) as mock_parse:
            assert run_once(db, feeds=feeds) == 4
            # already registered: no duplicate sources, no new articles
            assert run_once(db, feeds=feeds) == 0

        sources = list(db.scalars(select(RssSource).order_by(RssSource.id)))
        assert [s.url for s in sources] == feeds
        # url-only sources take the channel title
        assert [s.name for s in sources] == ["Example News", "Example News"]
        assert mock_parse.call_count == 4

    def test_uses_feeds_setting_by_default(self, db, parsed) -> None:
        with patch("feedsense.ingest.settings.FEEDS", ["https://example.com/rss.xml"]), \
                patch("feedsense.ingest.feedparser.parse", return_value=parsed):
            assert run_once(db) == 2
        assert list(db.scalars(select(RssSource.url))) == ["https://example.com/rss.xml"]

    def test_invalid_configured_feed_is_skipped(self, db, parsed) -> None:
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed):
            assert run_once(db, feeds=["not a url", "https://example.com/rss.xml"]) == 2
        assert list(db.scalars(select(RssSource.url))) == ["https://example.com/rss.xml"]


class TestSources:
    def test_upsert_is_idempotent(self, db) -> None:
        first = upsert_source(db, "https://example.com/rss.xml")
        second = upsert_source(db, "  https://example.com/rss.xml ")
        assert first.id == second.id
        assert first.name == "example.com"
        assert first.enabled is True

    def test_upsert_renames(self, db) -> None:
        source = upsert_source(db, "https://example.com/rss.xml")
        assert upsert_source(db, "https://example.com/rss.xml", name="Example Daily").id == source.id
        assert db.get(RssSource, source.id).name == "Example Daily"

    @pytest.mark.parametrize("url", [None, "", "ftp://example.com/feed", "not a url"])
    def test_invalid_url(self, db, url) -> None:
        with pytest.raises(InputError):
            upsert_source(db, url)

    def test_named_source_keeps_its_name(self, db, make_source, parsed) -> None:
        source = make_source("My Label", url="https://example.com/rss.xml")
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed):
            run_once(db, feeds=[])
        assert db.get(RssSource, source.id).name == "My Label"

    def test_disable_and_enable(self, db, make_source, parsed) -> None:
        source = make_source()
        assert set_source_enabled(db, source.id, False).enabled is False
        with patch("feedsense.ingest.feedparser.parse", return_value=parsed) as mock_parse:
            assert run_once(db) == 0
            mock_parse.assert_not_called()
            set_source_enabled(db, source.id, True)
            assert run_once(db) == 2

    def test_unknown_source(self, db) -> None:
        with pytest.raises(NotFoundError):
            set_source_enabled(db, 404, False)
