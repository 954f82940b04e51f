"""
Feed ingestion.

Provides:
 - upsert_source(db, url, name) / set_source_enabled(db, source_id, enabled) : manage RssSource rows
 - run_once(db, llm) : register FEEDS, fetch every enabled RssSource once, store new articles and enrich them
 - run_forever(llm) : spawn a background thread that periodically calls run_once and retries enrichment

Notes:
 - Articles are deduplicated per source by guid, falling back to link.
 - The source name is copied onto each article so it survives source deletion.
 - Enrichment runs inline after each insert. Failed or missing enrichments are retried by the
   background loop every RETRY_INTERVAL_SECONDS (see enrich.retry_enrichment).
"""

import logging
import re
import threading
import time
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlparse

import feedparser
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedsense.config import settings
from feedsense.enrich import enrich_article, retry_enrichment
from feedsense.errors import InputError, NotFoundError
from feedsense.llm import LlmClient
from feedsense.models import Article, RssSource

logger = logging.getLogger("feedsense.ingest")

_IMG_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)
_CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")


def _strip_html_tags(html: str) -> str:
    """Very simple HTML-to-text cleanup."""
    text = re.sub(r"(?is)<(script|style).*?>.*?(</\1>)", " ", html)
    text = re.sub(r"(?s)<[^>]*>", " ", text)
    return " ".join(text.split()).strip()


def count_words(text: Optional[str]) -> int:
    """Whitespace-separated words, with each CJK character counted as one word."""
    if not text:
        return 0
    cjk = len(_CJK_RE.findall(text))
    words = len(_CJK_RE.sub(" ", text).split())
    return cjk + words


def _find_cover_image(entry, html: Optional[str]) -> Optional[str]:
    for media in entry.get("media_content") or []:
        if media.get("url") and media.get("medium", "image") == "image":
            return media["url"]
    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            return thumb["url"]
    for link in entry.get("links") or []:
        if link.get("rel") == "enclosure" and (link.get("type") or "").startswith("image/"):
            return link.get("href")
    if html:
        match = _IMG_RE.search(html)
        if match:
            return match.group(1)
    return None


def _published(entry) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
    return None


def _exists(db: Session, source_id: int, guid: Optional[str], link: str) -> bool:
    match = Article.link == link if guid is None else or_(Article.guid == guid, Article.link == link)
    stmt = select(Article.id).where(Article.source_id == source_id, match).limit(1)
    return db.execute(stmt).first() is not None


def build_article(source: RssSource, entry) -> Optional[Article]:
    """Map a feedparser entry to an unsaved Article, or None if it has no link."""
    link = entry.get("link")
    if not link:
        return None
    html = None
    if entry.get("content"):
        html = entry.content[0].get("value")
    summary_html = entry.get("summary") or entry.get("description")
    html = html or summary_html
    content = _strip_html_tags(html) if html else None
    now = datetime.now(timezone.utc)
    return Article(
        source_id=source.id,
        source_name=source.name,
        title=(entry.get("title") or "Untitled")[:500],
        link=link,
        guid=entry.get("id") or entry.get("guid"),
        author=entry.get("author"),
        description=_strip_html_tags(summary_html) if summary_html else None,
        content=content,
        cover_image=_find_cover_image(entry, html),
        word_count=count_words(content),
        pub_date=_published(entry) or now,
        fetched_at=now,
    )


def _default_name(url: str) -> str:
    return urlparse(url).netloc or url


def validate_feed_url(url: Optional[str]) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InputError(f"Invalid RSS url: {url!r}")
    return url


def upsert_source(db: Session, url: str, name: Optional[str] = None) -> RssSource:
    """Create or find the RssSource for a feed url; a given name replaces the stored one."""
    url = validate_feed_url(url)
    name = (name or "").strip() or None
    src = db.scalars(select(RssSource).where(RssSource.url == url)).first()
    if src:
        if name and src.name != name:
            src.name = name
            db.commit()
        return src
    src = RssSource(name=name or _default_name(url), url=url)
    db.add(src)
    try:
        db.commit()
    except IntegrityError:
        # registered concurrently
        db.rollback()
        return db.scalars(select(RssSource).where(RssSource.url == url)).one()
    db.refresh(src)
    logger.info("Registered RSS source id=%s url=%s", src.id, url)
    return src


def set_source_enabled(db: Session, source_id: int, enabled: bool) -> RssSource:
    src = db.get(RssSource, source_id)
    if src is None:
        raise NotFoundError(f"RSS source not found: {source_id}")
    if src.enabled != enabled:
        src.enabled = enabled
        db.commit()
        logger.info("RSS source %s %s", source_id, "enabled" if enabled else "disabled")
    return src


def fetch_source(db: Session, source: RssSource, llm: Optional[LlmClient], max_items: int) -> int:
    """Store new entries of one source; returns the number of inserted articles."""
    parsed = feedparser.parse(source.url)
    if parsed.bozo:
        logger.warning("Feed parser reported bozo for %s: %s", source.url, getattr(parsed, "bozo_exception", None))
    feed_title = (parsed.get("feed", {}).get("title") or "").strip()
    if feed_title and source.name == _default_name(source.url):
        # sources registered by url alone take the channel title on first fetch
        source.name = feed_title[:200]
        db.commit()

    inserted = 0
    for entry in parsed.entries[:max_items]:
        article = build_article(source, entry)
        if article is None:
            logger.debug("Skipping entry with no link in %s", source.url)
            continue
        if _exists(db, source.id, article.guid, article.link):
            continue
        db.add(article)
        try:
            db.commit()
        except IntegrityError:
            # stored concurrently by another run
            db.rollback()
            continue
        db.refresh(article)
        inserted += 1
        logger.info("Inserted article id=%s title=%s", article.id, article.title[:60])
        if llm is not None:
            enrich_article(db, article, llm)
    return inserted


def run_once(
    db: Session,
    llm: Optional[LlmClient] = None,
    max_items: int = settings.MAX_ITEMS_PER_FEED,
    feeds: Optional[List[str]] = None,
) -> int:
    """
    Register the configured feeds, then fetch all enabled sources once and save new articles.

    Idempotent with respect to (source, guid/link). One failing source does not stop the others.
    """
    for url in settings.FEEDS if feeds is None else feeds:
        try:
            upsert_source(db, url)
        except InputError as e:
            logger.error("Skipping configured feed: %s", e)

    sources = list(db.scalars(select(RssSource).where(RssSource.enabled.is_(True))))
    logger.info("Starting single fetch for %d sources", len(sources))
    total = 0
    for source in sources:
        try:
            total += fetch_source(db, source, llm, max_items)
        except Exception as e:
            db.rollback()
            logger.exception("Failed to fetch source %s: %s", source.url, e)
    return total


def _background_loop(stop_event: threading.Event, llm: LlmClient):
    from feedsense.db import SessionLocal
    db = SessionLocal()
    last_retry = None
    try:
        while not stop_event.is_set():
            try:
                run_once(db, llm)
            except Exception:
                logger.exception("Unexpected error in ingestion run_once()")
            if last_retry is None or time.monotonic() - last_retry >= settings.RETRY_INTERVAL_SECONDS:
                try:
                    retry_enrichment(db, llm)
                except Exception:
                    db.rollback()
                    logger.exception("Unexpected error in enrichment retry")
                last_retry = time.monotonic()
            # wait returns early when stop_event is set
            stop_event.wait(settings.FETCH_INTERVAL_SECONDS)
    finally:
        db.close()


_ingest_thread = None
_ingest_stop = None

def run_forever(llm: Optional[LlmClient] = None, start_immediately: bool = True):
    """
    Start a background thread to run ingestion periodically.

    Returns a dict with thread and stop_event in case the caller wants to stop the loop.
    If invoked multiple times, returns existing thread info.
    """
    global _ingest_thread, _ingest_stop
    if _ingest_thread and _ingest_thread.is_alive():
        return {"thread": _ingest_thread, "stop_event": _ingest_stop}

    _ingest_stop = threading.Event()
    _ingest_thread = threading.Thread(
        target=_background_loop, args=(_ingest_stop, llm or LlmClient()), daemon=True, name="ingest-thread"
    )
    if start_immediately:
        _ingest_thread.start()
    return {"thread": _ingest_thread, "stop_event": _ingest_stop}
