"""
Keyword extraction for search queries.

A full sentence rarely appears verbatim in a title, especially for CJK text, so
the lexical recall is repeated with the single most salient term of the query.
"""

import logging
from typing import Optional

import jieba
import jieba.analyse

logger = logging.getLogger("feedsense.keywords")

# jieba prints its dictionary loading progress at INFO
jieba.setLogLevel(logging.WARNING)


def extract_top_keyword(query: str) -> Optional[str]:
    """
    Return the highest TF-IDF term of query, or None.

    None means "use the query as is": nothing was extracted, the term is the
    query itself, or extraction failed.
    """
    try:
        keywords = jieba.analyse.extract_tags(query, topK=1)
    except Exception as e:
        logger.debug("Keyword extraction failed for %r, using the query only: %s", query, e)
        return None
    if not keywords:
        return None
    keyword = (keywords[0] or "").strip()
    if not keyword or keyword.casefold() == query.strip().casefold():
        return None
    return keyword
