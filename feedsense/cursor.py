"""
Feed pagination cursor.

A cursor is the sort key of the last item a client has seen, encoded as
"<ISO-8601 pub_date>,<article id>". The feed is totally ordered by
(pub_date DESC, id DESC), so "everything strictly after the cursor" is stable
under concurrent inserts.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from feedsense.errors import InputError
from feedsense.fusion import as_utc
from feedsense.schemas import FeedItem

MAX_ID = 2 ** 63 - 1


@dataclass(frozen=True)
class FeedCursor:
    time: datetime
    id: int

    @classmethod
    def start(cls) -> "FeedCursor":
        return cls(datetime.now(timezone.utc), MAX_ID)

    @classmethod
    def parse(cls, raw: Optional[str]) -> "FeedCursor":
        """Decode a cursor token; absent or blank means the newest end of the feed."""
        if raw is None or not raw.strip():
            return cls.start()
        parts = raw.strip().split(",", 1)
        if len(parts) != 2:
            raise InputError("Invalid cursor format")
        try:
            time = datetime.fromisoformat(parts[0].strip())
            article_id = int(parts[1].strip())
        except ValueError as e:
            raise InputError("Invalid cursor format") from e
        return cls(as_utc(time), article_id)

    @classmethod
    def after(cls, item: FeedItem) -> Optional["FeedCursor"]:
        """Cursor pointing just past item, or None when the item has no pub_date to page on."""
        if item.pub_date is None:
            return None
        return cls(as_utc(item.pub_date), item.id)

    def encode(self) -> str:
        # naive UTC keeps the token free of "+" signs, which query strings turn into spaces
        return f"{as_utc(self.time).replace(tzinfo=None).isoformat()},{self.id}"
