"""
Opaque page cursors over recency-ordered trades
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import base64
import binascii
import json


@dataclass(frozen=True)
class PageCursor:
    """
    Position marker for "start after" queries.

    Trades are ordered by timestamp descending, then id descending, so a
    (timestamp, id) pair identifies a position even when timestamps tie.
    """
    timestamp: datetime
    trade_id: str

    def encode(self) -> str:
        """Encode as a URL-safe opaque string"""
        payload = json.dumps(
            {"t": self.timestamp.isoformat(), "id": self.trade_id},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, value: str) -> "PageCursor":
        """Decode a cursor produced by encode()"""
        try:
            raw = base64.urlsafe_b64decode(value.encode("ascii"))
            data = json.loads(raw.decode("utf-8"))
            return cls(
                timestamp=datetime.fromisoformat(data["t"]),
                trade_id=str(data["id"]),
            )
        except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as e:
            raise ValueError(f"Invalid page cursor: {e}")

    @classmethod
    def after(cls, trade) -> "PageCursor":
        """Cursor positioned on the given trade"""
        return cls(timestamp=trade.timestamp, trade_id=trade.id)

    def is_past(self, timestamp: datetime, trade_id: str) -> bool:
        """
        True if (timestamp, trade_id) comes later in feed order than this cursor.

        In-memory counterpart of `repositories.cursor_clause`, for ordering
        trades that are already loaded.
        """
        if timestamp != self.timestamp:
            return timestamp < self.timestamp
        return trade_id < self.trade_id


def encode_cursor(cursor: Optional[PageCursor]) -> Optional[str]:
    return cursor.encode() if cursor else None


def decode_cursor(value: Optional[str]) -> Optional[PageCursor]:
    return PageCursor.decode(value) if value else None
