"""
Domain models - Core business entities
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum


class TradeStatus(str, Enum):
    """Trade outcome for the poster, stored as a single letter"""
    WIN = "w"
    LOSE = "l"
    FAIR = "f"

    @classmethod
    def from_filter(cls, name: str) -> "TradeStatus":
        """Map a feed filter name (win/lose/fair) to a status"""
        mapping = {"win": cls.WIN, "lose": cls.LOSE, "fair": cls.FAIR}
        try:
            return mapping[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown status filter: {name}")


class SearchScope(str, Enum):
    """Which side of a trade a search looks at"""
    HAS = "has"
    WANTS = "wants"
    BOTH = "both"

    @property
    def includes_has(self) -> bool:
        return self in (SearchScope.HAS, SearchScope.BOTH)

    @property
    def includes_wants(self) -> bool:
        return self in (SearchScope.WANTS, SearchScope.BOTH)


def trade_status(has_total: float, wants_total: float) -> TradeStatus:
    """
    Compute a trade's status from the two side totals.

    An empty trade (both totals zero) counts as a win.
    """
    if has_total == 0 and wants_total == 0:
        return TradeStatus.WIN
    if has_total > wants_total:
        return TradeStatus.LOSE
    if has_total < wants_total:
        return TradeStatus.WIN
    return TradeStatus.FAIR


@dataclass
class TradeItem:
    """A single item on one side of a trade"""
    name: str
    type: Optional[str] = None
    image: str = ""
    value: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["TradeItem"]:
        # Older documents use capitalised keys
        name = data.get("name") or data.get("Name")
        if not name:
            return None
        return cls(
            name=name,
            type=data.get("type") or data.get("Type"),
            image=data.get("image") or "",
            value=data.get("value") or 0.0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "image": self.image,
            "value": self.value,
        }


@dataclass
class Trade:
    """Trade domain model"""
    id: str
    trader_id: str
    has_items: List[TradeItem]
    wants_items: List[TradeItem]
    has_total: float
    wants_total: float
    status: TradeStatus
    timestamp: datetime
    trader_name: str = "Anonymous"
    avatar: Optional[str] = None
    is_pro: bool = False
    description: str = ""
    is_featured: bool = False
    featured_until: Optional[datetime] = None
    has_item_tokens: List[str] = field(default_factory=list)
    wants_item_tokens: List[str] = field(default_factory=list)
    rating: Optional[float] = None
    rating_count: int = 0

    def is_owner(self, user_id: str) -> bool:
        """Check if the given user_id posted this trade"""
        return self.trader_id == user_id

    def is_currently_featured(self, now: datetime) -> bool:
        """A featured flag only counts while its window is open"""
        return bool(
            self.is_featured
            and self.featured_until is not None
            and self.featured_until > now
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Trade":
        """Build a Trade from a stored document"""
        has_items = [TradeItem.from_dict(i) for i in doc.get("has_items") or [] if i]
        wants_items = [TradeItem.from_dict(i) for i in doc.get("wants_items") or [] if i]
        return cls(
            id=str(doc["_id"]),
            trader_id=doc.get("trader_id", "Anonymous"),
            trader_name=doc.get("trader_name") or "Anonymous",
            avatar=doc.get("avatar"),
            is_pro=bool(doc.get("is_pro", False)),
            has_items=[i for i in has_items if i],
            wants_items=[i for i in wants_items if i],
            has_item_tokens=list(doc.get("has_item_tokens") or []),
            wants_item_tokens=list(doc.get("wants_item_tokens") or []),
            has_total=doc.get("has_total") or 0,
            wants_total=doc.get("wants_total") or 0,
            status=TradeStatus(doc.get("status") or TradeStatus.FAIR.value),
            description=doc.get("description") or "",
            is_featured=bool(doc.get("is_featured", False)),
            featured_until=doc.get("featured_until"),
            timestamp=doc["timestamp"],
            rating=doc.get("rating"),
            rating_count=doc.get("rating_count") or 0,
        )

    def to_document(self) -> Dict[str, Any]:
        """Serialize for storage (without _id)"""
        return {
            "trader_id": self.trader_id,
            "trader_name": self.trader_name,
            "avatar": self.avatar,
            "is_pro": self.is_pro,
            "has_items": [i.to_dict() for i in self.has_items],
            "wants_items": [i.to_dict() for i in self.wants_items],
            "has_item_tokens": self.has_item_tokens,
            "wants_item_tokens": self.wants_item_tokens,
            "has_total": self.has_total,
            "wants_total": self.wants_total,
            "status": self.status.value,
            "description": self.description,
            "is_featured": self.is_featured,
            "featured_until": self.featured_until,
            "timestamp": self.timestamp,
            "rating": self.rating,
            "rating_count": self.rating_count,
        }

    def to_state(self) -> Dict[str, Any]:
        """JSON-safe snapshot, used to park trades in a feed session"""
        data = self.to_document()
        data["_id"] = self.id
        data["timestamp"] = self.timestamp.isoformat()
        if self.featured_until is not None:
            data["featured_until"] = self.featured_until.isoformat()
        return data

    @classmethod
    def from_state(cls, data: Dict[str, Any]) -> "Trade":
        data = dict(data)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        if data.get("featured_until"):
            data["featured_until"] = datetime.fromisoformat(data["featured_until"])
        return cls.from_document(data)


@dataclass
class FeedFilters:
    """Filters applied to every feed query"""
    statuses: List[TradeStatus] = field(default_factory=list)
    owner_id: Optional[str] = None
    blocked_user_ids: List[str] = field(default_factory=list)

    def matches(self, trade: Trade) -> bool:
        """In-memory check, used for search results"""
        if trade.trader_id in self.blocked_user_ids:
            return False
        if self.statuses and trade.status not in self.statuses:
            return False
        if self.owner_id is not None and trade.trader_id != self.owner_id:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statuses": [s.value for s in self.statuses],
            "owner_id": self.owner_id,
            "blocked_user_ids": list(self.blocked_user_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedFilters":
        return cls(
            statuses=[TradeStatus(s) for s in data.get("statuses") or []],
            owner_id=data.get("owner_id"),
            blocked_user_ids=list(data.get("blocked_user_ids") or []),
        )


@dataclass
class FeedItem:
    """A trade placed in the feed, tagged with its placement"""
    trade: Trade
    featured: bool = False

    @property
    def id(self) -> str:
        return self.trade.id


@dataclass
class FeedPage:
    """Result of one feed request"""
    items: List[FeedItem]
    has_more: bool


@dataclass
class RatingSummary:
    """Average rating for a user"""
    user_id: str
    average_rating: float
    count: int
    updated_at: Optional[datetime] = None


@dataclass
class Review:
    """One user's rating of another"""
    from_user_id: str
    to_user_id: str
    rating: int
    review: Optional[str] = None
    user_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    edited: bool = False

    @staticmethod
    def document_id(to_user_id: str, from_user_id: str) -> str:
        return f"{to_user_id}_{from_user_id}"
