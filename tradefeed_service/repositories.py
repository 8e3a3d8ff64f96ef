"""
Repository implementations - Data access layer
"""
from datetime import datetime
from typing import Optional, List, Dict, Any
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING

from .domain.models import Trade, FeedFilters, RatingSummary, Review
from .domain.repositories import ITradeRepository, IRatingRepository
from .pagination import PageCursor
from .database import MongoDB

RECENCY_SORT = [("timestamp", DESCENDING), ("_id", DESCENDING)]

TOKEN_FIELDS = {
    "has": "has_item_tokens",
    "wants": "wants_item_tokens",
}


def _object_id(value: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise ValueError(f"Invalid trade ID: {value}")
    return ObjectId(value)


def filter_clauses(filters: FeedFilters) -> List[Dict[str, Any]]:
    """Query clauses for the feed filters"""
    clauses = []
    if filters.statuses:
        clauses.append({"status": {"$in": [s.value for s in filters.statuses]}})
    if filters.owner_id is not None:
        clauses.append({"trader_id": filters.owner_id})
    if filters.blocked_user_ids:
        clauses.append({"trader_id": {"$nin": list(filters.blocked_user_ids)}})
    return clauses


def cursor_clause(after: Optional[PageCursor]) -> List[Dict[str, Any]]:
    """Clause selecting documents strictly past the cursor in recency order"""
    if after is None:
        return []
    oid = _object_id(after.trade_id)
    return [{
        "$or": [
            {"timestamp": {"$lt": after.timestamp}},
            {"timestamp": after.timestamp, "_id": {"$lt": oid}},
        ]
    }]


def _combine(clauses: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def normal_trades_query(
    filters: FeedFilters,
    now: datetime,
    after: Optional[PageCursor] = None
) -> Dict[str, Any]:
    """Trades that are not featured right now"""
    not_featured = {
        "$or": [
            {"is_featured": {"$ne": True}},
            {"featured_until": {"$lte": now}},
        ]
    }
    return _combine([not_featured] + filter_clauses(filters) + cursor_clause(after))


def featured_trades_query(filters: FeedFilters, now: datetime) -> Dict[str, Any]:
    """Trades inside their featured window"""
    return _combine(
        [{"is_featured": True, "featured_until": {"$gt": now}}] + filter_clauses(filters)
    )


def token_search_query(
    side: str,
    token: str,
    filters: FeedFilters,
    after: Optional[PageCursor] = None
) -> Dict[str, Any]:
    """Array-contains lookup on one side's tokens"""
    try:
        field = TOKEN_FIELDS[side]
    except KeyError:
        raise ValueError(f"Unknown trade side: {side}")
    # Equality on an array field matches any element
    return _combine([{field: token}] + filter_clauses(filters) + cursor_clause(after))


class TradeRepository(ITradeRepository):
    """Trade repository implementation using MongoDB"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @classmethod
    def from_mongodb(cls, mongodb: MongoDB) -> "TradeRepository":
        return cls(mongodb.trades_collection)

    async def _find(self, query: Dict[str, Any], sort, limit: int = 0) -> List[Trade]:
        cursor = self.collection.find(query).sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        docs = await cursor.to_list(length=limit or None)
        return [Trade.from_document(doc) for doc in docs]

    async def create(self, trade: Trade) -> Trade:
        """Insert a trade and return it with its assigned id"""
        result = await self.collection.insert_one(trade.to_document())
        trade.id = str(result.inserted_id)
        return trade

    async def find_by_id(self, trade_id: str) -> Optional[Trade]:
        """Find trade by ID"""
        if not ObjectId.is_valid(trade_id):
            return None
        doc = await self.collection.find_one({"_id": ObjectId(trade_id)})
        return Trade.from_document(doc) if doc else None

    async def delete(self, trade_id: str) -> bool:
        """Delete trade"""
        result = await self.collection.delete_one({"_id": _object_id(trade_id)})
        return result.deleted_count > 0

    async def fetch_normal_page(
        self,
        filters: FeedFilters,
        now: datetime,
        after: Optional[PageCursor],
        limit: int
    ) -> List[Trade]:
        """Page of trades not currently featured, newest first"""
        return await self._find(normal_trades_query(filters, now, after), RECENCY_SORT, limit)

    async def fetch_featured(self, filters: FeedFilters, now: datetime) -> List[Trade]:
        """Currently featured trades, latest expiry first"""
        return await self._find(
            featured_trades_query(filters, now),
            [("featured_until", DESCENDING)],
        )

    async def search_by_token(
        self,
        side: str,
        token: str,
        filters: FeedFilters,
        after: Optional[PageCursor],
        limit: int
    ) -> List[Trade]:
        """Trades whose token array on `side` contains token"""
        return await self._find(
            token_search_query(side, token, filters, after), RECENCY_SORT, limit
        )

    async def count_featured_since(self, trader_id: str, since: datetime) -> int:
        """Count a trader's featured trades whose window ends after `since`"""
        return await self.collection.count_documents({
            "trader_id": trader_id,
            "is_featured": True,
            "featured_until": {"$gt": since},
        })

    async def set_featured(self, trade_id: str, featured_until: datetime) -> bool:
        """Mark trade as featured until the given time"""
        result = await self.collection.update_one(
            {"_id": _object_id(trade_id)},
            {"$set": {"is_featured": True, "featured_until": featured_until}}
        )
        return result.matched_count > 0

    async def fetch_recent(self, after: Optional[PageCursor], limit: int) -> List[Trade]:
        """All trades newest first"""
        return await self._find(_combine(cursor_clause(after)), RECENCY_SORT, limit)

    async def set_tokens(
        self,
        trade_id: str,
        has_item_tokens: List[str],
        wants_item_tokens: List[str]
    ) -> bool:
        """Store search tokens for an existing trade"""
        result = await self.collection.update_one(
            {"_id": _object_id(trade_id)},
            {"$set": {
                "has_item_tokens": has_item_tokens,
                "wants_item_tokens": wants_item_tokens,
            }}
        )
        return result.matched_count > 0


class RatingRepository(IRatingRepository):
    """Rating repository implementation using MongoDB"""

    def __init__(
        self,
        summaries: AsyncIOMotorCollection,
        reviews: AsyncIOMotorCollection,
        legacy: AsyncIOMotorCollection
    ):
        self.summaries = summaries
        self.reviews = reviews
        self.legacy = legacy

    @classmethod
    def from_mongodb(cls, mongodb: MongoDB) -> "RatingRepository":
        return cls(
            mongodb.ratings_summary_collection,
            mongodb.reviews_collection,
            mongodb.legacy_ratings_collection,
        )

    def _doc_to_review(self, doc: Optional[Dict[str, Any]]) -> Optional[Review]:
        if not doc:
            return None
        return Review(
            from_user_id=doc["from_user_id"],
            to_user_id=doc["to_user_id"],
            rating=doc.get("rating"),
            review=doc.get("review"),
            user_name=doc.get("user_name"),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
            edited=bool(doc.get("edited", False)),
        )

    async def get_summary(self, user_id: str) -> Optional[RatingSummary]:
        """Get rating summary for user"""
        doc = await self.summaries.find_one({"_id": user_id})
        if not doc:
            return None
        return RatingSummary(
            user_id=user_id,
            average_rating=float(doc.get("average_rating") or 0),
            count=int(doc.get("count") or 0),
            updated_at=doc.get("updated_at"),
        )

    async def save_summary(self, summary: RatingSummary) -> None:
        """Upsert rating summary"""
        await self.summaries.update_one(
            {"_id": summary.user_id},
            {"$set": {
                "average_rating": summary.average_rating,
                "count": summary.count,
                "updated_at": summary.updated_at or datetime.utcnow(),
            }},
            upsert=True
        )

    async def get_legacy_summary(self, user_id: str) -> Optional[RatingSummary]:
        """Get the summary kept in the legacy averages collection"""
        doc = await self.legacy.find_one({"_id": user_id})
        if not doc:
            return None
        return RatingSummary(
            user_id=user_id,
            average_rating=float(doc.get("value") or 0),
            count=int(doc.get("count") or 0),
        )

    async def get_review(self, to_user_id: str, from_user_id: str) -> Optional[Review]:
        """Get the review one user left for another"""
        doc = await self.reviews.find_one(
            {"_id": Review.document_id(to_user_id, from_user_id)}
        )
        return self._doc_to_review(doc)

    async def save_review(self, review: Review) -> None:
        """Upsert review"""
        await self.reviews.update_one(
            {"_id": Review.document_id(review.to_user_id, review.from_user_id)},
            {"$set": {
                "from_user_id": review.from_user_id,
                "to_user_id": review.to_user_id,
                "rating": review.rating,
                "review": review.review,
                "user_name": review.user_name,
                "created_at": review.created_at,
                "updated_at": review.updated_at,
                "edited": review.edited,
            }},
            upsert=True
        )

    async def list_reviews_for(self, user_id: str, limit: int) -> List[Review]:
        """Reviews addressed to user"""
        cursor = self.reviews.find({"to_user_id": user_id}).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self._doc_to_review(doc) for doc in docs]
