"""
Pydantic schemas for Trade Feed Service
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from .domain.models import Trade, FeedItem, RatingSummary


# User schema (from auth service token)
class User(BaseModel):
    """Authenticated user"""
    id: str
    username: str
    email: Optional[str] = None
    avatar: Optional[str] = None
    is_pro: bool = False
    is_admin: bool = False


# Trade schemas
class TradeItemSchema(BaseModel):
    """One item on a side of a trade"""
    name: Optional[str] = Field(None, max_length=200)
    type: Optional[str] = Field(None, max_length=50)
    image: str = ""
    value: float = Field(0.0, ge=0)


class TradeCreate(BaseModel):
    """Trade creation request"""
    has_items: List[TradeItemSchema] = Field(default_factory=list, max_length=40)
    wants_items: List[TradeItemSchema] = Field(default_factory=list, max_length=40)
    has_total: float = Field(0.0, ge=0)
    wants_total: float = Field(0.0, ge=0)
    description: str = Field("", max_length=500)


class TradeResponse(BaseModel):
    """Trade response"""
    id: str
    trader_id: str
    trader_name: str
    avatar: Optional[str] = None
    is_pro: bool = False
    has_items: List[TradeItemSchema] = []
    wants_items: List[TradeItemSchema] = []
    has_total: float
    wants_total: float
    status: str
    description: str = ""
    is_featured: bool = False
    featured_until: Optional[datetime] = None
    timestamp: datetime
    rating: Optional[float] = None
    rating_count: int = 0

    @classmethod
    def from_trade(cls, trade: Trade, now: Optional[datetime] = None) -> "TradeResponse":
        """Expired featured windows are reported as not featured"""
        now = now or datetime.utcnow()
        return cls(
            id=trade.id,
            trader_id=trade.trader_id,
            trader_name=trade.trader_name,
            avatar=trade.avatar,
            is_pro=trade.is_pro,
            has_items=[TradeItemSchema(**i.to_dict()) for i in trade.has_items],
            wants_items=[TradeItemSchema(**i.to_dict()) for i in trade.wants_items],
            has_total=trade.has_total,
            wants_total=trade.wants_total,
            status=trade.status.value,
            description=trade.description,
            is_featured=trade.is_currently_featured(now),
            featured_until=trade.featured_until,
            timestamp=trade.timestamp,
            rating=trade.rating,
            rating_count=trade.rating_count,
        )


# Feed schemas
class FeedItemResponse(BaseModel):
    """Trade placed in the feed"""
    id: str
    featured: bool = False
    trade: TradeResponse

    @classmethod
    def from_item(cls, item: FeedItem, now: Optional[datetime] = None) -> "FeedItemResponse":
        return cls(
            id=item.id,
            featured=item.featured,
            trade=TradeResponse.from_trade(item.trade, now),
        )


class FeedResponse(BaseModel):
    """One page of the feed"""
    session_id: Optional[str] = None
    items: List[FeedItemResponse]
    has_more: bool
    search_mode: bool = False


# Rating schemas
class RatingCreate(BaseModel):
    """Rating submission"""
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=500)


class RatingSummaryResponse(BaseModel):
    """Rating summary response"""
    user_id: str
    average_rating: float
    count: int
    updated_at: Optional[datetime] = None

    @classmethod
    def from_summary(cls, summary: RatingSummary) -> "RatingSummaryResponse":
        return cls(
            user_id=summary.user_id,
            average_rating=summary.average_rating,
            count=summary.count,
            updated_at=summary.updated_at,
        )


# Migration schemas
class MigrationResultResponse(BaseModel):
    """Token backfill result"""
    total: int
    updated: int
    skipped: int


class MigrationStatusResponse(BaseModel):
    """Token backfill progress estimate"""
    sample_size: int
    already_migrated: int
    needs_migration: int
    migration_percentage: float


# Message responses
class MessageResponse(BaseModel):
    """Generic message response"""
    message: str
    success: bool = True
