from .models import (
    TradeStatus,
    SearchScope,
    TradeItem,
    Trade,
    FeedFilters,
    FeedItem,
    FeedPage,
    RatingSummary,
    Review,
    trade_status,
)
from .repositories import ITradeRepository, IRatingRepository


__all__ = [
    # models.py
    "TradeStatus",
    "SearchScope",
    "TradeItem",
    "Trade",
    "FeedFilters",
    "FeedItem",
    "FeedPage",
    "RatingSummary",
    "Review",
    "trade_status",
    # repositories.py
    "ITradeRepository",
    "IRatingRepository",
]
