"""
Repository interfaces - Define contracts for data access
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .models import Trade, FeedFilters, RatingSummary, Review
from ..pagination import PageCursor


class ITradeRepository(ABC):
    """Trade repository interface"""

    @abstractmethod
    async def create(self, trade: Trade) -> Trade:
        """Insert a trade and return it with its assigned id"""
        pass

    @abstractmethod
    async def find_by_id(self, trade_id: str) -> Optional[Trade]:
        """Find trade by ID"""
        pass

    @abstractmethod
    async def delete(self, trade_id: str) -> bool:
        """Delete trade, returns False if it did not exist"""
        pass

    @abstractmethod
    async def fetch_normal_page(
        self,
        filters: FeedFilters,
        now: datetime,
        after: Optional[PageCursor],
        limit: int
    ) -> List[Trade]:
        """
        Page of trades not currently featured, newest first.

        Trades whose featured window has closed count as normal.
        """
        pass

    @abstractmethod
    async def fetch_featured(self, filters: FeedFilters, now: datetime) -> List[Trade]:
        """Currently featured trades, latest expiry first"""
        pass

    @abstractmethod
    async def search_by_token(
        self,
        side: str,
        token: str,
        filters: FeedFilters,
        after: Optional[PageCursor],
        limit: int
    ) -> List[Trade]:
        """Trades whose `side` ("has" or "wants") token array contains token"""
        pass

    @abstractmethod
    async def count_featured_since(self, trader_id: str, since: datetime) -> int:
        """Count a trader's featured trades whose window ends after `since`"""
        pass

    @abstractmethod
    async def set_featured(self, trade_id: str, featured_until: datetime) -> bool:
        """Mark trade as featured until the given time"""
        pass

    @abstractmethod
    async def fetch_recent(self, after: Optional[PageCursor], limit: int) -> List[Trade]:
        """All trades newest first, regardless of featured state"""
        pass

    @abstractmethod
    async def set_tokens(
        self,
        trade_id: str,
        has_item_tokens: List[str],
        wants_item_tokens: List[str]
    ) -> bool:
        """Store search tokens for an existing trade"""
        pass


class IRatingRepository(ABC):
    """Rating repository interface"""

    @abstractmethod
    async def get_summary(self, user_id: str) -> Optional[RatingSummary]:
        """Get rating summary for user"""
        pass

    @abstractmethod
    async def save_summary(self, summary: RatingSummary) -> None:
        """Upsert rating summary"""
        pass

    @abstractmethod
    async def get_legacy_summary(self, user_id: str) -> Optional[RatingSummary]:
        """Get the summary kept in the legacy averages collection"""
        pass

    @abstractmethod
    async def get_review(self, to_user_id: str, from_user_id: str) -> Optional[Review]:
        """Get the review one user left for another"""
        pass

    @abstractmethod
    async def save_review(self, review: Review) -> None:
        """Upsert review"""
        pass

    @abstractmethod
    async def list_reviews_for(self, user_id: str, limit: int) -> List[Review]:
        """Reviews addressed to user"""
        pass
