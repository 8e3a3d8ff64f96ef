import copy
import itertools
import json
from datetime import datetime, timedelta
from typing import Optional, List, Dict

import pytest

from tradefeed_service.domain.models import (
    Trade,
    TradeItem,
    FeedFilters,
    RatingSummary,
    Review,
    trade_status,
)
from tradefeed_service.domain.repositories import ITradeRepository, IRatingRepository
from tradefeed_service.pagination import PageCursor
from tradefeed_service.repositories import TOKEN_FIELDS
from tradefeed_service.tokens import build_item_tokens

NOW = datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def anyio_backend():
    return "asyncio"


class Clock:
    """Settable clock passed wherever services take `clock=`"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _recency_key(trade: Trade):
    return (trade.timestamp, trade.id)


class InMemoryTradeRepository(ITradeRepository):
    """Dict-backed trade store with the same ordering and filtering as Mongo"""

    def __init__(self):
        self.trades: Dict[str, Trade] = {}
        self.fail = False
        self.fail_sides: List[str] = []
        self.calls: List[str] = []
        self._ids = itertools.count(1)

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise RuntimeError("store unavailable")

    def add(self, trade: Trade) -> Trade:
        if not trade.id:
            trade.id = f"{next(self._ids):024x}"
        self.trades[trade.id] = copy.deepcopy(trade)
        return trade

    def _ordered(self, trades, after: Optional[PageCursor]) -> List[Trade]:
        if after is not None:
            trades = [t for t in trades if after.is_past(t.timestamp, t.id)]
        return sorted(trades, key=_recency_key, reverse=True)

    async def create(self, trade: Trade) -> Trade:
        self._check("create")
        return self.add(trade)

    async def find_by_id(self, trade_id: str) -> Optional[Trade]:
        self._check("find_by_id")
        trade = self.trades.get(trade_id)
        return copy.deepcopy(trade) if trade else None

    async def delete(self, trade_id: str) -> bool:
        self._check("delete")
        return self.trades.pop(trade_id, None) is not None

    async def fetch_normal_page(self, filters, now, after, limit):
        self._check("fetch_normal_page")
        trades = [
            t for t in self.trades.values()
            if not t.is_currently_featured(now) and filters.matches(t)
        ]
        return copy.deepcopy(self._ordered(trades, after)[:limit])

    async def fetch_featured(self, filters, now):
        self._check("fetch_featured")
        trades = [
            t for t in self.trades.values()
            if t.is_currently_featured(now) and filters.matches(t)
        ]
        trades.sort(key=lambda t: t.featured_until, reverse=True)
        return copy.deepcopy(trades)

    async def search_by_token(self, side, token, filters, after, limit):
        self._check("search_by_token")
        if side in self.fail_sides:
            raise RuntimeError(f"{side} index unavailable")
        field = TOKEN_FIELDS[side]
        trades = [
            t for t in self.trades.values()
            if token in getattr(t, field) and filters.matches(t)
        ]
        return copy.deepcopy(self._ordered(trades, after)[:limit])

    async def count_featured_since(self, trader_id, since):
        self._check("count_featured_since")
        return sum(
            1 for t in self.trades.values()
            if t.trader_id == trader_id
            and t.is_featured
            and t.featured_until is not None
            and t.featured_until > since
        )

    async def set_featured(self, trade_id, featured_until):
        self._check("set_featured")
        trade = self.trades.get(trade_id)
        if trade is None:
            return False
        trade.is_featured = True
        trade.featured_until = featured_until
        return True

    async def fetch_recent(self, after, limit):
        self._check("fetch_recent")
        return copy.deepcopy(self._ordered(list(self.trades.values()), after)[:limit])

    async def set_tokens(self, trade_id, has_item_tokens, wants_item_tokens):
        self._check("set_tokens")
        trade = self.trades.get(trade_id)
        if trade is None:
            return False
        trade.has_item_tokens = list(has_item_tokens)
        trade.wants_item_tokens = list(wants_item_tokens)
        return True


class InMemoryRatingRepository(IRatingRepository):

    def __init__(self):
        self.summaries: Dict[str, RatingSummary] = {}
        self.legacy: Dict[str, RatingSummary] = {}
        self.reviews: Dict[str, Review] = {}
        self.fail_reviews = False

    async def get_summary(self, user_id):
        summary = self.summaries.get(user_id)
        return copy.deepcopy(summary) if summary else None

    async def save_summary(self, summary):
        self.summaries[summary.user_id] = copy.deepcopy(summary)

    async def get_legacy_summary(self, user_id):
        summary = self.legacy.get(user_id)
        return copy.deepcopy(summary) if summary else None

    async def get_review(self, to_user_id, from_user_id):
        review = self.reviews.get(Review.document_id(to_user_id, from_user_id))
        return copy.deepcopy(review) if review else None

    async def save_review(self, review):
        self.reviews[Review.document_id(review.to_user_id, review.from_user_id)] = copy.deepcopy(review)

    async def list_reviews_for(self, user_id, limit):
        if self.fail_reviews:
            raise RuntimeError("reviews unavailable")
        return [r for r in self.reviews.values() if r.to_user_id == user_id][:limit]


class FakeCache:
    """Stands in for RedisCache; state goes through JSON like it would in Redis"""

    def __init__(self):
        self.sessions: Dict[str, str] = {}
        self.locks = set()
        self.cooldowns: Dict[str, int] = {}

    async def save_feed_session(self, session_id, state, ttl=None):
        self.sessions[session_id] = json.dumps(state)
        return True

    async def get_feed_session(self, session_id):
        data = self.sessions.get(session_id)
        return json.loads(data) if data else None

    async def acquire_session_lock(self, session_id):
        if session_id in self.locks:
            return False
        self.locks.add(session_id)
        return True

    async def release_session_lock(self, session_id):
        self.locks.discard(session_id)

    async def start_trade_cooldown(self, user_id, seconds):
        if user_id in self.cooldowns:
            return self.cooldowns[user_id]
        self.cooldowns[user_id] = seconds
        return 0

    async def clear_trade_cooldown(self, user_id):
        return self.cooldowns.pop(user_id, None) is not None


class FakeKafkaProducer:

    def __init__(self):
        self.events = []

    async def publish_trade_created(self, trade_id, trader_id, status):
        self.events.append(("trade.created", trade_id))

    async def publish_trade_deleted(self, trade_id, trader_id, deleted_by):
        self.events.append(("trade.deleted", trade_id))

    async def publish_trade_featured(self, trade_id, trader_id, featured_until):
        self.events.append(("trade.featured", trade_id))


class FakeServiceClient:

    def __init__(self, profile=None):
        self.profile = profile
        self.requested = []

    async def get_user_profile(self, user_id, token=None):
        self.requested.append(user_id)
        return self.profile


def make_trade(
    minutes_ago: int,
    trader_id: str = "user-1",
    has=("Frost Dragon",),
    wants=("Shadow Dragon",),
    has_total: float = 100,
    wants_total: float = 120,
    featured_for: Optional[timedelta] = None,
    now: datetime = NOW,
    tokens: bool = True,
) -> Trade:
    """Trade posted `minutes_ago` before `now`, optionally featured from then on"""
    has_items = [TradeItem(name=n) for n in has]
    wants_items = [TradeItem(name=n) for n in wants]
    trade = Trade(
        id="",
        trader_id=trader_id,
        trader_name=trader_id,
        has_items=has_items,
        wants_items=wants_items,
        has_item_tokens=build_item_tokens(has_items) if tokens else [],
        wants_item_tokens=build_item_tokens(wants_items) if tokens else [],
        has_total=has_total,
        wants_total=wants_total,
        status=trade_status(has_total, wants_total),
        timestamp=now - timedelta(minutes=minutes_ago),
    )
    if featured_for is not None:
        trade.is_featured = True
        trade.featured_until = now + featured_for
    return trade


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def trade_repo():
    return InMemoryTradeRepository()


@pytest.fixture
def rating_repo():
    return InMemoryRatingRepository()


@pytest.fixture
def fake_cache():
    return FakeCache()


@pytest.fixture
def fake_kafka():
    return FakeKafkaProducer()


@pytest.fixture
def fake_service_client():
    return FakeServiceClient()


@pytest.fixture
def empty_filters():
    return FeedFilters()
