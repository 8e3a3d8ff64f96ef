from datetime import timedelta

import pytest

from tradefeed_service.domain.models import (
    FeedFilters,
    SearchScope,
    Trade,
    TradeStatus,
    trade_status,
)
from tests.conftest import NOW, make_trade


@pytest.mark.parametrize("has_total, wants_total, expected", [
    (0, 0, TradeStatus.WIN),
    (150, 100, TradeStatus.LOSE),
    (100, 150, TradeStatus.WIN),
    (100, 100, TradeStatus.FAIR),
])
def test_trade_status(has_total, wants_total, expected):
    assert trade_status(has_total, wants_total) == expected


def test_status_filter_names():
    assert TradeStatus.from_filter("Win") == TradeStatus.WIN
    assert TradeStatus.from_filter("fair") == TradeStatus.FAIR
    with pytest.raises(ValueError):
        TradeStatus.from_filter("draw")


def test_search_scope_sides():
    assert SearchScope.BOTH.includes_has and SearchScope.BOTH.includes_wants
    assert SearchScope.HAS.includes_has and not SearchScope.HAS.includes_wants
    assert SearchScope.WANTS.includes_wants and not SearchScope.WANTS.includes_has


def test_featured_flag_expires_with_window():
    trade = make_trade(10, featured_for=timedelta(hours=1))

    assert trade.is_currently_featured(NOW)
    assert not trade.is_currently_featured(NOW + timedelta(hours=2))


def test_snapshot_keeps_trade_intact():
    trade = make_trade(10, featured_for=timedelta(hours=1))
    trade.id = "000000000000000000000001"

    restored = Trade.from_state(trade.to_state())

    assert restored == trade


def test_legacy_document_with_capitalised_item_keys():
    doc = {
        "_id": "abc",
        "trader_id": "user-1",
        "has_items": [{"Name": "Frost Dragon", "Type": "pet"}, {"Type": "pet"}],
        "wants_items": [],
        "has_total": 50,
        "wants_total": 0,
        "status": "l",
        "timestamp": NOW,
    }

    trade = Trade.from_document(doc)

    assert [i.name for i in trade.has_items] == ["Frost Dragon"]
    assert trade.has_items[0].type == "pet"
    assert trade.trader_name == "Anonymous"
    assert trade.has_item_tokens == []


def test_filters_match_in_memory():
    trade = make_trade(5, trader_id="user-2", has_total=100, wants_total=120)

    assert FeedFilters().matches(trade)
    assert FeedFilters(statuses=[TradeStatus.WIN]).matches(trade)
    assert not FeedFilters(statuses=[TradeStatus.LOSE]).matches(trade)
    assert not FeedFilters(owner_id="user-1").matches(trade)
    assert not FeedFilters(blocked_user_ids=["user-2"]).matches(trade)
