import pytest

from tradefeed_service.migration import migrate_old_trades, check_migration_status
from tests.conftest import make_trade


@pytest.mark.anyio
async def test_backfill_adds_missing_tokens(trade_repo):
    old = [trade_repo.add(make_trade(i + 1, tokens=False)) for i in range(3)]
    current = [trade_repo.add(make_trade(i + 10)) for i in range(2)]

    result = await migrate_old_trades(trade_repo, batch_size=2)

    assert result == {"total": 5, "updated": 3, "skipped": 2}
    for trade in old:
        stored = trade_repo.trades[trade.id]
        assert stored.has_item_tokens == ["frost dragon", "frost", "dragon"]
        assert stored.wants_item_tokens == ["shadow dragon", "shadow", "dragon"]
    assert all(trade_repo.trades[t.id].has_item_tokens for t in current)


@pytest.mark.anyio
async def test_side_without_items_is_not_reprocessed(trade_repo):
    trade_repo.add(make_trade(1, wants=()))

    result = await migrate_old_trades(trade_repo)

    assert result == {"total": 1, "updated": 0, "skipped": 1}


@pytest.mark.anyio
async def test_second_run_has_nothing_to_do(trade_repo):
    for i in range(4):
        trade_repo.add(make_trade(i + 1, tokens=False))

    await migrate_old_trades(trade_repo, batch_size=3)
    result = await migrate_old_trades(trade_repo, batch_size=3)

    assert result == {"total": 4, "updated": 0, "skipped": 4}


@pytest.mark.anyio
async def test_empty_collection(trade_repo):
    assert await migrate_old_trades(trade_repo) == {"total": 0, "updated": 0, "skipped": 0}


@pytest.mark.anyio
async def test_status_samples_recent_trades(trade_repo):
    trade_repo.add(make_trade(1))
    trade_repo.add(make_trade(2, tokens=False))
    trade_repo.add(make_trade(3))
    trade_repo.add(make_trade(4, tokens=False))

    status = await check_migration_status(trade_repo, sample_size=10)

    assert status == {
        "sample_size": 10,
        "already_migrated": 2,
        "needs_migration": 2,
        "migration_percentage": 20.0,
    }
