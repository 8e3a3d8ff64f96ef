"""
Backfill of search tokens for trades written before token indexing
"""
from typing import Dict, Any, Optional
import logging

from .config import settings
from .domain.repositories import ITradeRepository
from .pagination import PageCursor
from .tokens import build_item_tokens

logger = logging.getLogger(__name__)


def _needs_backfill(trade) -> bool:
    # A side with no items legitimately has no tokens
    return (
        trade.has_item_tokens != build_item_tokens(trade.has_items)
        or trade.wants_item_tokens != build_item_tokens(trade.wants_items)
    )


async def migrate_old_trades(
    trade_repository: ITradeRepository,
    batch_size: Optional[int] = None
) -> Dict[str, int]:
    """
    Add search tokens to every trade that lacks them.

    Walks all trades newest first in batches. A failed update is logged and
    counted as processed; the walk continues.

    Returns:
        Dict with total, updated and skipped counts
    """
    batch_size = batch_size or settings.MIGRATION_BATCH_SIZE
    processed = 0
    updated = 0
    skipped = 0
    after: Optional[PageCursor] = None

    logger.info("Starting trade token migration")

    while True:
        batch = await trade_repository.fetch_recent(after, batch_size)
        if not batch:
            break

        for trade in batch:
            processed += 1

            if not _needs_backfill(trade):
                skipped += 1
                continue

            try:
                await trade_repository.set_tokens(
                    trade.id,
                    build_item_tokens(trade.has_items),
                    build_item_tokens(trade.wants_items),
                )
                updated += 1
            except Exception as e:
                logger.error(f"Error updating trade {trade.id}: {e}")

        logger.info(f"Processed {processed} trades (updated: {updated}, skipped: {skipped})")

        after = PageCursor.after(batch[-1])
        if len(batch) < batch_size:
            break

    logger.info(f"Migration complete: total {processed}, updated {updated}, skipped {skipped}")
    return {"total": processed, "updated": updated, "skipped": skipped}


async def check_migration_status(
    trade_repository: ITradeRepository,
    sample_size: Optional[int] = None
) -> Dict[str, Any]:
    """Estimate migration progress from the most recent trades"""
    sample_size = sample_size or settings.MIGRATION_SAMPLE_SIZE
    sample = await trade_repository.fetch_recent(None, sample_size)

    needs_migration = sum(1 for t in sample if _needs_backfill(t))
    already_migrated = len(sample) - needs_migration

    return {
        "sample_size": sample_size,
        "already_migrated": already_migrated,
        "needs_migration": needs_migration,
        "migration_percentage": (already_migrated / sample_size) * 100 if sample_size else 0.0,
    }
