"""
FastAPI application for Trade Feed Service
"""
from fastapi import FastAPI, Depends, HTTPException, status, Query, Header
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, List
import logging

from .config import settings
from .database import mongodb
from .cache import cache, get_cache, RedisCache
from .service_client import service_client, get_service_client, ServiceClient
from .kafka_producer import kafka_producer, get_kafka_producer, KafkaProducerManager
from .dependencies import get_current_user, get_current_user_optional, get_admin_user
from .domain.models import FeedFilters, FeedPage, SearchScope, TradeStatus
from .domain.repositories import ITradeRepository, IRatingRepository
from .repositories import TradeRepository, RatingRepository
from .ratings import RatingService
from .service import TradeService, FeedService
from .migration import migrate_old_trades, check_migration_status
from .schemas import (
    User,
    TradeCreate,
    TradeResponse,
    FeedResponse,
    FeedItemResponse,
    RatingCreate,
    RatingSummaryResponse,
    MigrationResultResponse,
    MigrationStatusResponse,
    MessageResponse,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Trade Feed Service...")

    # Connect to MongoDB
    await mongodb.connect()
    logger.info("Database connected")

    # Connect to Redis
    await cache.connect()
    logger.info("Redis cache initialized")

    # Start service client
    await service_client.start()
    logger.info("Service client initialized")

    # Start Kafka producer
    await kafka_producer.start()
    logger.info("Kafka producer started")

    logger.info(f"Trade Feed Service started successfully on port {settings.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down Trade Feed Service...")

    await kafka_producer.stop()
    await service_client.stop()
    await cache.disconnect()
    await mongodb.disconnect()

    logger.info("Trade Feed Service shut down successfully")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Trade Feed Service - Public trade feed with featured placement and item search",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency wiring
async def get_trade_repository() -> ITradeRepository:
    """Dependency for getting the trade repository"""
    return TradeRepository.from_mongodb(mongodb)


async def get_rating_repository() -> IRatingRepository:
    """Dependency for getting the rating repository"""
    return RatingRepository.from_mongodb(mongodb)


def get_rating_service(
    rating_repo: IRatingRepository = Depends(get_rating_repository),
) -> RatingService:
    """Get RatingService instance with dependencies"""
    return RatingService(rating_repo)


def get_trade_service(
    trade_repo: ITradeRepository = Depends(get_trade_repository),
    rating_service: RatingService = Depends(get_rating_service),
    cache: RedisCache = Depends(get_cache),
    kafka_producer: KafkaProducerManager = Depends(get_kafka_producer),
    service_client: ServiceClient = Depends(get_service_client),
) -> TradeService:
    """Get TradeService instance with dependencies"""
    return TradeService(trade_repo, rating_service, cache, kafka_producer, service_client)


def get_feed_service(
    trade_repo: ITradeRepository = Depends(get_trade_repository),
    cache: RedisCache = Depends(get_cache),
) -> FeedService:
    """Get FeedService instance with dependencies"""
    return FeedService(trade_repo, cache)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    return authorization.replace("Bearer ", "") if authorization else None


def _feed_response(
    page: FeedPage,
    session_id: Optional[str] = None,
    search_mode: bool = False
) -> FeedResponse:
    now = datetime.utcnow()
    return FeedResponse(
        session_id=session_id,
        items=[FeedItemResponse.from_item(item, now) for item in page.items],
        has_more=page.has_more,
        search_mode=search_mode,
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


# Feed endpoints
@app.get(
    "/api/v1/trades/feed",
    response_model=FeedResponse,
    tags=["Feed"],
    summary="Open the trade feed",
)
async def open_feed(
    status_filter: List[str] = Query(
        [], alias="status", description="Trade status filters: win, lose, fair"
    ),
    my_trades: bool = Query(False, description="Only the caller's own trades"),
    blocked: List[str] = Query([], description="User IDs to leave out"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    service: FeedService = Depends(get_feed_service),
):
    """
    Open a feed session and return its first page

    - Featured trades are interleaved with the newest normal trades
    - The returned session_id pages, searches and refreshes this feed
    - Anonymous readers only get the first page
    """
    try:
        try:
            statuses = list(dict.fromkeys(TradeStatus.from_filter(s) for s in status_filter))
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e)
            )

        if my_trades and not current_user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required"
            )

        filters = FeedFilters(
            statuses=statuses,
            owner_id=current_user.id if my_trades else None,
            blocked_user_ids=blocked,
        )

        session_id, page = await service.open_feed(filters)
        return _feed_response(page, session_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error opening feed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve trades"
        )


@app.get(
    "/api/v1/trades/feed/{session_id}/more",
    response_model=FeedResponse,
    tags=["Feed"],
    summary="Load the next page",
)
async def load_more(
    session_id: str,
    current_user: User = Depends(get_current_user),
    service: FeedService = Depends(get_feed_service),
):
    """
    Next page of the feed, or of the active search

    - Requires authentication
    """
    try:
        controller, page = await service.load_more(session_id)
        return _feed_response(page, session_id, controller.is_search_mode)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error loading more trades for session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve trades"
        )


@app.get(
    "/api/v1/trades/feed/{session_id}/search",
    response_model=FeedResponse,
    tags=["Feed"],
    summary="Search trades by item name",
)
async def search_feed(
    session_id: str,
    q: str = Query("", max_length=100, description="Item name or word"),
    scope: SearchScope = Query(SearchScope.BOTH, description="Side to search: has, wants or both"),
    more: bool = Query(False, description="Continue the current search"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    service: FeedService = Depends(get_feed_service),
):
    """
    Search trades by item name token

    - An empty query returns to the normal feed
    - Paging further into results requires authentication
    """
    try:
        if more and not current_user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required"
            )

        controller, page = await service.search(session_id, q, scope, load_more=more)
        return _feed_response(page, session_id, controller.is_search_mode)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error searching trades for session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search trades"
        )


@app.post(
    "/api/v1/trades/feed/{session_id}/refresh",
    response_model=FeedResponse,
    tags=["Feed"],
    summary="Refresh the feed",
)
async def refresh_feed(
    session_id: str,
    service: FeedService = Depends(get_feed_service),
):
    """
    Reload the first page with the session's filters and leave search mode
    """
    try:
        controller, page = await service.refresh(session_id)
        return _feed_response(page, session_id)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error refreshing feed for session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to refresh feed"
        )


# Trade endpoints
@app.post(
    "/api/v1/trades",
    response_model=TradeResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Trades"],
    summary="Post a trade",
)
async def create_trade(
    trade_data: TradeCreate,
    current_user: User = Depends(get_current_user),
    service: TradeService = Depends(get_trade_service),
    authorization: Optional[str] = Header(None),
):
    """
    Post a new trade

    - **has_items** / **wants_items**: Items on each side, at least one named item
    - **has_total** / **wants_total**: Side values; the trade status is derived from them
    - One trade per user every two minutes
    """
    try:
        trade = await service.create_trade(current_user, trade_data, _bearer_token(authorization))
        return TradeResponse.from_trade(trade)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating trade for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create trade"
        )


@app.get(
    "/api/v1/trades/{trade_id}",
    response_model=TradeResponse,
    tags=["Trades"],
    summary="Get a trade",
)
async def get_trade(
    trade_id: str,
    service: TradeService = Depends(get_trade_service),
):
    """Get trade by ID"""
    try:
        trade = await service.get_trade(trade_id)
        return TradeResponse.from_trade(trade)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting trade {trade_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve trade"
        )


@app.delete(
    "/api/v1/trades/{trade_id}",
    response_model=MessageResponse,
    tags=["Trades"],
    summary="Delete a trade",
)
async def delete_trade(
    trade_id: str,
    current_user: User = Depends(get_current_user),
    service: TradeService = Depends(get_trade_service),
):
    """
    Delete a trade

    - Only the owner, or an admin, can delete
    """
    try:
        await service.delete_trade(current_user, trade_id)
        return MessageResponse(message="Trade deleted successfully")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting trade {trade_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete trade"
        )


@app.post(
    "/api/v1/trades/{trade_id}/feature",
    response_model=TradeResponse,
    tags=["Trades"],
    summary="Feature a trade",
)
async def feature_trade(
    trade_id: str,
    current_user: User = Depends(get_current_user),
    service: TradeService = Depends(get_trade_service),
):
    """
    Feature a trade for 24 hours

    - Pro users only, own trades only
    - At most 2 featured trades every 24 hours
    """
    try:
        trade = await service.feature_trade(current_user, trade_id)
        return TradeResponse.from_trade(trade)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error featuring trade {trade_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to feature trade"
        )


# Rating endpoints
@app.post(
    "/api/v1/ratings/{user_id}",
    response_model=RatingSummaryResponse,
    tags=["Ratings"],
    summary="Rate a trader",
)
async def rate_user(
    user_id: str,
    rating_data: RatingCreate,
    current_user: User = Depends(get_current_user),
    service: RatingService = Depends(get_rating_service),
):
    """
    Rate a trader from 1 to 5, optionally with a short review

    - Rating the same trader again replaces the earlier rating
    """
    try:
        summary = await service.submit_rating(
            current_user, user_id, rating_data.rating, rating_data.review
        )
        return RatingSummaryResponse.from_summary(summary)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error rating user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save rating"
        )


@app.get(
    "/api/v1/ratings/{user_id}/summary",
    response_model=RatingSummaryResponse,
    tags=["Ratings"],
    summary="Get a trader's rating summary",
)
async def get_rating_summary(
    user_id: str,
    service: RatingService = Depends(get_rating_service),
):
    """Get a trader's average rating and rating count"""
    try:
        summary = await service.get_rating_summary(user_id)
    except Exception as e:
        logger.error(f"Error getting rating summary for user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve rating summary"
        )

    if summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No ratings yet"
        )
    return RatingSummaryResponse.from_summary(summary)


# Admin/Internal endpoints
@app.post(
    "/internal/trades/migrate-tokens",
    response_model=MigrationResultResponse,
    tags=["Internal"],
    summary="Backfill search tokens (internal)",
    include_in_schema=settings.DEBUG,
)
async def migrate_tokens(
    batch_size: int = Query(settings.MIGRATION_BATCH_SIZE, ge=1, le=500),
    admin: User = Depends(get_admin_user),
    trade_repo: ITradeRepository = Depends(get_trade_repository),
):
    """
    Add search tokens to trades posted before token indexing
    """
    try:
        result = await migrate_old_trades(trade_repo, batch_size)
        return MigrationResultResponse(**result)
    except Exception as e:
        logger.error(f"Error migrating trade tokens: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Token migration failed"
        )


@app.get(
    "/internal/trades/migration-status",
    response_model=MigrationStatusResponse,
    tags=["Internal"],
    summary="Token backfill progress (internal)",
    include_in_schema=settings.DEBUG,
)
async def migration_status(
    sample_size: int = Query(settings.MIGRATION_SAMPLE_SIZE, ge=1, le=1000),
    admin: User = Depends(get_admin_user),
    trade_repo: ITradeRepository = Depends(get_trade_repository),
):
    """
    Share of recent trades that already carry search tokens
    """
    try:
        result = await check_migration_status(trade_repo, sample_size)
        return MigrationStatusResponse(**result)
    except Exception as e:
        logger.error(f"Error checking migration status: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check migration status"
        )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tradefeed_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
