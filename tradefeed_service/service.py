"""
Trade Feed Service - Core business logic
"""
from typing import Optional, Tuple, Callable
from datetime import datetime, timedelta
from fastapi import HTTPException, status
import logging
import uuid

from .cache import RedisCache
from .config import settings
from .domain.models import Trade, TradeItem, FeedFilters, FeedPage, SearchScope, trade_status
from .domain.repositories import ITradeRepository
from .feed import FeedController
from .kafka_producer import KafkaProducerManager
from .ratings import RatingService
from .schemas import User, TradeCreate
from .service_client import ServiceClient
from .tokens import build_item_tokens

logger = logging.getLogger(__name__)


def format_cooldown(seconds_left: int) -> str:
    """Human readable remaining cooldown, e.g. "1 minute and 5 seconds" """
    minutes, seconds = divmod(seconds_left, 60)

    def plural(n: int, unit: str) -> str:
        return f"{n} {unit}{'' if n == 1 else 's'}"

    if minutes > 0:
        return f"{plural(minutes, 'minute')} and {plural(seconds, 'second')}"
    return plural(seconds_left, "second")


class TradeService:
    """Trade posting, deletion and featuring"""

    def __init__(
        self,
        trade_repository: ITradeRepository,
        rating_service: RatingService,
        cache: RedisCache,
        kafka_producer: KafkaProducerManager,
        service_client: ServiceClient,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.trade_repo = trade_repository
        self.rating_service = rating_service
        self.cache = cache
        self.kafka_producer = kafka_producer
        self.service_client = service_client
        self.clock = clock

    async def create_trade(
        self,
        user: User,
        request: TradeCreate,
        token: Optional[str] = None
    ) -> Trade:
        """
        Post a new trade

        Raises:
            HTTPException: 400 if no item is named, 429 while on cooldown
        """
        has_items = [TradeItem.from_dict(i.model_dump()) for i in request.has_items]
        wants_items = [TradeItem.from_dict(i.model_dump()) for i in request.wants_items]
        has_items = [i for i in has_items if i]
        wants_items = [i for i in wants_items if i]

        if not has_items and not wants_items:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Add at least one item to your trade"
            )

        seconds_left = await self.cache.start_trade_cooldown(
            user.id, settings.TRADE_COOLDOWN_SECONDS
        )
        if seconds_left > 0:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Please wait {format_cooldown(seconds_left)} before creating a new trade."
            )

        try:
            summary = await self.rating_service.get_rating_summary(user.id)

            avatar = user.avatar
            if avatar is None:
                profile = await self.service_client.get_user_profile(user.id, token)
                if profile:
                    avatar = profile.get("profile_image_url") or profile.get("avatar")

            trade = Trade(
                id="",
                trader_id=user.id,
                trader_name=user.username or "Anonymous",
                avatar=avatar,
                is_pro=user.is_pro,
                has_items=has_items,
                wants_items=wants_items,
                has_item_tokens=build_item_tokens(has_items),
                wants_item_tokens=build_item_tokens(wants_items),
                has_total=request.has_total,
                wants_total=request.wants_total,
                status=trade_status(request.has_total, request.wants_total),
                description=request.description or "",
                is_featured=False,
                featured_until=None,
                timestamp=self.clock(),
                rating=summary.average_rating if summary else None,
                rating_count=summary.count if summary else 0,
            )
            trade = await self.trade_repo.create(trade)
        except Exception:
            # The cooldown only applies to trades that were actually posted
            await self.cache.clear_trade_cooldown(user.id)
            raise

        await self.kafka_producer.publish_trade_created(trade.id, trade.trader_id, trade.status.value)
        logger.info(f"User {user.id} posted trade {trade.id} ({trade.status.value})")
        return trade

    async def get_trade(self, trade_id: str) -> Trade:
        """Get trade by ID"""
        trade = await self.trade_repo.find_by_id(trade_id)
        if not trade:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Trade not found"
            )
        return trade

    async def delete_trade(self, user: User, trade_id: str) -> None:
        """Delete a trade; owners delete their own, admins moderate any"""
        trade = await self.get_trade(trade_id)

        if not trade.is_owner(user.id) and not user.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You don't have permission to delete this trade"
            )

        await self.trade_repo.delete(trade_id)
        await self.kafka_producer.publish_trade_deleted(trade_id, trade.trader_id, user.id)
        logger.info(f"Trade {trade_id} deleted by user {user.id}")

    async def feature_trade(self, user: User, trade_id: str) -> Trade:
        """
        Feature a trade for a fixed window

        Raises:
            HTTPException: 403 for non-Pro users or non-owners, 429 when the
            featured quota is used up
        """
        if not user.is_pro:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Featuring trades is only available for Pro users"
            )

        trade = await self.get_trade(trade_id)

        if not trade.is_owner(user.id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only feature your own trades"
            )

        now = self.clock()
        window = timedelta(hours=settings.FEATURE_DURATION_HOURS)

        recent = await self.trade_repo.count_featured_since(user.id, now - window)
        if recent >= settings.MAX_FEATURED_PER_WINDOW:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=(
                    f"You can only feature {settings.MAX_FEATURED_PER_WINDOW} trades "
                    f"every {settings.FEATURE_DURATION_HOURS} hours"
                )
            )

        featured_until = now + window
        updated = await self.trade_repo.set_featured(trade_id, featured_until)
        if not updated:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Trade not found"
            )

        trade.is_featured = True
        trade.featured_until = featured_until

        await self.kafka_producer.publish_trade_featured(trade_id, user.id, featured_until)
        logger.info(f"Trade {trade_id} featured until {featured_until.isoformat()}")
        return trade


class FeedService:
    """Feed sessions - a FeedController per reader, parked in Redis between requests"""

    def __init__(
        self,
        trade_repository: ITradeRepository,
        cache: RedisCache,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.trade_repo = trade_repository
        self.cache = cache
        self.clock = clock

    def _new_controller(self, filters: Optional[FeedFilters] = None) -> FeedController:
        return FeedController(self.trade_repo, filters=filters, clock=self.clock)

    async def _load_controller(self, session_id: str) -> FeedController:
        state = await self.cache.get_feed_session(session_id)
        if state is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Feed session expired, reload the feed"
            )
        return FeedController.from_state(self.trade_repo, state, clock=self.clock)

    async def _save_controller(self, session_id: str, controller: FeedController) -> bool:
        saved = await self.cache.save_feed_session(session_id, controller.to_state())
        if not saved:
            logger.warning(f"Feed session {session_id} could not be stored")
        return saved

    async def open_feed(self, filters: FeedFilters) -> Tuple[Optional[str], FeedPage]:
        """
        Start a feed session and return its first page

        If the session cannot be stored the page is returned without a
        session_id and as the end of the feed.
        """
        session_id = uuid.uuid4().hex
        controller = self._new_controller(filters)
        page = await controller.load_initial()
        if not await self._save_controller(session_id, controller):
            return None, FeedPage(items=page.items, has_more=False)
        return session_id, page

    async def _with_session(self, session_id: str, action) -> Tuple[FeedController, FeedPage]:
        if not await self.cache.acquire_session_lock(session_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A page request for this feed is already in progress"
            )

        try:
            controller = await self._load_controller(session_id)
            page = await action(controller)
            await self._save_controller(session_id, controller)
            return controller, page
        finally:
            await self.cache.release_session_lock(session_id)

    async def load_more(self, session_id: str) -> Tuple[FeedController, FeedPage]:
        """Next page of the session's feed or search"""
        return await self._with_session(session_id, lambda c: c.load_more())

    async def search(
        self,
        session_id: str,
        term: str,
        scope: SearchScope,
        load_more: bool = False
    ) -> Tuple[FeedController, FeedPage]:
        """Search within a session; an empty term goes back to the feed"""
        async def run(controller: FeedController) -> FeedPage:
            try:
                return await controller.search(term, scope, load_more=load_more)
            except ValueError as e:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=str(e)
                )

        return await self._with_session(session_id, run)

    async def refresh(self, session_id: str) -> Tuple[FeedController, FeedPage]:
        """Reload the first page, leaving search mode"""
        return await self._with_session(session_id, lambda c: c.refresh())
