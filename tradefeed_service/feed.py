"""
Feed controller - paging, featured placement and token search over trades
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Callable
import asyncio
import logging

from .config import settings
from .domain.models import Trade, FeedFilters, FeedItem, FeedPage, SearchScope
from .domain.repositories import ITradeRepository
from .merger import merge_featured_with_normal
from .pagination import PageCursor, encode_cursor, decode_cursor
from .tokens import normalize_search_term

logger = logging.getLogger(__name__)


@dataclass
class SearchSide:
    """Paging position of one side of a token search"""
    cursor: Optional[PageCursor] = None
    exhausted: bool = False


@dataclass
class SearchState:
    """Search mode state, independent from the normal feed cursor"""
    term: str
    scope: SearchScope
    sides: Dict[str, SearchSide] = field(default_factory=dict)
    has_more: bool = True
    seen_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "scope": self.scope.value,
            "sides": {
                name: {"cursor": encode_cursor(side.cursor), "exhausted": side.exhausted}
                for name, side in self.sides.items()
            },
            "has_more": self.has_more,
            "seen_ids": list(self.seen_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchState":
        return cls(
            term=data["term"],
            scope=SearchScope(data["scope"]),
            sides={
                name: SearchSide(
                    cursor=decode_cursor(side.get("cursor")),
                    exhausted=bool(side.get("exhausted")),
                )
                for name, side in (data.get("sides") or {}).items()
            },
            has_more=bool(data.get("has_more")),
            seen_ids=list(data.get("seen_ids") or []),
        )


class FeedController:
    """
    Owns one reader's feed state.

    Normal trades and featured trades come from two independently paged
    queries and are merged page by page. Search mode pages through token
    lookups with its own cursors. Store failures are logged and reported
    as the end of the feed.
    """

    def __init__(
        self,
        repository: ITradeRepository,
        filters: Optional[FeedFilters] = None,
        page_size: int = None,
        search_page_size: int = None,
        featured_per_page: int = None,
        block_size: int = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.filters = filters or FeedFilters()
        self.page_size = page_size or settings.PAGE_SIZE
        self.search_page_size = search_page_size or settings.SEARCH_PAGE_SIZE
        self.featured_per_page = featured_per_page or settings.FEATURED_PER_PAGE
        self.block_size = block_size or settings.MERGE_BLOCK_SIZE
        self.clock = clock

        self.items: List[FeedItem] = []
        self.normal_cursor: Optional[PageCursor] = None
        self.has_more: bool = True
        self.featured_buffer: List[Trade] = []
        self.search_state: Optional[SearchState] = None

        self._lock = asyncio.Lock()

    @property
    def is_search_mode(self) -> bool:
        return self.search_state is not None

    # Public operations

    async def load_initial(self, filters: Optional[FeedFilters] = None) -> FeedPage:
        """First page of the feed; leaves search mode"""
        async with self._lock:
            return await self._load_initial(filters)

    async def load_more(self) -> FeedPage:
        """
        Next page of whichever mode is active.

        A call made while another page request is in flight returns an
        empty page instead of issuing an overlapping query.
        """
        if self._lock.locked():
            logger.debug("Page request already in flight, skipping")
            return FeedPage(items=[], has_more=self._current_has_more())

        async with self._lock:
            if self.search_state is not None:
                return await self._search_page(load_more=True)
            return await self._load_more_normal()

    async def search(
        self,
        term: str,
        scope: SearchScope = SearchScope.BOTH,
        load_more: bool = False
    ) -> FeedPage:
        """
        Search trades by item name token.

        An empty term returns to the normal feed.

        Raises:
            ValueError: If scope selects no side
        """
        try:
            scope = SearchScope(scope)
        except ValueError:
            raise ValueError("Select at least one side to search (has, wants or both)")

        token = normalize_search_term(term)

        async with self._lock:
            if not token:
                return await self._load_initial(self.filters)

            continuing = (
                load_more
                and self.search_state is not None
                and self.search_state.term == token
                and self.search_state.scope == scope
            )
            if not continuing:
                self.search_state = SearchState(term=token, scope=scope)
                self.items = []
                return await self._search_page(load_more=False)
            return await self._search_page(load_more=True)

    async def refresh(self) -> FeedPage:
        """Drop search mode and reload the first page"""
        async with self._lock:
            return await self._load_initial(self.filters)

    # Normal feed

    async def _load_initial(self, filters: Optional[FeedFilters]) -> FeedPage:
        if filters is not None:
            self.filters = filters

        self.search_state = None
        self.items = []
        self.normal_cursor = None
        self.featured_buffer = []
        now = self.clock()

        try:
            normal = await self.repository.fetch_normal_page(
                self.filters, now, None, self.page_size
            )
            featured = await self.repository.fetch_featured(self.filters, now)
        except Exception as e:
            logger.error(f"Error fetching trades: {e}")
            self.has_more = False
            return FeedPage(items=[], has_more=False)

        shown = featured[:self.featured_per_page]
        self.featured_buffer = featured[self.featured_per_page:]

        merged = self._merge(shown, normal)
        self.items = merged
        if normal:
            self.normal_cursor = PageCursor.after(normal[-1])
        self.has_more = len(normal) == self.page_size

        logger.info(
            f"Loaded initial feed: {len(normal)} normal, {len(shown)} featured, "
            f"{len(self.featured_buffer)} featured buffered"
        )
        return FeedPage(items=merged, has_more=self.has_more)

    async def _load_more_normal(self) -> FeedPage:
        if not self.has_more or self.normal_cursor is None:
            return FeedPage(items=[], has_more=False)

        now = self.clock()
        try:
            normal = await self.repository.fetch_normal_page(
                self.filters, now, self.normal_cursor, self.page_size
            )
        except Exception as e:
            logger.error(f"Error fetching more trades: {e}")
            self.has_more = False
            return FeedPage(items=[], has_more=False)

        if not normal:
            self.has_more = False
            return FeedPage(items=[], has_more=False)

        # Featured windows may have closed since the buffer was filled
        self.featured_buffer = [
            t for t in self.featured_buffer if t.is_currently_featured(now)
        ]
        shown = self.featured_buffer[:self.featured_per_page]
        self.featured_buffer = self.featured_buffer[self.featured_per_page:]

        merged = self._merge(shown, normal)
        self.items.extend(merged)
        self.normal_cursor = PageCursor.after(normal[-1])
        self.has_more = len(normal) == self.page_size

        return FeedPage(items=merged, has_more=self.has_more)

    def _merge(self, featured: List[Trade], normal: List[Trade]) -> List[FeedItem]:
        return merge_featured_with_normal(
            [FeedItem(trade=t, featured=True) for t in featured],
            [FeedItem(trade=t, featured=False) for t in normal],
            self.block_size,
        )

    # Search

    async def _search_page(self, load_more: bool) -> FeedPage:
        state = self.search_state
        if load_more and not state.has_more:
            return FeedPage(items=[], has_more=False)

        side_names = []
        if state.scope.includes_has:
            side_names.append("has")
        if state.scope.includes_wants:
            side_names.append("wants")

        results: Dict[str, Trade] = {}
        any_full_page = False

        for name in side_names:
            side = state.sides.setdefault(name, SearchSide())
            if side.exhausted:
                continue

            try:
                trades = await self.repository.search_by_token(
                    name, state.term, self.filters, side.cursor, self.search_page_size
                )
            except Exception as e:
                logger.error(f"Search error on {name} side: {e}")
                side.exhausted = True
                continue

            if trades:
                side.cursor = PageCursor.after(trades[-1])
            if len(trades) >= self.search_page_size:
                any_full_page = True
            else:
                side.exhausted = True

            for trade in trades:
                results.setdefault(trade.id, trade)

        seen = set(state.seen_ids)
        found = [
            t for t in results.values()
            if t.id not in seen and self.filters.matches(t)
        ]
        found.sort(key=lambda t: (t.timestamp, t.id), reverse=True)

        state.seen_ids.extend(t.id for t in found)
        state.has_more = any_full_page

        page_items = [FeedItem(trade=t, featured=False) for t in found]

        combined = {item.id: item for item in self.items}
        for item in page_items:
            combined.setdefault(item.id, item)
        self.items = sorted(
            combined.values(),
            key=lambda item: (item.trade.timestamp, item.id),
            reverse=True,
        )

        logger.info(f"Search '{state.term}' ({state.scope.value}) returned {len(found)} trades")
        return FeedPage(items=page_items, has_more=state.has_more)

    def _current_has_more(self) -> bool:
        if self.search_state is not None:
            return self.search_state.has_more
        return self.has_more

    # Persistence

    def to_state(self) -> Dict[str, Any]:
        """JSON-safe controller state; the accumulated items are not kept"""
        return {
            "filters": self.filters.to_dict(),
            "normal_cursor": encode_cursor(self.normal_cursor),
            "has_more": self.has_more,
            "featured_buffer": [t.to_state() for t in self.featured_buffer],
            "search": self.search_state.to_dict() if self.search_state else None,
        }

    @classmethod
    def from_state(
        cls,
        repository: ITradeRepository,
        state: Dict[str, Any],
        **kwargs
    ) -> "FeedController":
        """Rebuild a controller saved with to_state()"""
        controller = cls(
            repository,
            filters=FeedFilters.from_dict(state.get("filters") or {}),
            **kwargs
        )
        controller.normal_cursor = decode_cursor(state.get("normal_cursor"))
        controller.has_more = bool(state.get("has_more"))
        controller.featured_buffer = [
            Trade.from_state(t) for t in state.get("featured_buffer") or []
        ]
        if state.get("search"):
            controller.search_state = SearchState.from_dict(state["search"])
        return controller
