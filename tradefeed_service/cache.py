"""
Redis cache for Trade Feed Service
"""
import redis.asyncio as redis
from collections import OrderedDict
from typing import Optional, Tuple
import logging
import json
import time

from .config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis manager for feed sessions and per-user cooldowns"""

    def __init__(self):
        self.client: Optional[redis.Redis] = None
        # Feed sessions kept in process while Redis is disabled or unreachable
        self._local_sessions: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()

    async def connect(self):
        """Connect to Redis"""
        if not settings.REDIS_ENABLED:
            logger.warning("Redis is disabled")
            return

        try:
            self.client = await redis.from_url(
                f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}",
                password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                encoding="utf-8",
                decode_responses=True,
            )
            # Test connection
            await self.client.ping()
            logger.info("Redis cache connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self.client = None

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.client:
            await self.client.close()
            logger.info("Redis cache disconnected")

    def _session_key(self, session_id: str) -> str:
        """Get Redis key for a feed session"""
        return f"feed:session:{session_id}"

    def _session_lock_key(self, session_id: str) -> str:
        """Get Redis key for a feed session's page-request lock"""
        return f"feed:session:lock:{session_id}"

    def _cooldown_key(self, user_id: str) -> str:
        """Get Redis key for a user's trade posting cooldown"""
        return f"trade:cooldown:{user_id}"

    async def save_feed_session(
        self,
        session_id: str,
        state: dict,
        ttl: int = None
    ) -> bool:
        """Store feed session state"""
        if not self.client:
            self._save_local_session(session_id, state, ttl or settings.FEED_SESSION_TTL)
            return True

        try:
            await self.client.set(
                self._session_key(session_id),
                json.dumps(state),
                ex=ttl or settings.FEED_SESSION_TTL
            )
            return True
        except Exception as e:
            logger.error(f"Failed to save feed session: {e}")
            return False

    async def get_feed_session(self, session_id: str) -> Optional[dict]:
        """Get feed session state"""
        if not self.client:
            return self._get_local_session(session_id)

        try:
            data = await self.client.get(self._session_key(session_id))
            return json.loads(data) if data else None
        except Exception as e:
            logger.error(f"Failed to get feed session: {e}")
            return None

    def _save_local_session(self, session_id: str, state: dict, ttl: int) -> None:
        self._local_sessions[session_id] = (time.monotonic() + ttl, json.dumps(state))
        self._local_sessions.move_to_end(session_id)
        # Oldest sessions go first once the store is full
        while len(self._local_sessions) > settings.LOCAL_SESSION_MAX:
            self._local_sessions.popitem(last=False)

    def _get_local_session(self, session_id: str) -> Optional[dict]:
        entry = self._local_sessions.get(session_id)
        if entry is None:
            return None

        expires_at, data = entry
        if expires_at <= time.monotonic():
            del self._local_sessions[session_id]
            return None
        return json.loads(data)

    async def acquire_session_lock(self, session_id: str) -> bool:
        """
        Claim the page-request lock for a session.

        Returns True when Redis is unavailable so requests are not blocked.
        """
        if not self.client:
            return True

        try:
            acquired = await self.client.set(
                self._session_lock_key(session_id),
                "1",
                nx=True,
                ex=settings.FEED_SESSION_LOCK_TTL
            )
            return bool(acquired)
        except Exception as e:
            logger.error(f"Failed to acquire session lock: {e}")
            return True

    async def release_session_lock(self, session_id: str) -> None:
        """Release the page-request lock for a session"""
        if not self.client:
            return

        try:
            await self.client.delete(self._session_lock_key(session_id))
        except Exception as e:
            logger.error(f"Failed to release session lock: {e}")

    async def start_trade_cooldown(self, user_id: str, seconds: int) -> int:
        """
        Start a user's posting cooldown.

        Returns:
            0 if the cooldown was started, otherwise seconds left on the
            cooldown already running
        """
        if not self.client:
            return 0

        try:
            key = self._cooldown_key(user_id)
            started = await self.client.set(key, "1", nx=True, ex=seconds)
            if started:
                return 0
            remaining = await self.client.ttl(key)
            return max(remaining, 0)
        except Exception as e:
            logger.error(f"Failed to check trade cooldown: {e}")
            return 0

    async def clear_trade_cooldown(self, user_id: str) -> bool:
        """Clear a user's posting cooldown"""
        if not self.client:
            return False

        try:
            await self.client.delete(self._cooldown_key(user_id))
            return True
        except Exception as e:
            logger.error(f"Failed to clear trade cooldown: {e}")
            return False


# Global cache instance
cache = RedisCache()


async def get_cache() -> RedisCache:
    """Dependency for getting cache instance"""
    return cache
