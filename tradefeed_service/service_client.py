"""
HTTP client for the auth service
"""
import httpx
from typing import Optional, Dict, Any
import logging

from .config import settings

logger = logging.getLogger(__name__)


class ServiceClient:
    """HTTP client for communicating with other microservices"""

    def __init__(self):
        self.timeout = httpx.Timeout(10.0, connect=5.0)
        self.client: Optional[httpx.AsyncClient] = None

    async def start(self):
        """Initialize HTTP client"""
        self.client = httpx.AsyncClient(timeout=self.timeout)
        logger.info("Service client initialized")

    async def stop(self):
        """Close HTTP client"""
        if self.client:
            await self.client.aclose()
            logger.info("Service client closed")

    async def _make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> Optional[Dict[str, Any]]:
        """Make HTTP request to a service"""
        if not self.client:
            logger.error("Service client not initialized")
            return None

        try:
            response = await self.client.request(
                method,
                url,
                headers=headers,
                **kwargs
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} for {url}: {e}")
            return None
        except Exception as e:
            logger.error(f"Request failed for {url}: {e}")
            return None

    # Auth Service API
    async def get_user_profile(
        self,
        user_id: str,
        token: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Get public profile (display name, avatar) for a user"""
        url = f"{settings.AUTH_SERVICE_URL}/api/v1/users/{user_id}"
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        return await self._make_request("GET", url, headers=headers)


# Global service client instance
service_client = ServiceClient()


async def get_service_client() -> ServiceClient:
    """Dependency for getting service client instance"""
    return service_client
