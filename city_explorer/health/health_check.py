"""Health checks for Redis and the remote city catalog."""

import httpx
from redis.exceptions import RedisError

from city_explorer.logging_config import logger
from city_explorer.models.health import ServiceStatus
from city_explorer.redis_cache.preferences import redis_client
from city_explorer.settings import Settings


def is_redis_available() -> ServiceStatus:
    """Check Redis connectivity.

    Returns:
        ServiceStatus.available when Redis responds, else not_available.
    """
    try:
        redis_client.ping()
        return ServiceStatus.available
    except RedisError as exc:
        logger.error("REDIS_UNAVAILABLE", error=str(exc))
        return ServiceStatus.not_available


async def is_catalog_api_available(settings: Settings) -> bool:
    """Check that the catalog answers an authenticated one-item query.

    Rate limiting counts as available: the service is up, just busy.
    """
    if not settings.api_key:
        return False
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            response = await client.get(
                f"{settings.base_url}/cities",
                params={"limit": "1"},
                headers={
                    "X-RapidAPI-Key": settings.api_key,
                    "X-RapidAPI-Host": settings.api_host,
                },
            )
            return response.status_code in (200, 429)
    except httpx.HTTPError as exc:
        logger.error("CATALOG_UNAVAILABLE", error=str(exc))
        return False
