"""Redis-backed persistence for the remembered filter values."""

import os
from functools import partial

from redis import Redis
from redis.exceptions import RedisError

from city_explorer.logging_config import logger

redis_client = Redis(
    host=os.getenv("REDIS_HOST", "redis"),
    port=int(os.getenv("REDIS_PORT", "6379")),
    db=int(os.getenv("REDIS_DB", "0")),
    decode_responses=True,
    socket_connect_timeout=2,
)

MIN_POPULATION_KEY = "prefs:minPopulation"
SELECTED_COUNTRY_KEY = "prefs:selectedCountry"


class FilterPreferences:
    """Stores the minimum population and selected country across sessions."""

    def __init__(self, client):
        self.redis_client = client

    def load_min_population(self) -> int:
        """Get the remembered minimum population.

        Returns:
            The stored value, or 0 when absent, invalid or unreachable.
        """
        try:
            raw = self.redis_client.get(MIN_POPULATION_KEY)
        except RedisError as exc:
            logger.error("PREFERENCE_LOAD_FAILED", key=MIN_POPULATION_KEY, error=str(exc))
            return 0
        try:
            return max(0, int(raw)) if raw else 0
        except ValueError:
            logger.warning("PREFERENCE_INVALID", key=MIN_POPULATION_KEY, value=raw)
            return 0

    def load_country_code(self) -> str | None:
        try:
            raw = self.redis_client.get(SELECTED_COUNTRY_KEY)
        except RedisError as exc:
            logger.error("PREFERENCE_LOAD_FAILED", key=SELECTED_COUNTRY_KEY, error=str(exc))
            return None
        return raw or None

    def save_min_population(self, value: int):
        self._save(MIN_POPULATION_KEY, str(value))

    def save_country_code(self, code: str | None):
        self._save(SELECTED_COUNTRY_KEY, code or "")

    def _save(self, key: str, value: str):
        try:
            self.redis_client.set(key, value)
        except RedisError as exc:
            logger.error("PREFERENCE_SAVE_FAILED", key=key, error=str(exc))


filter_preferences = partial(FilterPreferences, client=redis_client)
