import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from city_explorer.redis_cache.preferences import (
    MIN_POPULATION_KEY,
    SELECTED_COUNTRY_KEY,
    FilterPreferences,
)


@pytest.fixture
def fake_redis():
    client = fakeredis.FakeRedis(decode_responses=True)
    client.flushall()
    return client


def test_defaults_when_nothing_saved(fake_redis):
    prefs = FilterPreferences(fake_redis)
    assert prefs.load_min_population() == 0
    assert prefs.load_country_code() is None


def test_save_and_load(fake_redis):
    prefs = FilterPreferences(fake_redis)
    prefs.save_min_population(5000)
    prefs.save_country_code("FR")
    assert fake_redis.get(MIN_POPULATION_KEY) == "5000"
    assert prefs.load_min_population() == 5000
    assert prefs.load_country_code() == "FR"


def test_clearing_country(fake_redis):
    prefs = FilterPreferences(fake_redis)
    prefs.save_country_code("FR")
    prefs.save_country_code(None)
    assert fake_redis.get(SELECTED_COUNTRY_KEY) == ""
    assert prefs.load_country_code() is None


def test_invalid_population_falls_back(fake_redis):
    fake_redis.set(MIN_POPULATION_KEY, "lots")
    assert FilterPreferences(fake_redis).load_min_population() == 0


class BrokenRedis:
    def get(self, key):
        raise RedisConnectionError("down")

    def set(self, key, value):
        raise RedisConnectionError("down")


def test_redis_errors_are_logged_not_raised():
    prefs = FilterPreferences(BrokenRedis())
    assert prefs.load_min_population() == 0
    assert prefs.load_country_code() is None
    prefs.save_min_population(10)
    prefs.save_country_code("US")
