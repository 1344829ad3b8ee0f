import asyncio

import fakeredis
import pytest

from city_explorer.errors import InvalidFilterState
from city_explorer.geo_service.composer import compose
from city_explorer.models.city import City, CityDetail, Region
from city_explorer.models.intents import intent_adapter
from city_explorer.models.results import ErrorKind, Failure, Success
from city_explorer.redis_cache.preferences import FilterPreferences
from city_explorer.store.city_store import CityViewStore, StoreStatus


def make_city(city_id: str, population: int | None = None, name: str | None = None) -> City:
    return City(
        id=city_id,
        name=name or f"City {city_id}",
        country_code="FR",
        population=population,
        latitude=48.0,
        longitude=2.0,
    )


class FakeCatalog:
    """Stands in for CatalogClient; handlers are keyed by endpoint name."""

    def __init__(self, **handlers):
        self.handlers = handlers
        self.calls = []

    def calls_to(self, endpoint_name):
        return [query for endpoint, query in self.calls if endpoint.name == endpoint_name]

    async def execute(self, query, endpoint):
        self.calls.append((endpoint, query))
        handler = self.handlers.get(endpoint.name)
        if handler is None:
            return Success(data=[], total_count=0)
        result = handler(query, endpoint)
        if asyncio.iscoroutine(result):
            result = await result
        return result


def pages_of(total: int):
    """Handler returning ``limit`` numbered cities starting at ``offset``."""

    def handler(query, endpoint):
        stop = min(query.offset + query.limit, total)
        return Success(
            data=[make_city(str(i), population=1000 * (i + 1)) for i in range(query.offset, stop)],
            total_count=total,
        )

    return handler


@pytest.fixture
def fake_redis():
    client = fakeredis.FakeRedis(decode_responses=True)
    client.flushall()
    return client


@pytest.mark.asyncio
async def test_start_loads_first_page():
    catalog = FakeCatalog(cities=pages_of(35))
    store = CityViewStore(catalog)

    await store.start()

    view = store.view
    assert [c.id for c in view.cities] == [str(i) for i in range(10)]
    assert view.page == 1
    assert view.total_pages == 4
    assert view.loading is False
    assert view.error is None
    assert store.status is StoreStatus.ready


@pytest.mark.asyncio
async def test_start_uses_stored_preferences(fake_redis):
    prefs = FilterPreferences(fake_redis)
    prefs.save_min_population(5000)
    prefs.save_country_code("fr")
    catalog = FakeCatalog(
        regions=lambda q, e: Success(data=[Region(id="IDF", name="Île-de-France")], total_count=1)
    )
    store = CityViewStore(catalog, preferences=prefs)

    await store.start()

    assert store.query.min_population == 5000
    assert store.query.country_code == "FR"
    remote = catalog.calls_to("cities")[0]
    assert remote.min_population == 5000
    assert remote.country_ids == "FR"
    assert [r.id for r in store.view.regions] == ["IDF"]


@pytest.mark.asyncio
async def test_rapid_search_input_issues_one_query():
    catalog = FakeCatalog(cities=pages_of(3))
    store = CityViewStore(catalog, debounce_s=0.3)

    for text in ("P", "Pa", "Par", "Paris"):
        store.set_search_term(text)
        await asyncio.sleep(0.01)
    await store.settle()

    queries = catalog.calls_to("cities")
    assert len(queries) == 1
    assert queries[0].name_prefix == "Paris"


@pytest.mark.asyncio
async def test_stale_response_never_overwrites_newer_one():
    gates = {"Lon": asyncio.Event(), "Paris": asyncio.Event()}

    async def slow_search(query, endpoint):
        await gates[query.name_prefix].wait()
        return Success(data=[make_city(query.name_prefix, name=query.name_prefix)], total_count=1)

    catalog = FakeCatalog(cities=slow_search)
    store = CityViewStore(catalog, debounce_s=0.01)

    store.set_search_term("Lon")
    await asyncio.sleep(0.05)
    store.set_search_term("Paris")
    await asyncio.sleep(0.05)
    assert [q.name_prefix for q in catalog.calls_to("cities")] == ["Lon", "Paris"]

    gates["Paris"].set()
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    gates["Lon"].set()
    await store.settle()

    assert [c.name for c in store.view.cities] == ["Paris"]
    assert store.view.loading is False


@pytest.mark.asyncio
async def test_population_filter_over_held_set_is_local():
    held = [make_city("a", 500), make_city("b", 5000), make_city("c", 50000)]
    catalog = FakeCatalog(cities=lambda q, e: Success(data=held, total_count=3))
    store = CityViewStore(catalog)
    await store.start()

    await store.set_population_range(1000, 10000)

    view = store.view
    assert [c.population for c in view.cities] == [5000]
    assert view.mode == "local"
    assert view.total_pages == 1
    assert len(catalog.calls_to("cities")) == 1


@pytest.mark.asyncio
async def test_widening_population_bounds_goes_remote():
    catalog = FakeCatalog(cities=pages_of(5))
    store = CityViewStore(catalog)
    await store.set_population_range(2000, 0)
    assert len(catalog.calls_to("cities")) == 1
    assert catalog.calls_to("cities")[0].min_population == 2000

    await store.set_population_range(1000, 0)

    queries = catalog.calls_to("cities")
    assert len(queries) == 2
    assert queries[1].min_population == 1000
    assert store.view.mode == "server"


@pytest.mark.asyncio
async def test_region_requires_country():
    catalog = FakeCatalog()
    store = CityViewStore(catalog)

    with pytest.raises(InvalidFilterState):
        await store.set_region("IDF")

    assert catalog.calls == []
    assert store.query.region_code is None


@pytest.mark.asyncio
async def test_region_mode_is_scoped_query_with_local_paging():
    catalog = FakeCatalog(cities=pages_of(100), region_cities=pages_of(15))
    store = CityViewStore(catalog)
    await store.set_country("fr")

    await store.set_region("IDF")

    remote = catalog.calls_to("region_cities")[0]
    endpoint = [e for e, _ in catalog.calls if e.name == "region_cities"][0]
    assert endpoint.path == "/countries/FR/regions/IDF/cities"
    assert remote.limit == 20
    view = store.view
    assert view.mode == "local"
    assert view.total_pages == 2
    assert len(view.cities) == 10

    await store.change_page(2)

    assert store.view.page == 2
    assert [c.id for c in store.view.cities] == [str(i) for i in range(10, 15)]
    assert len(catalog.calls_to("region_cities")) == 1


@pytest.mark.asyncio
async def test_population_change_in_region_mode_requeries_region():
    catalog = FakeCatalog(region_cities=pages_of(4))
    store = CityViewStore(catalog)
    await store.set_country("FR")
    await store.set_region("IDF")

    await store.set_population_range(2000, 0)

    queries = catalog.calls_to("region_cities")
    assert len(queries) == 2
    assert queries[1].min_population == 2000


@pytest.mark.asyncio
async def test_reset_returns_to_unscoped_list_without_round_trip():
    catalog = FakeCatalog(cities=pages_of(30), region_cities=pages_of(4))
    store = CityViewStore(catalog)
    await store.set_country("FR")
    await store.set_region("IDF")
    await store.set_population_range(2000, 0)

    await store.reset_filters()

    assert store.query.region_code is None
    assert store.query.min_population == 0
    assert store.view.mode == "server"
    assert store.view.page == 1
    assert store.view.total_pages == 3
    assert len(catalog.calls_to("cities")) == 1


@pytest.mark.asyncio
async def test_change_page_fetches_new_pages_and_replays_known_ones():
    catalog = FakeCatalog(cities=pages_of(25))
    store = CityViewStore(catalog)
    await store.start()

    await store.change_page(2)
    assert catalog.calls_to("cities")[-1].offset == 10
    assert store.view.cities[0].id == "10"

    await store.change_page(1)

    assert len(catalog.calls_to("cities")) == 2
    assert store.view.page == 1
    assert store.view.cities[0].id == "0"


@pytest.mark.asyncio
async def test_failure_keeps_last_good_cities():
    outcomes = [
        Success(data=[make_city("1", 100)], total_count=1),
        Failure(error_kind=ErrorKind.rate_limited, message="exhausted"),
    ]
    catalog = FakeCatalog(cities=lambda q, e: outcomes.pop(0))
    store = CityViewStore(catalog)
    await store.start()

    await store.refresh()

    view = store.view
    assert [c.id for c in view.cities] == ["1"]
    assert view.loading is False
    assert "busy" in view.error
    assert store.status is StoreStatus.errored


@pytest.mark.asyncio
async def test_remote_error_message_is_shown():
    catalog = FakeCatalog(
        cities=lambda q, e: Failure(
            error_kind=ErrorKind.remote_error, message="Bad limit", status_code=400
        )
    )
    store = CityViewStore(catalog)

    await store.start()

    assert store.view.error == "Bad limit"


@pytest.mark.asyncio
async def test_set_country_clears_region_and_persists(fake_redis):
    prefs = FilterPreferences(fake_redis)
    catalog = FakeCatalog(
        regions=lambda q, e: Success(data=[Region(id="BY", name="Bavaria")], total_count=1)
    )
    store = CityViewStore(catalog, preferences=prefs)
    await store.set_country("FR")
    await store.set_region("IDF")

    await store.set_country("de")

    assert store.query.country_code == "DE"
    assert store.query.region_code is None
    assert store.view.mode == "server"
    assert prefs.load_country_code() == "DE"
    assert store.view.country_name == "Germany"
    assert [r.name for r in store.view.regions] == ["Bavaria"]
    assert catalog.calls_to("cities")[-1].types == ("CITY",)


@pytest.mark.asyncio
async def test_clearing_country_clears_regions():
    catalog = FakeCatalog(
        regions=lambda q, e: Success(data=[Region(id="BY", name="Bavaria")], total_count=1)
    )
    store = CityViewStore(catalog)
    await store.set_country("DE")

    await store.set_country(None)

    assert store.query.country_code is None
    assert store.view.regions == []


@pytest.mark.asyncio
async def test_region_never_outlives_country():
    catalog = FakeCatalog(cities=pages_of(40), region_cities=pages_of(5))
    store = CityViewStore(catalog)
    steps = [
        store.set_country("FR"),
        store.set_region("IDF"),
        store.set_population_range(100, 0),
        store.change_page(2),
        store.set_country(None),
        store.set_population_range(0, 0),
        store.set_country("US"),
        store.set_region("CA"),
        store.reset_filters(),
    ]
    for step in steps:
        await step
        query = store.query
        assert not query.region_code or query.country_code


@pytest.mark.asyncio
async def test_invalid_population_bounds_rejected():
    store = CityViewStore(FakeCatalog())
    with pytest.raises(InvalidFilterState):
        await store.set_population_range(5000, 1000)
    with pytest.raises(InvalidFilterState):
        await store.set_population_range(-1, 0)


@pytest.mark.asyncio
async def test_unknown_country_name_rejected():
    catalog = FakeCatalog()
    store = CityViewStore(catalog)
    with pytest.raises(InvalidFilterState):
        await store.set_country_by_name("Atlantis")
    assert catalog.calls == []

    await store.set_country_by_name("Spain")
    assert store.query.country_code == "ES"


@pytest.mark.asyncio
async def test_near_location_filter():
    catalog = FakeCatalog(cities=pages_of(3))
    store = CityViewStore(catalog)

    await store.set_near_location(48.85, 2.35, 25)

    remote = catalog.calls_to("cities")[0]
    assert remote.location == "48.85,2.35"
    assert remote.radius == 25
    with pytest.raises(InvalidFilterState):
        await store.set_near_location(48.85, None)


@pytest.mark.asyncio
async def test_select_city_loads_detail_and_nearby():
    detail = CityDetail(
        id="42", name="Lyon", latitude=45.76, longitude=4.83, timezone="Europe__Paris"
    )
    nearby = CityDetail(id="43", name="Villeurbanne", latitude=45.77, longitude=4.88, distance=3.2)
    catalog = FakeCatalog(
        city_detail=lambda q, e: Success(data=[detail], total_count=1),
        nearby_cities=lambda q, e: Success(data=[nearby], total_count=1),
    )
    store = CityViewStore(catalog)

    selection = await store.select_city("42")

    assert selection.detail.name == "Lyon"
    assert [c.name for c in selection.nearby] == ["Villeurbanne"]
    assert selection.loading is False
    nearby_query = catalog.calls_to("nearby_cities")[0]
    assert nearby_query.to_params() == {
        "radius": "100",
        "limit": "10",
        "offset": "0",
        "minPopulation": "1000",
    }
    assert catalog.calls_to("cities") == []


@pytest.mark.asyncio
async def test_select_city_failure_sets_selection_error():
    catalog = FakeCatalog(
        city_detail=lambda q, e: Failure(error_kind=ErrorKind.network_error, message="down")
    )
    store = CityViewStore(catalog)

    selection = await store.select_city("42")

    assert selection.detail is None
    assert "reach" in selection.error
    store.clear_selection()
    assert store.selection is None


@pytest.mark.asyncio
async def test_dispatch_routes_intents():
    catalog = FakeCatalog(cities=pages_of(50))
    store = CityViewStore(catalog, debounce_s=0.01)

    await store.dispatch(intent_adapter.validate_python({"kind": "country", "country_code": "fr"}))
    await store.dispatch(intent_adapter.validate_python({"kind": "page", "page": 3}))
    await store.dispatch(intent_adapter.validate_python({"kind": "search", "text": "Ly"}))
    await store.settle()

    assert store.query.country_code == "FR"
    assert store.query.search_term == "Ly"
    assert store.query.page == 1
    assert catalog.calls_to("cities")[1].offset == 20
    assert catalog.calls_to("cities")[-1].name_prefix == "Ly"


@pytest.mark.asyncio
async def test_close_drops_pending_search():
    catalog = FakeCatalog(cities=pages_of(3))
    store = CityViewStore(catalog, debounce_s=0.05)

    store.set_search_term("Par")
    store.close()
    await asyncio.sleep(0.1)

    assert catalog.calls == []


@pytest.mark.asyncio
async def test_population_filter_after_failed_country_change_requeries():
    held = [make_city("a", 500), make_city("b", 5000), make_city("c", 50000)]
    outcomes = [
        Success(data=held, total_count=3),
        Failure(error_kind=ErrorKind.network_error, message="down"),
        Success(data=[make_city("tokyo", 14000000)], total_count=1),
    ]
    catalog = FakeCatalog(cities=lambda q, e: outcomes.pop(0))
    store = CityViewStore(catalog)
    await store.start()
    await store.set_country("JP")
    assert store.status is StoreStatus.errored

    await store.set_population_range(1000, 0)

    queries = catalog.calls_to("cities")
    assert len(queries) == 3
    assert queries[-1].country_ids == "JP"
    assert queries[-1].min_population == 1000
    view = store.view
    assert [c.id for c in view.cities] == ["tokyo"]
    assert view.error is None
    assert view.mode == "server"


@pytest.mark.asyncio
async def test_population_filter_ignores_page_held_for_other_search():
    catalog = FakeCatalog(cities=pages_of(5))
    store = CityViewStore(catalog, debounce_s=10)
    await store.start()
    store.set_search_term("Lyo")

    await store.set_population_range(2000, 0)

    queries = catalog.calls_to("cities")
    assert len(queries) == 2
    assert queries[-1].name_prefix == "Lyo"
    store.close()


@pytest.mark.asyncio
async def test_local_filter_over_later_page_restores_that_page():
    catalog = FakeCatalog(cities=pages_of(50))
    store = CityViewStore(catalog)
    await store.start()
    await store.change_page(3)

    await store.set_population_range(25000, 0)

    assert store.view.mode == "local"
    assert [c.id for c in store.view.cities] == [str(i) for i in range(24, 30)]

    await store.set_population_range(0, 0)

    view = store.view
    assert view.mode == "server"
    assert view.page == 3
    assert [c.id for c in view.cities] == [str(i) for i in range(20, 30)]
    assert compose(store.query).offset == 20
    assert len(catalog.calls_to("cities")) == 2


@pytest.mark.asyncio
async def test_location_and_region_are_exclusive():
    catalog = FakeCatalog(region_cities=pages_of(4))
    store = CityViewStore(catalog)
    await store.set_country("FR")
    await store.set_region("IDF")

    with pytest.raises(InvalidFilterState):
        await store.set_near_location(48.85, 2.35, 25)
    assert store.query.near_location is None

    await store.reset_filters()
    await store.set_near_location(48.85, 2.35, 25)
    with pytest.raises(InvalidFilterState):
        await store.set_region("IDF")
    assert store.query.region_code is None
    assert len(catalog.calls_to("region_cities")) == 1


@pytest.mark.asyncio
async def test_unknown_country_code_rejected():
    catalog = FakeCatalog()
    store = CityViewStore(catalog)

    with pytest.raises(InvalidFilterState):
        await store.set_country("ZZ")

    assert catalog.calls == []
    assert store.query.country_code is None


@pytest.mark.asyncio
async def test_stored_unknown_country_is_ignored(fake_redis):
    prefs = FilterPreferences(fake_redis)
    prefs.save_country_code("ZZ")
    catalog = FakeCatalog()
    store = CityViewStore(catalog, preferences=prefs)

    await store.start()

    assert store.query.country_code is None
    assert catalog.calls_to("regions") == []
