"""Central state container for the city list, filters and selection."""

import asyncio
from collections import OrderedDict
from enum import Enum

from pydantic import ValidationError

from city_explorer.coordination.debounce import Debouncer
from city_explorer.coordination.sequencer import QuerySequencer
from city_explorer.errors import InvalidFilterState
from city_explorer.geo_service import endpoints
from city_explorer.geo_service.composer import compose
from city_explorer.logging_config import logger
from city_explorer.models.city import City, Region
from city_explorer.models.intents import (
    CountryIntent,
    LocationIntent,
    PageIntent,
    PopulationIntent,
    RefreshIntent,
    RegionIntent,
    ResetIntent,
    SearchIntent,
    SelectCityIntent,
)
from city_explorer.models.query import NearbyQuery, NearLocation, QueryState, RegionQuery, RemoteQuery
from city_explorer.models.results import ErrorKind, Failure, Success
from city_explorer.models.view import LocallyPaged, PageSource, SelectionView, ServerPaged, ViewState
from city_explorer.reference.countries import country_code_for, country_name_for
from city_explorer.store.pagination import (
    clamp_page,
    compute_total_pages,
    filter_by_population,
    local_page_items,
)

LIST_STREAM = "list"
REGIONS_STREAM = "regions"
SELECTION_STREAM = "selection"
PAGE_CACHE_SIZE = 32

ERROR_MESSAGES = {
    ErrorKind.rate_limited: "The city catalog is busy right now. Please wait a moment and retry.",
    ErrorKind.network_error: "Could not reach the city catalog. Check your connection and retry.",
}


class StoreStatus(str, Enum):
    """Lifecycle of the city list."""

    idle = "idle"
    loading = "loading"
    ready = "ready"
    errored = "errored"


def user_message(failure: Failure) -> str:
    """Translate a fetch failure into text fit for display."""
    if failure.error_kind == ErrorKind.remote_error:
        return failure.message or "The city catalog rejected the request."
    return ERROR_MESSAGES[failure.error_kind]


class CityViewStore:
    """Holds query and result state; its actions are the only mutators.

    List results come either from the catalog one page at a time
    (server-paged) or from a set already in memory (locally paged): a
    population filter over the held page, or a region-scoped result set.
    Every fetch that feeds the list goes through the ``list`` stream of
    the sequencer, so only the most recently issued one is applied.
    """

    def __init__(
        self,
        catalog,
        *,
        page_size: int = 10,
        region_result_limit: int = 20,
        debounce_s: float = 0.3,
        preferences=None,
    ):
        self._catalog = catalog
        self._preferences = preferences
        self._sequencer = QuerySequencer()
        self._debouncer = Debouncer(debounce_s, self._search_settled)
        self.region_result_limit = region_result_limit

        self._query = QueryState(page_size=page_size)
        self._status = StoreStatus.idle
        self._error: str | None = None
        # last good server page and the query that produced it
        self._cities: list[City] = []
        self._held_query: RemoteQuery | None = None
        self._server_total = 0
        self._source: PageSource = ServerPaged()
        self._local_page = 1
        self._regions: list[Region] = []
        self._page_cache: OrderedDict[RemoteQuery, Success] = OrderedDict()
        self._selection: SelectionView | None = None

    @property
    def query(self) -> QueryState:
        return self._query

    @property
    def status(self) -> StoreStatus:
        return self._status

    @property
    def selection(self) -> SelectionView | None:
        return self._selection

    @property
    def view(self) -> ViewState:
        """Project the current state into a render-ready view."""
        page_size = self._query.page_size
        total_pages = compute_total_pages(self._source, page_size)
        if isinstance(self._source, LocallyPaged):
            cities = local_page_items(self._source, self._local_page, page_size)
            page = clamp_page(self._local_page, total_pages)
        else:
            cities = list(self._cities)
            page = self._query.page
        return ViewState(
            cities=cities,
            loading=self._status is StoreStatus.loading,
            error=self._error if self._status is StoreStatus.errored else None,
            page=page,
            total_pages=total_pages,
            mode=self._source.mode,
            query=self._query,
            country_name=country_name_for(self._query.country_code)
            if self._query.country_code
            else None,
            regions=list(self._regions),
        )

    async def start(self):
        """Seed the query from stored preferences and load the first page."""
        if self._preferences is not None:
            min_population = self._preferences.load_min_population()
            country_code = self._preferences.load_country_code()
            if country_code and country_name_for(country_code) is None:
                logger.warning("PREFERENCE_COUNTRY_IGNORED", country=country_code)
                country_code = None
            self._query = self._updated(
                min_population=min_population,
                country_code=country_code.upper() if country_code else None,
            )
        logger.info("STORE_START", **self._query.model_dump(exclude={"near_location"}))
        await asyncio.gather(
            self._load_regions(self._query.country_code), self._load_list()
        )

    async def settle(self):
        """Wait until a pending debounced search has been issued and applied."""
        await self._debouncer.join()

    def close(self):
        self._debouncer.close()

    async def dispatch(self, intent):
        """Route a single user intent to the matching action."""
        if isinstance(intent, SearchIntent):
            self.set_search_term(intent.text)
        elif isinstance(intent, CountryIntent):
            if intent.country_name is not None:
                await self.set_country_by_name(intent.country_name)
            else:
                await self.set_country(intent.country_code)
        elif isinstance(intent, RegionIntent):
            await self.set_region(intent.region_code)
        elif isinstance(intent, PopulationIntent):
            await self.set_population_range(intent.min_population, intent.max_population)
        elif isinstance(intent, LocationIntent):
            await self.set_near_location(intent.latitude, intent.longitude, intent.radius)
        elif isinstance(intent, ResetIntent):
            await self.reset_filters()
        elif isinstance(intent, PageIntent):
            await self.change_page(intent.page)
        elif isinstance(intent, SelectCityIntent):
            await self.select_city(intent.city_id)
        elif isinstance(intent, RefreshIntent):
            await self.refresh()
        else:
            raise InvalidFilterState(f"Unsupported intent: {intent!r}")

    # actions

    def set_search_term(self, text: str):
        """Record the search text; the query goes out once typing settles."""
        self._query = self._updated(search_term=text or "", page=1)
        self._local_page = 1
        self._debouncer.push(self._query.search_term)

    async def set_country(self, country_code: str | None):
        """Switch the country filter, dropping the region and local filtering."""
        code = (country_code or "").strip().upper() or None
        if code is not None and country_name_for(code) is None:
            raise InvalidFilterState(f"Unknown country code: {country_code!r}")
        self._query = self._updated(country_code=code, region_code=None, page=1)
        self._to_server_paging()
        self._regions = []
        if self._preferences is not None:
            self._preferences.save_country_code(code)
        await asyncio.gather(self._load_regions(code), self._load_list())

    async def set_country_by_name(self, name: str):
        code = country_code_for(name)
        if code is None:
            raise InvalidFilterState(f"Unknown country: {name}")
        await self.set_country(code)

    async def set_region(self, region_code: str):
        """Scope the list to one region of the selected country."""
        if not self._query.country_code:
            raise InvalidFilterState("Select a country before choosing a region")
        region_code = (region_code or "").strip()
        if not region_code:
            raise InvalidFilterState("Region code must not be empty")
        if self._query.near_location is not None:
            # the region endpoint has no location parameters
            raise InvalidFilterState("Clear the location filter before choosing a region")
        self._query = self._updated(region_code=region_code, page=1)
        await self._load_region_cities()

    async def set_population_range(self, min_population: int, max_population: int):
        """Apply population bounds, locally when the held page allows it."""
        if min_population < 0 or max_population < 0:
            raise InvalidFilterState("Population bounds must not be negative")
        if max_population and min_population > max_population:
            raise InvalidFilterState("Minimum population exceeds maximum population")
        self._query = self._updated(
            min_population=min_population, max_population=max_population, page=1
        )
        if self._preferences is not None:
            self._preferences.save_min_population(min_population)

        if self._query.region_code:
            await self._load_region_cities()
        elif self._held_set_covers(min_population, max_population):
            self._filter_held_set(min_population, max_population)
        else:
            await self._load_list()

    async def set_near_location(
        self,
        latitude: float | None,
        longitude: float | None,
        radius: float | None = None,
    ):
        if latitude is None and longitude is None:
            location = None
        elif latitude is None or longitude is None:
            raise InvalidFilterState("Latitude and longitude must be given together")
        else:
            try:
                location = NearLocation(
                    latitude=latitude, longitude=longitude, radius=radius or 100
                )
            except ValidationError as exc:
                raise InvalidFilterState(str(exc)) from exc
            if self._query.region_code:
                raise InvalidFilterState(
                    "A location filter cannot be combined with a region"
                )
        self._query = self._updated(near_location=location, page=1)
        await self._requery()

    async def reset_filters(self):
        """Drop region and population scoping and show the unscoped list."""
        self._query = self._updated(
            region_code=None, min_population=0, max_population=0, page=1
        )
        self._to_server_paging()
        if self._preferences is not None:
            self._preferences.save_min_population(0)
        await self._load_list()

    async def change_page(self, page: int):
        """Move to another page, locally when the list is held in memory."""
        if page < 1:
            raise InvalidFilterState("Pages start at 1")
        if isinstance(self._source, LocallyPaged):
            total_pages = compute_total_pages(self._source, self._query.page_size)
            self._local_page = clamp_page(page, total_pages)
            return
        self._query = self._updated(page=page)
        await self._load_list()

    async def refresh(self):
        """Re-issue the current query, bypassing the page cache."""
        await self._requery(use_cache=False)

    async def select_city(self, city_id: str) -> SelectionView:
        """Fetch detail and nearby cities for one city, outside the list stream."""
        ticket = self._sequencer.issue(SELECTION_STREAM)
        self._selection = SelectionView(city_id=city_id, loading=True)
        detail, nearby = await asyncio.gather(
            self._catalog.execute(None, endpoints.city_detail(city_id)),
            self._catalog.execute(NearbyQuery(), endpoints.nearby_cities(city_id)),
        )
        if not self._sequencer.accept(ticket):
            return self._selection

        if isinstance(nearby, Failure):
            logger.warning(
                "NEARBY_LOAD_FAILED", city_id=city_id, error_kind=nearby.error_kind.value
            )
            nearby_cities = []
        else:
            nearby_cities = list(nearby.data)

        if isinstance(detail, Failure):
            self._selection = SelectionView(
                city_id=city_id, nearby=nearby_cities, error=user_message(detail)
            )
        else:
            self._selection = SelectionView(
                city_id=city_id, detail=detail.data[0], nearby=nearby_cities
            )
        return self._selection

    def clear_selection(self):
        self._sequencer.invalidate(SELECTION_STREAM)
        self._selection = None

    # internals

    def _updated(self, **changes) -> QueryState:
        try:
            return QueryState.model_validate({**self._query.model_dump(), **changes})
        except ValidationError as exc:
            raise InvalidFilterState(str(exc)) from exc

    def _to_server_paging(self):
        self._source = ServerPaged(total_count=self._server_total)
        self._local_page = 1

    async def _search_settled(self, search_term: str):
        logger.info("SEARCH_SETTLED", search_term=search_term)
        await self._requery()

    async def _requery(self, use_cache: bool = True):
        if self._query.region_code:
            await self._load_region_cities()
        else:
            await self._load_list(use_cache=use_cache)

    async def _load_list(self, use_cache: bool = True):
        remote = compose(self._query)
        ticket = self._sequencer.issue(LIST_STREAM)
        cached = self._page_cache.get(remote) if use_cache else None
        if cached is not None:
            self._page_cache.move_to_end(remote)
            logger.info("PAGE_CACHE_HIT", page=self._query.page)
            self._apply_server_page(remote, cached)
            return

        self._begin_loading()
        result = await self._catalog.execute(remote, endpoints.cities())
        if not self._sequencer.accept(ticket):
            return
        if isinstance(result, Failure):
            self._fail(result)
            return
        self._remember(remote, result)
        self._apply_server_page(remote, result)

    async def _load_region_cities(self):
        remote = compose(self._query, limit=self.region_result_limit, page=1)
        ticket = self._sequencer.issue(LIST_STREAM)
        self._begin_loading()
        result = await self._catalog.execute(
            remote,
            endpoints.region_cities(self._query.country_code, self._query.region_code),
        )
        if not self._sequencer.accept(ticket):
            return
        if isinstance(result, Failure):
            self._fail(result)
            return
        self._source = LocallyPaged(items=tuple(result.data))
        self._local_page = 1
        self._ready()

    async def _load_regions(self, country_code: str | None):
        ticket = self._sequencer.issue(REGIONS_STREAM)
        if country_code is None:
            self._regions = []
            return
        result = await self._catalog.execute(RegionQuery(), endpoints.regions(country_code))
        if not self._sequencer.accept(ticket):
            return
        if isinstance(result, Failure):
            logger.warning(
                "REGIONS_LOAD_FAILED",
                country=country_code,
                error_kind=result.error_kind.value,
            )
            self._regions = []
            return
        self._regions = list(result.data)

    def _held_set_covers(self, min_population: int, max_population: int) -> bool:
        """True when the held page already contains every city the new bounds admit."""
        if self._held_query is None or self._status is not StoreStatus.ready:
            return False
        if not self._held_page_matches_query():
            return False
        held_min = self._held_query.min_population or 0
        held_max = self._held_query.max_population or 0
        if min_population < held_min:
            return False
        if held_max and (max_population == 0 or max_population > held_max):
            return False
        return True

    def _held_page_matches_query(self) -> bool:
        """Whether the held page was fetched for every filter but population and page."""
        ignored = {"min_population", "max_population", "offset"}
        current = compose(self._query).model_dump(exclude=ignored)
        return current == self._held_query.model_dump(exclude=ignored)

    def _filter_held_set(self, min_population: int, max_population: int):
        held_min = self._held_query.min_population or 0
        held_max = self._held_query.max_population or 0
        if (min_population, max_population) == (held_min, held_max):
            # back on the held server page, which need not be page 1
            held_page = self._held_query.offset // self._held_query.limit + 1
            self._query = self._updated(page=held_page)
            self._to_server_paging()
        else:
            self._source = LocallyPaged(
                items=filter_by_population(self._cities, min_population, max_population)
            )
            self._local_page = 1
        logger.info(
            "POPULATION_FILTERED_LOCALLY",
            min_population=min_population,
            max_population=max_population,
            held=len(self._cities),
        )
        self._ready()

    def _remember(self, remote: RemoteQuery, result: Success):
        self._page_cache[remote] = result
        self._page_cache.move_to_end(remote)
        while len(self._page_cache) > PAGE_CACHE_SIZE:
            self._page_cache.popitem(last=False)

    def _apply_server_page(self, remote: RemoteQuery, result: Success):
        self._cities = list(result.data)
        self._held_query = remote
        self._server_total = result.total_count
        self._source = ServerPaged(total_count=result.total_count)
        self._local_page = 1
        self._ready()

    def _begin_loading(self):
        self._status = StoreStatus.loading
        self._error = None

    def _ready(self):
        self._status = StoreStatus.ready
        self._error = None

    def _fail(self, failure: Failure):
        logger.error(
            "LIST_LOAD_FAILED",
            error_kind=failure.error_kind.value,
            message=failure.message,
        )
        self._status = StoreStatus.errored
        self._error = user_message(failure)
