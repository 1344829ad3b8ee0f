"""Pure translation of QueryState into catalog query parameters."""

from city_explorer.models.query import DEFAULT_SORT, QueryState, RemoteQuery
from city_explorer.store.pagination import page_offset

CITY_TYPE = "CITY"


def normalize_search_term(text: str) -> str | None:
    """Trim free-text search; the catalog prefix-matches case-insensitively.

    Args:
        text: Raw search box content.

    Returns:
        The trimmed term, or None when nothing is left.
    """
    term = (text or "").strip()
    return term or None


def compose(
    query: QueryState,
    *,
    sort: str | None = None,
    limit: int | None = None,
    page: int | None = None,
) -> RemoteQuery:
    """Compose the catalog list query for the given state.

    Args:
        query: Current filter and pagination state.
        sort: Sort override; defaults to descending population.
        limit: Result size override; defaults to the page size.
        page: Page override; defaults to the state's page.

    Returns:
        A RemoteQuery ready to be sent by the fetch executor.
    """
    page_size = limit or query.page_size
    country = query.country_code.upper() if query.country_code else None
    location = radius = None
    if query.near_location is not None:
        location = f"{query.near_location.latitude},{query.near_location.longitude}"
        radius = query.near_location.radius
    return RemoteQuery(
        name_prefix=normalize_search_term(query.search_term),
        country_ids=country,
        region_ids=query.region_code if country and query.region_code else None,
        min_population=query.min_population if query.min_population > 0 else None,
        max_population=query.max_population if query.max_population > 0 else None,
        # a country filter alone would also match administrative divisions
        types=(CITY_TYPE,) if country else (),
        location=location,
        radius=radius,
        limit=page_size,
        offset=page_offset(page or query.page, page_size),
        sort=sort or DEFAULT_SORT,
    )
