"""Page arithmetic over either pagination source."""

import math
from typing import Sequence

from city_explorer.models.view import LocallyPaged, PageSource


def compute_total_pages(source: PageSource, page_size: int) -> int:
    """Return the number of pages for the active pagination source.

    Args:
        source: Server-reported total or the locally held items.
        page_size: Fixed number of cities per page.

    Returns:
        Page count, never less than 1.
    """
    if isinstance(source, LocallyPaged):
        count = len(source.items)
    else:
        count = source.total_count
    return max(1, math.ceil(count / page_size))


def page_offset(page: int, page_size: int) -> int:
    """Map a 1-based page to the catalog offset."""
    return (page - 1) * page_size


def clamp_page(page: int, total_pages: int) -> int:
    return min(max(1, page), max(1, total_pages))


def local_page_items(source: LocallyPaged, page: int, page_size: int) -> list:
    """Slice one page out of a locally held set."""
    start = page_offset(clamp_page(page, compute_total_pages(source, page_size)), page_size)
    return list(source.items[start : start + page_size])


def filter_by_population(cities: Sequence, min_population: int, max_population: int) -> tuple:
    """Keep cities within the population bounds; 0 means unbounded."""
    return tuple(
        city
        for city in cities
        if (city.population or 0) >= min_population
        and (max_population == 0 or (city.population or 0) <= max_population)
    )
