"""Catalog endpoints and the payload model each one returns."""

from dataclasses import dataclass
from urllib.parse import quote

from city_explorer.models.city import CatalogModel, City, CityDetail, Region


@dataclass(frozen=True)
class Endpoint:
    """Path of a catalog endpoint and how to parse its envelope."""

    name: str
    path: str
    model: type[CatalogModel]
    single: bool = False
    # parameters the endpoint expresses in its path or does not accept
    omitted_params: frozenset[str] = frozenset()


def cities() -> Endpoint:
    return Endpoint(name="cities", path="/cities", model=City)


def city_detail(city_id: str) -> Endpoint:
    return Endpoint(
        name="city_detail",
        path=f"/cities/{quote(str(city_id), safe='')}",
        model=CityDetail,
        single=True,
    )


def nearby_cities(city_id: str) -> Endpoint:
    return Endpoint(
        name="nearby_cities",
        path=f"/cities/{quote(str(city_id), safe='')}/nearbyCities",
        model=CityDetail,
    )


def regions(country_code: str) -> Endpoint:
    return Endpoint(
        name="regions",
        path=f"/countries/{quote(country_code.upper(), safe='')}/regions",
        model=Region,
    )


def region_cities(country_code: str, region_code: str) -> Endpoint:
    """Cities of one region; country and region travel in the path."""
    return Endpoint(
        name="region_cities",
        path=(
            f"/countries/{quote(country_code.upper(), safe='')}"
            f"/regions/{quote(region_code, safe='')}/cities"
        ),
        model=City,
        omitted_params=frozenset(
            {"countryIds", "regionIds", "types", "location", "radius"}
        ),
    )
