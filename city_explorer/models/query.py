"""Filter/pagination state and the remote query parameters derived from it."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_SORT = "-population"
DEFAULT_PAGE_SIZE = 10


class NearLocation(BaseModel):
    """Center point and radius (km) for a location-bounded search."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius: float | None = Field(default=100, gt=0)


class QueryState(BaseModel):
    """Every user-chosen filter and pagination input."""

    model_config = ConfigDict(frozen=True)

    search_term: str = ""
    min_population: int = Field(default=0, ge=0)
    max_population: int = Field(default=0, ge=0)
    country_code: str | None = None
    region_code: str | None = None
    near_location: NearLocation | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)

    @model_validator(mode="after")
    def _region_needs_country(self) -> "QueryState":
        if self.region_code and not self.country_code:
            raise ValueError("region_code requires country_code")
        return self


class RemoteQuery(BaseModel):
    """Normalized parameters for one catalog list request."""

    model_config = ConfigDict(frozen=True)

    name_prefix: str | None = None
    country_ids: str | None = None
    region_ids: str | None = None
    min_population: int | None = None
    max_population: int | None = None
    types: tuple[str, ...] = ()
    excluded_types: tuple[str, ...] = ()
    location: str | None = None
    radius: float | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    sort: str = DEFAULT_SORT

    def to_params(self) -> dict[str, str]:
        """Render the query as catalog query-string parameters."""
        params = {}
        if self.name_prefix:
            params["namePrefix"] = self.name_prefix
        if self.country_ids:
            params["countryIds"] = self.country_ids
        if self.region_ids:
            params["regionIds"] = self.region_ids
        if self.min_population:
            params["minPopulation"] = str(self.min_population)
        if self.max_population:
            params["maxPopulation"] = str(self.max_population)
        if self.types:
            params["types"] = ",".join(self.types)
        if self.excluded_types:
            params["excludedTypes"] = ",".join(self.excluded_types)
        if self.location:
            params["location"] = self.location
            if self.radius:
                params["radius"] = f"{self.radius:g}"
        params["limit"] = str(self.limit)
        params["offset"] = str(self.offset)
        params["sort"] = self.sort
        return params


class NearbyQuery(BaseModel):
    """Parameters for the nearby-cities endpoint."""

    model_config = ConfigDict(frozen=True)

    radius: int = 100
    limit: int = 10
    offset: int = 0
    min_population: int = 1000

    def to_params(self) -> dict[str, str]:
        return {
            "radius": str(self.radius),
            "limit": str(self.limit),
            "offset": str(self.offset),
            "minPopulation": str(self.min_population),
        }


class RegionQuery(BaseModel):
    """Parameters for listing the regions of a country."""

    model_config = ConfigDict(frozen=True)

    limit: int = 10
    offset: int = 0
    sort: str = "name"
    language_code: str = "en"

    def to_params(self) -> dict[str, str]:
        return {
            "limit": str(self.limit),
            "offset": str(self.offset),
            "sort": self.sort,
            "languageCode": self.language_code,
        }
