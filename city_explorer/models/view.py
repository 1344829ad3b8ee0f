"""Render-ready projections of the store state."""

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from city_explorer.models.city import City, CityDetail, Region
from city_explorer.models.query import QueryState


class ServerPaged(BaseModel):
    """The catalog paginates; the total count comes from its metadata."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["server"] = "server"
    total_count: int = Field(default=0, ge=0)


class LocallyPaged(BaseModel):
    """The store paginates an in-memory set it already holds."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["local"] = "local"
    items: tuple[City, ...] = ()


PageSource = Union[ServerPaged, LocallyPaged]


class ViewState(BaseModel):
    """Everything the list presentation needs for one render."""

    model_config = ConfigDict(frozen=True)

    cities: list[City]
    loading: bool = False
    error: str | None = None
    page: int = 1
    total_pages: int = 1
    mode: Literal["server", "local"] = "server"
    query: QueryState
    # display name derived from the canonical code at render time
    country_name: str | None = None
    regions: list[Region] = []

    @model_validator(mode="after")
    def _loading_excludes_error(self) -> "ViewState":
        if self.loading and self.error:
            raise ValueError("a view cannot be loading and errored at once")
        return self


class SelectionView(BaseModel):
    """Detail and nearby cities for the city the user opened."""

    model_config = ConfigDict(frozen=True)

    city_id: str
    detail: CityDetail | None = None
    nearby: list[CityDetail] = []
    loading: bool = False
    error: str | None = None
