"""User intents accepted by the store, as one tagged union."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class IntentModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class SearchIntent(IntentModel):
    kind: Literal["search"] = "search"
    text: str = ""


class CountryIntent(IntentModel):
    """Select a country by code or display name; neither clears it."""

    kind: Literal["country"] = "country"
    country_code: str | None = None
    country_name: str | None = None


class RegionIntent(IntentModel):
    kind: Literal["region"] = "region"
    region_code: str


class PopulationIntent(IntentModel):
    kind: Literal["population"] = "population"
    min_population: int = Field(default=0, ge=0)
    max_population: int = Field(default=0, ge=0)


class LocationIntent(IntentModel):
    """Search around a point; all fields None clears the location filter."""

    kind: Literal["location"] = "location"
    latitude: float | None = None
    longitude: float | None = None
    radius: float | None = None


class ResetIntent(IntentModel):
    kind: Literal["reset"] = "reset"


class PageIntent(IntentModel):
    kind: Literal["page"] = "page"
    page: int = Field(ge=1)


class SelectCityIntent(IntentModel):
    kind: Literal["select_city"] = "select_city"
    city_id: str


class RefreshIntent(IntentModel):
    kind: Literal["refresh"] = "refresh"


Intent = Annotated[
    Union[
        SearchIntent,
        CountryIntent,
        RegionIntent,
        PopulationIntent,
        LocationIntent,
        ResetIntent,
        PageIntent,
        SelectCityIntent,
        RefreshIntent,
    ],
    Field(discriminator="kind"),
]

intent_adapter = TypeAdapter(Intent)
