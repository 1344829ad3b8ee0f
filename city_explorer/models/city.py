"""City, city detail and region models for catalog results."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CatalogModel(BaseModel):
    """Immutable value object parsed from the camelCase catalog payload."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class City(CatalogModel):
    """City information returned by the catalog list endpoints."""

    id: str
    name: str
    region: str | None = None
    region_code: str | None = None
    country: str | None = None
    country_code: str | None = None
    population: int | None = Field(default=None, ge=0)
    latitude: float
    longitude: float

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value):
        # the catalog reports numeric ids; they are opaque to us
        return str(value) if isinstance(value, int) else value


class CityDetail(City):
    """City plus the fields only the detail and nearby endpoints return."""

    elevation_meters: float | None = None
    timezone: str | None = None
    external_reference_id: str | None = Field(default=None, alias="wikiDataId")
    type: str | None = None
    distance: float | None = None


class Region(CatalogModel):
    """Region of a country, keyed by its region code."""

    id: str = Field(validation_alias=AliasChoices("isoCode", "id"))
    name: str
    country_code: str | None = None
