from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


# Source records: the shape of countries+states+cities.json

class SourceRecord(BaseModel):
    # Older dataset releases carry some codes as numbers; store them as text.
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class CitySource(SourceRecord):
    id: int
    name: str
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    timezone: Optional[str] = None


class StateSource(SourceRecord):
    id: int
    name: str
    iso2: Optional[str] = None
    iso3166_2: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    type: Optional[str] = None
    timezone: Optional[str] = None
    cities: List[CitySource] = Field(default_factory=list)

    @field_validator("cities", mode="before")
    def null_cities_as_empty(cls, value):
        return [] if value is None else value


class CountrySource(SourceRecord):
    id: int
    name: str
    iso3: Optional[str] = None
    iso2: Optional[str] = None
    numeric_code: Optional[str] = None
    phonecode: Optional[str] = None
    capital: Optional[str] = None
    currency: Optional[str] = None
    currency_name: Optional[str] = None
    currency_symbol: Optional[str] = None
    tld: Optional[str] = None
    native: Optional[str] = None
    region: Optional[str] = None
    subregion: Optional[str] = None
    nationality: Optional[str] = None
    emoji: Optional[str] = None
    emojiU: Optional[str] = None
    states: List[StateSource] = Field(default_factory=list)

    @field_validator("states", mode="before")
    def null_states_as_empty(cls, value):
        return [] if value is None else value


# API responses

class CountryResponse(BaseModel):
    id: int
    name: str = Field(..., example="Brazil")
    iso3: Optional[str] = Field(None, example="BRA")
    iso2: Optional[str] = Field(None, example="BR")
    numeric_code: Optional[str] = Field(None, example="076")
    phonecode: Optional[str] = Field(None, example="55")
    capital: Optional[str] = Field(None, example="Brasilia")
    currency: Optional[str] = Field(None, example="BRL")
    currency_name: Optional[str] = None
    currency_symbol: Optional[str] = None
    tld: Optional[str] = None
    native: Optional[str] = Field(None, example="Brasil")
    region: Optional[str] = None
    subregion: Optional[str] = None
    nationality: Optional[str] = None
    emoji: Optional[str] = None
    emojiU: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class StateResponse(BaseModel):
    id: int
    country_id: int
    name: str = Field(..., example="Sao Paulo")
    iso2: Optional[str] = Field(None, example="SP")
    iso3166_2: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    type: Optional[str] = Field(None, example="state")
    timezone: Optional[str] = None
    model_config = {"from_attributes": True}


class CityResponse(BaseModel):
    id: int
    state_id: int
    name: str
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    timezone: Optional[str] = None
    model_config = {"from_attributes": True}


class CountryCityResponse(CityResponse):
    """A city listed under a country, tagged with the state it sits in."""
    state_name: str
    state_iso2: Optional[str] = None


class StateSearchResult(StateResponse):
    country_name: str
    country_iso2: Optional[str] = None


class CitySearchResult(CityResponse):
    state_name: str
    country_name: str


class Page(BaseModel, Generic[T]):
    data: List[T]
    total: int = Field(..., description="Number of rows in this page")
    limit: int
    offset: int


class SearchBuckets(BaseModel):
    countries: List[CountryResponse] = Field(default_factory=list)
    states: List[StateSearchResult] = Field(default_factory=list)
    cities: List[CitySearchResult] = Field(default_factory=list)


class SearchResponse(BaseModel):
    query: str
    results: SearchBuckets
    total: int


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str
    version: str
    database: str


class ErrorResponse(BaseModel):
    error: str
