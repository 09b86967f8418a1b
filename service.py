import asyncio
import re
from typing import Any, List, Optional
from sqlalchemy import or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from database import async_session
from errors import NotFoundError, StoreError, ValidationError
from logger import get_logger
from models import City, Country, State
from schemas import (
    CityResponse,
    CitySearchResult,
    CountryCityResponse,
    CountryResponse,
    Page,
    SearchBuckets,
    SearchResponse,
    StateResponse,
    StateSearchResult,
)

logger = get_logger(__name__)

COUNTRY_PAGE_SIZE = 50
CHILD_PAGE_SIZE = 100
SEARCH_PAGE_SIZE = 20
MIN_SEARCH_LENGTH = 2
SEARCH_TYPES = ("all", "countries", "states", "cities")

_DIGITS = re.compile(r"^\d+$", re.ASCII)
# largest value an SQLite INTEGER column can hold
MAX_ROW_ID = 2 ** 63 - 1
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)", re.ASCII)


def parse_int(value: Any, default: int) -> int:
    """Leading-integer parse of a query-string value, falling back to ``default``.

    ``"10"`` and ``"10abc"`` both give 10; ``None``, ``""`` and ``"abc"`` give
    the default. No bounds are applied.
    """
    if value is None:
        return default
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else default


def is_numeric_key(key: str) -> bool:
    return bool(_DIGITS.match(key))


def row_id(key: str) -> Optional[int]:
    """Integer id for an all-digit key, or None when it cannot name any stored row."""
    if not is_numeric_key(key):
        return None
    value = int(key)
    return value if value <= MAX_ROW_ID else None


def country_key_clause(key: str):
    """Match a country by id, iso2 or iso3 at once."""
    code = key.upper()
    clauses = [Country.iso2 == code, Country.iso3 == code]
    key_id = row_id(key)
    if key_id is not None:
        clauses.insert(0, Country.id == key_id)
    return or_(*clauses)


class GeoService:
    """Read-only queries over the countries/states/cities tables.

    Every call opens a session from ``session_factory`` and closes it before
    returning, so one instance can be shared by all requests.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _fetch(self, stmt) -> list:
        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                return result.all()
            except SQLAlchemyError as e:
                msg = str(getattr(e, "orig", None) or e)
                logger.error(f"Query failed: {msg}")
                raise StoreError(msg) from e

    @staticmethod
    def _page(model, rows: list, limit: int, offset: int) -> Page:
        # total is the size of this page, not the number of matching rows
        return Page[model](data=rows, total=len(rows), limit=limit, offset=offset)

    async def ping(self) -> bool:
        await self._fetch(text("SELECT 1"))
        return True

    async def list_countries(self, search: Optional[str] = None, limit: Any = None, offset: Any = None) -> Page:
        limit = parse_int(limit, COUNTRY_PAGE_SIZE)
        offset = parse_int(offset, 0)
        stmt = select(Country)
        if search:
            stmt = stmt.where(or_(
                Country.name.icontains(search, autoescape=True),
                Country.native.icontains(search, autoescape=True),
            ))
        stmt = stmt.order_by(Country.name).limit(limit).offset(offset)
        rows = await self._fetch(stmt)
        return self._page(CountryResponse, [CountryResponse.model_validate(r[0]) for r in rows], limit, offset)

    async def get_country(self, key: str) -> CountryResponse:
        if is_numeric_key(key):
            key_id = row_id(key)
            if key_id is None:
                raise NotFoundError("Country not found")
            stmt = select(Country).where(Country.id == key_id)
        else:
            code = key.upper()
            stmt = select(Country).where(or_(Country.iso2 == code, Country.iso3 == code))
        rows = await self._fetch(stmt.limit(1))
        if not rows:
            raise NotFoundError("Country not found")
        return CountryResponse.model_validate(rows[0][0])

    async def list_states(self, country_key: str, search: Optional[str] = None, limit: Any = None, offset: Any = None) -> Page:
        limit = parse_int(limit, CHILD_PAGE_SIZE)
        offset = parse_int(offset, 0)
        stmt = (
            select(State)
            .join(Country, State.country_id == Country.id)
            .where(country_key_clause(country_key))
        )
        if search:
            stmt = stmt.where(State.name.icontains(search, autoescape=True))
        stmt = stmt.order_by(State.name).limit(limit).offset(offset)
        rows = await self._fetch(stmt)
        return self._page(StateResponse, [StateResponse.model_validate(r[0]) for r in rows], limit, offset)

    async def list_state_cities(self, state_id: str, search: Optional[str] = None, limit: Any = None, offset: Any = None) -> Page:
        limit = parse_int(limit, CHILD_PAGE_SIZE)
        offset = parse_int(offset, 0)
        key_id = row_id(state_id)
        if key_id is None:
            return self._page(CityResponse, [], limit, offset)
        stmt = select(City).where(City.state_id == key_id)
        if search:
            stmt = stmt.where(City.name.icontains(search, autoescape=True))
        stmt = stmt.order_by(City.name).limit(limit).offset(offset)
        rows = await self._fetch(stmt)
        return self._page(CityResponse, [CityResponse.model_validate(r[0]) for r in rows], limit, offset)

    async def list_country_cities(self, country_key: str, search: Optional[str] = None, limit: Any = None, offset: Any = None) -> Page:
        limit = parse_int(limit, CHILD_PAGE_SIZE)
        offset = parse_int(offset, 0)
        stmt = (
            select(City, State.name.label("state_name"), State.iso2.label("state_iso2"))
            .join(State, City.state_id == State.id)
            .join(Country, State.country_id == Country.id)
            .where(country_key_clause(country_key))
        )
        if search:
            stmt = stmt.where(City.name.icontains(search, autoescape=True))
        stmt = stmt.order_by(City.name).limit(limit).offset(offset)
        rows = await self._fetch(stmt)
        data = [
            CountryCityResponse(
                **CityResponse.model_validate(city).model_dump(),
                state_name=state_name,
                state_iso2=state_iso2,
            )
            for city, state_name, state_iso2 in rows
        ]
        return self._page(CountryCityResponse, data, limit, offset)

    async def _search_countries(self, q: str, limit: int) -> List[CountryResponse]:
        stmt = (
            select(Country)
            .where(or_(
                Country.name.icontains(q, autoescape=True),
                Country.native.icontains(q, autoescape=True),
            ))
            .order_by(Country.name)
            .limit(limit)
        )
        return [CountryResponse.model_validate(r[0]) for r in await self._fetch(stmt)]

    async def _search_states(self, q: str, limit: int) -> List[StateSearchResult]:
        stmt = (
            select(State, Country.name.label("country_name"), Country.iso2.label("country_iso2"))
            .join(Country, State.country_id == Country.id)
            .where(State.name.icontains(q, autoescape=True))
            .order_by(State.name)
            .limit(limit)
        )
        return [
            StateSearchResult(
                **StateResponse.model_validate(state).model_dump(),
                country_name=country_name,
                country_iso2=country_iso2,
            )
            for state, country_name, country_iso2 in await self._fetch(stmt)
        ]

    async def _search_cities(self, q: str, limit: int) -> List[CitySearchResult]:
        stmt = (
            select(City, State.name.label("state_name"), Country.name.label("country_name"))
            .join(State, City.state_id == State.id)
            .join(Country, State.country_id == Country.id)
            .where(City.name.icontains(q, autoescape=True))
            .order_by(City.name)
            .limit(limit)
        )
        return [
            CitySearchResult(
                **CityResponse.model_validate(city).model_dump(),
                state_name=state_name,
                country_name=country_name,
            )
            for city, state_name, country_name in await self._fetch(stmt)
        ]

    async def search(self, q: Optional[str], type: Optional[str] = "all", limit: Any = None) -> SearchResponse:
        """Run the country, state and city name searches selected by ``type``.

        Each bucket is capped at ``limit`` on its own. The selected sub-queries
        run concurrently on separate sessions and the response is built once
        all of them have finished; the first failure is then raised.
        """
        if not q or len(q) < MIN_SEARCH_LENGTH:
            raise ValidationError(f"Query must be at least {MIN_SEARCH_LENGTH} characters long")
        type = type or "all"
        limit = parse_int(limit, SEARCH_PAGE_SIZE)

        lookups = {
            "countries": self._search_countries,
            "states": self._search_states,
            "cities": self._search_cities,
        }
        selected = [name for name in lookups if type in ("all", name)]
        if type not in SEARCH_TYPES:
            logger.info(f"Search type {type!r} selects no entity; returning empty results")

        found = await asyncio.gather(*(lookups[name](q, limit) for name in selected), return_exceptions=True)
        for outcome in found:
            if isinstance(outcome, BaseException):
                raise outcome
        results = SearchBuckets(**dict(zip(selected, found)))
        total = len(results.countries) + len(results.states) + len(results.cities)
        return SearchResponse(query=q, results=results, total=total)


geo_service = GeoService(async_session)


def get_geo_service() -> GeoService:
    return geo_service
