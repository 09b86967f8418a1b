import os
from datetime import datetime, timezone
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, Query, status
from typing import Optional
from errors import StoreError
from logger import get_logger
from schemas import (
    CityResponse,
    CountryCityResponse,
    CountryResponse,
    ErrorResponse,
    HealthResponse,
    Page,
    SearchResponse,
    StateResponse,
)
from service import GeoService, get_geo_service

logger = get_logger(__name__)
router = APIRouter(prefix="/api")

load_dotenv()

API_VERSION = os.getenv("API_VERSION", "1.0.0")

# limit/offset stay strings so junk values fall back to defaults instead of 422
_limit = Query(None, description="Page size")
_offset = Query(None, description="Rows to skip")
_search = Query(None, description="Case-insensitive substring filter on name")

_errors = {
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


@router.get("/countries", response_model=Page[CountryResponse], tags=["Countries"])
async def list_countries(search: Optional[str] = _search, limit: Optional[str] = _limit, offset: Optional[str] = _offset, service: GeoService = Depends(get_geo_service)):
    return await service.list_countries(search, limit, offset)


@router.get("/countries/{key}", response_model=CountryResponse, responses=_errors, tags=["Countries"])
async def get_country(key: str, service: GeoService = Depends(get_geo_service)):
    return await service.get_country(key)


@router.get("/countries/{key}/states", response_model=Page[StateResponse], tags=["States"])
async def list_country_states(key: str, search: Optional[str] = _search, limit: Optional[str] = _limit, offset: Optional[str] = _offset, service: GeoService = Depends(get_geo_service)):
    return await service.list_states(key, search, limit, offset)


@router.get("/countries/{key}/cities", response_model=Page[CountryCityResponse], tags=["Cities"])
async def list_country_cities(key: str, search: Optional[str] = _search, limit: Optional[str] = _limit, offset: Optional[str] = _offset, service: GeoService = Depends(get_geo_service)):
    return await service.list_country_cities(key, search, limit, offset)


@router.get("/states/{state_id}/cities", response_model=Page[CityResponse], tags=["Cities"])
async def list_state_cities(state_id: str, search: Optional[str] = _search, limit: Optional[str] = _limit, offset: Optional[str] = _offset, service: GeoService = Depends(get_geo_service)):
    return await service.list_state_cities(state_id, search, limit, offset)


@router.get("/search", response_model=SearchResponse, responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}}, tags=["Search"])
async def search(
    q: Optional[str] = Query(None, description="Text to look for, at least 2 characters"),
    type: Optional[str] = Query("all", description="all, countries, states or cities"),
    limit: Optional[str] = Query(None, description="Maximum rows per entity type"),
    service: GeoService = Depends(get_geo_service),
):
    return await service.search(q, type, limit)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(service: GeoService = Depends(get_geo_service)):
    try:
        await service.ping()
        database = "connected"
    except StoreError as e:
        logger.warning(f"Health check could not reach the database: {e.message}")
        database = "unavailable"
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        version=API_VERSION,
        database=database,
    )
