"""
Shared fixtures: a small countries+states+cities dataset, a database built
from it with the loader, a TestClient bound to that database and a helper
that runs GeoService coroutines on a throwaway engine.
"""

import asyncio
import copy
import json
import os
import tempfile
from pathlib import Path

import pytest

# Point the app at a scratch database before any project module is imported.
_TMP = Path(tempfile.mkdtemp(prefix="geoapi-tests-"))
TEST_DB = _TMP / "database.sqlite"
os.environ["DATABASE_PATH"] = str(TEST_DB)
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB}"

from sqlalchemy.pool import NullPool  # noqa: E402

from database import make_engine, make_session_factory, sqlite_url  # noqa: E402
from loader import build_database  # noqa: E402
from service import GeoService  # noqa: E402


SAMPLE = [
    {
        "id": 31,
        "name": "Brazil",
        "iso3": "BRA",
        "iso2": "BR",
        "numeric_code": "076",
        "phonecode": "55",
        "capital": "Brasilia",
        "currency": "BRL",
        "currency_name": "Brazilian real",
        "currency_symbol": "R$",
        "tld": ".br",
        "native": "Brasil",
        "region": "Americas",
        "subregion": "South America",
        "nationality": "Brazilian",
        "emoji": "🇧🇷",
        "emojiU": "U+1F1E7 U+1F1F7",
        "translations": {"pt": "Brasil"},
        "states": [
            {
                "id": 2021,
                "name": "São Paulo",
                "iso2": "SP",
                "iso3166_2": "BR-SP",
                "latitude": "-23.55051990",
                "longitude": "-46.63330940",
                "type": "state",
                "cities": [
                    {"id": 10001, "name": "São Paulo", "latitude": "-23.54750000", "longitude": "-46.63611000", "timezone": "America/Sao_Paulo"},
                    {"id": 10002, "name": "Santos", "latitude": "-23.96083000", "longitude": "-46.33361000"},
                    {"id": 10003, "name": "Campinas", "latitude": "-22.90556000", "longitude": "-47.06083000"},
                    {"id": 10004, "name": "Sorocaba", "latitude": "-23.50167000", "longitude": "-47.45806000"},
                ],
            },
            {
                "id": 2022,
                "name": "Rio de Janeiro",
                "iso2": "RJ",
                "type": "state",
                "cities": [
                    {"id": 10010, "name": "Rio de Janeiro"},
                    {"id": 10011, "name": "Niterói"},
                ],
            },
            {"id": 2023, "name": "Acre", "iso2": "AC", "type": "state"},
        ],
    },
    {
        "id": 233,
        "name": "United States",
        "iso3": "USA",
        "iso2": "US",
        "native": "United States",
        "capital": "Washington",
        "states": [
            {
                "id": 1416,
                "name": "California",
                "iso2": "CA",
                "type": "state",
                "cities": [
                    {"id": 20001, "name": "San Francisco"},
                    {"id": 20002, "name": "Los Angeles"},
                    {"id": 20003, "name": "Sacramento"},
                ],
            },
            {
                "id": 1417,
                "name": "Texas",
                "iso2": "TX",
                "type": "state",
                "cities": [
                    {"id": 20010, "name": "Austin"},
                    {"id": 20011, "name": "San Antonio"},
                ],
            },
        ],
    },
    {
        "id": 82,
        "name": "Germany",
        "iso3": "DEU",
        "iso2": "DE",
        "phonecode": 49,
        "native": "Deutschland",
        "states": [
            {"id": 3001, "name": "Bavaria", "iso2": "BY", "cities": [{"id": 30001, "name": "Munich"}]},
        ],
    },
    {"id": 1, "name": "Afghanistan", "iso3": "AFG", "iso2": "AF"},
    {"id": 187, "name": "Saudi Arabia", "iso3": "SAU", "iso2": "SA", "native": "المملكة العربية السعودية", "states": []},
]

SAMPLE_COUNTS = {"countries": 5, "states": 6, "cities": 12}


def write_json(path: Path, data) -> Path:
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def sample_data():
    return copy.deepcopy(SAMPLE)


@pytest.fixture
def source_file(tmp_path, sample_data) -> Path:
    return write_json(tmp_path / "countries+states+cities.json", sample_data)


@pytest.fixture(scope="session")
def built_db() -> Path:
    source = write_json(_TMP / "countries+states+cities.json", SAMPLE)
    asyncio.run(build_database(source, TEST_DB))
    return TEST_DB


@pytest.fixture(scope="session")
def client(built_db):
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def run_service(built_db):
    """Run ``fn(service)`` to completion against the test database."""

    def _run(fn):
        async def _go():
            engine = make_engine(sqlite_url(built_db), poolclass=NullPool)
            try:
                return await fn(GeoService(make_session_factory(engine)))
            finally:
                await engine.dispose()

        return asyncio.run(_go())

    return _run
