"""Build the SQLite database from the countries+states+cities JSON dataset.

The source is a JSON array of countries, each optionally embedding ``states``,
each optionally embedding ``cities``. The whole tree is validated, flattened
into one row list per table and inserted inside a single transaction into a
scratch file next to the target. Only a fully built and verified file replaces
the target path, so a failed build never leaves a usable partial database.

Run with ``geo-build-db`` or ``python loader.py``.
"""
import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import pydantic
from dotenv import load_dotenv
from pydantic import BaseModel, TypeAdapter
from sqlalchemy import func, insert, select
from sqlalchemy.exc import SQLAlchemyError

from database import DATABASE_PATH, build_schema, make_engine, sqlite_url
from errors import LoadError
from logger import get_logger
from models import City, Country, State
from schemas import CountrySource

logger = get_logger(__name__)

load_dotenv()

SOURCE_JSON_PATH = os.getenv("SOURCE_JSON_PATH", "./countries+states+cities.json")
LOAD_BATCH_SIZE = int(os.getenv("LOAD_BATCH_SIZE", "5000"))
PROGRESS_EVERY = 50

Rows = List[Dict]


class LoadReport(BaseModel):
    path: str
    countries: int
    states: int
    cities: int
    size_bytes: int

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)


def read_source(path) -> List[CountrySource]:
    """Parse and validate the dataset, raising LoadError on any problem."""
    path = Path(path)
    if not path.is_file():
        raise LoadError(f"Source file not found: {path}")
    logger.info(f"Reading {path}...")
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise LoadError(f"Source file is not valid JSON: {e}") from e
    except OSError as e:
        raise LoadError(f"Could not read source file: {e}") from e

    if not isinstance(raw, list):
        raise LoadError(f"Source root must be a JSON array of countries, got {type(raw).__name__}")
    try:
        return TypeAdapter(List[CountrySource]).validate_python(raw)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"])
        raise LoadError(f"Invalid source record at {where}: {first['msg']} ({e.error_count()} error(s))") from e


def flatten(countries: List[CountrySource]) -> Tuple[Rows, Rows, Rows]:
    """Walk the tree once, returning country, state and city rows with parent ids set."""
    country_rows, state_rows, city_rows = [], [], []
    for index, country in enumerate(countries):
        if index % PROGRESS_EVERY == 0:
            logger.info(f"Processing country {index + 1}/{len(countries)}...")
        country_rows.append(country.model_dump(exclude={"states"}))
        for state in country.states:
            state_rows.append({**state.model_dump(exclude={"cities"}), "country_id": country.id})
            for city in state.cities:
                city_rows.append({**city.model_dump(), "state_id": state.id})
    return country_rows, state_rows, city_rows


def split_batches(rows: Iterable, batch_size: int) -> Iterator[list]:
    """Yield ``rows`` in lists of at most ``batch_size`` items."""
    batch = []
    for row in rows:
        batch.append(row)
        if len(batch) == batch_size:
            yield batch
            batch = []
    if batch:
        yield batch


async def _count(conn, model) -> int:
    result = await conn.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def _populate(db_path: Path, rows: Tuple[Rows, Rows, Rows], batch_size: int) -> Dict[str, int]:
    engine = make_engine(sqlite_url(db_path))
    try:
        await build_schema(engine)
        logger.info("Inserting rows...")
        # countries before states before cities so every foreign key resolves
        async with engine.begin() as conn:
            for model, table_rows in zip((Country, State, City), rows):
                for batch in split_batches(table_rows, batch_size):
                    await conn.execute(insert(model), batch)
        async with engine.connect() as conn:
            return {
                "countries": await _count(conn, Country),
                "states": await _count(conn, State),
                "cities": await _count(conn, City),
            }
    finally:
        await engine.dispose()


async def build_database(source_path=SOURCE_JSON_PATH, db_path=DATABASE_PATH, batch_size: int = LOAD_BATCH_SIZE) -> LoadReport:
    """Rebuild ``db_path`` from ``source_path``.

    Raises:
        LoadError: the source is missing or malformed, an insert failed, or
            the inserted row counts differ from the counts found in the source.
            The file at ``db_path`` is left untouched in that case.
    """
    if batch_size < 1:
        raise LoadError(f"Batch size must be positive, got {batch_size}")
    db_path = Path(db_path)
    countries = read_source(source_path)
    rows = flatten(countries)
    expected = dict(zip(("countries", "states", "cities"), (len(r) for r in rows)))
    logger.info(
        f"Found {expected['countries']} countries, {expected['states']} states, {expected['cities']} cities"
    )

    db_path.parent.mkdir(parents=True, exist_ok=True)
    scratch = db_path.with_name(db_path.name + ".building")
    if scratch.exists():
        scratch.unlink()

    try:
        inserted = await _populate(scratch, rows, batch_size)
    except SQLAlchemyError as e:
        scratch.unlink(missing_ok=True)
        logger.exception("Database build failed; discarding scratch file.")
        raise LoadError(f"Insert failed: {getattr(e, 'orig', None) or e}") from e
    except BaseException:
        scratch.unlink(missing_ok=True)
        raise

    if inserted != expected:
        scratch.unlink(missing_ok=True)
        raise LoadError(f"Row counts do not match the source: inserted {inserted}, expected {expected}")

    os.replace(scratch, db_path)
    report = LoadReport(path=str(db_path), size_bytes=db_path.stat().st_size, **inserted)
    logger.info(
        f"Inserted {report.countries} countries, {report.states} states, {report.cities} cities"
    )
    logger.info(f"Database size: {report.size_mb} MB at {db_path}")
    return report


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Build the geo reference database from the JSON dataset.")
    parser.add_argument("--source", default=SOURCE_JSON_PATH, help="countries+states+cities JSON file")
    parser.add_argument("--db", default=DATABASE_PATH, help="SQLite database file to (re)build")
    parser.add_argument("--batch-size", type=int, default=LOAD_BATCH_SIZE, help="rows per executemany batch")
    args = parser.parse_args(argv)

    try:
        asyncio.run(build_database(args.source, args.db, args.batch_size))
    except LoadError as e:
        logger.error(f"Build aborted: {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
