import os
from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

load_dotenv()

# Priority order for DB connection:
# 1. If DATABASE_URL is provided, use it directly (must be an async DB URL)
# 2. Otherwise build an aiosqlite URL from DATABASE_PATH

DATABASE_PATH = os.getenv("DATABASE_PATH", "./database.sqlite")
DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite+aiosqlite:///{DATABASE_PATH}"
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")

# Base class for all models
Base = declarative_base()


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign key enforcement switched on."""
    engine = create_async_engine(url, echo=SQL_ECHO, future=True, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Create the async engine
engine = make_engine(DATABASE_URL)

# Create an async session factory
async_session = make_session_factory(engine)


async def ensure_schema(target: AsyncEngine = engine):
    """Serving mode: create tables and indexes that are not there yet."""
    # models registers the tables on Base.metadata
    import models  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)


async def build_schema(target: AsyncEngine):
    """Build mode: create every table and index unconditionally, failing if any exists."""
    import models  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=False)
