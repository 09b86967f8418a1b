import os
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from middleware import add_request_id_and_process_time
from database import DATABASE_URL, engine, ensure_schema
from errors import GeoError
from logger import get_logger
from routers import API_VERSION, router

logger = get_logger(__name__)

load_dotenv()

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:8080",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3001",
    "http://127.0.0.1:8080",
]
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()] or DEFAULT_ORIGINS


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Ensuring database schema at {DATABASE_URL}...")
    await ensure_schema(engine)
    yield
    await engine.dispose()
    logger.info("Application shutdown complete.")
app = FastAPI(lifespan=lifespan, title="Countries, States & Cities API", version=API_VERSION)

app.middleware('http')(add_request_id_and_process_time)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Accept", "Origin"],
)


@app.exception_handler(GeoError)
async def geo_error_handler(request: Request, exc: GeoError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
def root():
    logger.info("Root endpoint called")
    return {
        "name": "Countries, States & Cities API",
        "version": API_VERSION,
        "description": "Read-only lookup of countries, states and cities",
        "endpoints": {
            "GET /api/countries": "List countries (search, limit, offset)",
            "GET /api/countries/:id": "Get a country by id, ISO2 or ISO3 code",
            "GET /api/countries/:id/states": "List the states of a country",
            "GET /api/countries/:id/cities": "List the cities of a country",
            "GET /api/states/:id/cities": "List the cities of a state",
            "GET /api/search?q=term": "Search countries, states and cities by name (type, limit)",
            "GET /api/health": "API status",
        },
        "examples": {
            "List countries": "/api/countries?search=Brazil&limit=10",
            "Get country": "/api/countries/BR or /api/countries/31",
            "States of Brazil": "/api/countries/BR/states",
            "Cities of a state": "/api/states/2021/cities",
            "Search cities": "/api/search?q=Sao Paulo&type=cities",
        },
    }

app.include_router(router)
