"""FastAPI adapter exposing the weather coordinator to UI clients."""

import uuid
from contextlib import asynccontextmanager
from typing import Annotated

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, Histogram, generate_latest

from outfit_weather.core.config import settings
from outfit_weather.core.logging import configure_logging, get_logger
from outfit_weather.core.scheduler import AsyncioScheduler
from outfit_weather.models.weather import CoordinatorState, ErrorResponse, HealthResponse, LocationNameResponse
from outfit_weather.services.cache import WeatherCache
from outfit_weather.services.coordinator import WeatherCoordinator
from outfit_weather.services.errors import WeatherServiceError
from outfit_weather.services.fetch_client import RetryingFetchClient
from outfit_weather.services.geocoding import LocationNameResolver
from outfit_weather.services.storage import create_store

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "outfit_weather_requests_total",
    "Total number of requests",
    ["method", "endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "outfit_weather_request_duration_seconds",
    "Request duration in seconds",
    ["method", "endpoint"],
)

store = create_store()
weather_cache = WeatherCache(store)
fetch_client = RetryingFetchClient()
coordinator = WeatherCoordinator(fetch_client, weather_cache, AsyncioScheduler())
location_names = LocationNameResolver(fetch_client)

Latitude = Annotated[float, Query(ge=-90, le=90, description="Latitude in degrees")]
Longitude = Annotated[float, Query(ge=-180, le=180, description="Longitude in degrees")]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    logger.info("application_starting", version=settings.app_version, cache_backend=settings.cache_backend)

    if settings.default_latitude is not None and settings.default_longitude is not None:
        coordinator.start(settings.default_latitude, settings.default_longitude)
        logger.info(
            "default_location_started",
            latitude=settings.default_latitude,
            longitude=settings.default_longitude,
        )

    logger.info("application_started")

    yield

    logger.info("application_shutting_down")
    coordinator.close()
    await fetch_client.close()
    close_store = getattr(store, "close", None)
    if close_store is not None:
        close_store()
    logger.info("application_stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Weather for the active location with cache-first display, background refresh and offline fallback",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    """Add correlation ID to each request for tracing."""
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id

    return response


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Track request metrics."""
    method = request.method
    path = request.url.path

    with REQUEST_DURATION.labels(method=method, endpoint=path).time():
        response = await call_next(request)

    REQUEST_COUNT.labels(method=method, endpoint=path, status=response.status_code).inc()

    return response


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Combined health check",
    description="Returns overall service health including cache storage reachability",
    tags=["Health"],
)
async def health_check():
    """Combined health check endpoint.

    The service stays usable without storage (caching is best-effort), so an
    unreachable store only degrades the status.
    """
    storage_connected = store.ping()

    logger.info("health_check", storage_connected=storage_connected)

    return HealthResponse(
        status="healthy" if storage_connected else "degraded",
        version=settings.app_version,
        storage_connected=storage_connected,
    )


@app.get(
    "/health/live",
    summary="Liveness probe",
    tags=["Health"],
    status_code=200,
)
async def liveness():
    """Liveness probe."""
    return {"status": "alive"}


@app.get(
    "/weather",
    response_model=CoordinatorState,
    summary="Current weather state",
    description="""Return what the UI should render right now.

    `loading` is set only while nothing can be shown, `refreshing` while cached
    data is shown during a fetch, and `offline` when the shown data came from
    the cache because the last fetch failed. `error` is a plain-language message.
    """,
    tags=["Weather"],
)
async def get_weather():
    """Get the coordinator state."""
    return coordinator.snapshot()


@app.post(
    "/weather/location",
    response_model=CoordinatorState,
    status_code=202,
    summary="Track a location",
    description="Switch to a location. Responds immediately with cached data when available while a fresh fetch runs.",
    tags=["Weather"],
)
async def set_location(lat: Latitude, lon: Longitude):
    """Start tracking coordinates."""
    logger.info("location_requested", latitude=lat, longitude=lon)
    coordinator.start(lat, lon)
    return coordinator.snapshot()


@app.post(
    "/weather/retry",
    response_model=CoordinatorState,
    status_code=202,
    summary="Retry the last fetch",
    tags=["Weather"],
    responses={409: {"model": ErrorResponse, "description": "No location tracked yet"}},
)
async def retry_weather():
    """Fetch again for the tracked location."""
    if coordinator.retry() is None:
        raise HTTPException(status_code=409, detail="No location tracked yet")
    return coordinator.snapshot()


@app.delete(
    "/weather/cache",
    response_model=CoordinatorState,
    status_code=202,
    summary="Clear cached weather",
    description="Delete the cached entry and refetch if a location is tracked.",
    tags=["Weather"],
)
async def clear_weather_cache():
    """Clear the cache."""
    coordinator.clear_cache()
    return coordinator.snapshot()


@app.get(
    "/location-name",
    response_model=LocationNameResponse,
    summary="Reverse geocode coordinates",
    tags=["Location"],
    responses={503: {"model": ErrorResponse, "description": "Geocoding service unavailable"}},
)
async def get_location_name(lat: Latitude, lon: Longitude):
    """Resolve a human readable location name."""
    try:
        name = await location_names.resolve(lat, lon)
    except WeatherServiceError as e:
        logger.error("location_name_failed", latitude=lat, longitude=lon, error=e.technical_message)
        raise HTTPException(status_code=503, detail=e.user_message)
    return LocationNameResponse(latitude=lat, longitude=lon, name=name)


@app.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics",
    tags=["Monitoring"],
)
async def metrics():
    """Prometheus metrics endpoint.

    Includes request counts and durations, fetch attempts and retries, cache
    hits and misses, and corrupt cache entries cleared on read.
    """
    return generate_latest()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": None},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "outfit_weather.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
