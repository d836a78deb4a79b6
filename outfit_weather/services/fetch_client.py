"""Retrying weather fetch client with classified errors."""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from prometheus_client import Counter

from outfit_weather.core.config import settings
from outfit_weather.core.logging import get_logger
from outfit_weather.models.weather import RetryPolicy, Units, WeatherSnapshot
from outfit_weather.services.errors import (
    DataContractError,
    InvalidRequestError,
    NetworkTransportError,
    RateLimitedError,
    UpstreamServerError,
    UpstreamUnavailableError,
    WeatherServiceError,
)
from outfit_weather.services.forecast import parse_snapshot

logger = get_logger(__name__)

T = TypeVar("T")

FETCH_ATTEMPTS = Counter(
    "outfit_weather_fetch_attempts_total",
    "Upstream request attempts",
    ["outcome"],
)
FETCH_RETRIES = Counter("outfit_weather_fetch_retries_total", "Retries scheduled after a transient failure")

CURRENT_FIELDS = "temperature,apparent_temperature,windspeed,is_day,weathercode"
DAILY_FIELDS = "temperature_2m_max,temperature_2m_min,weathercode,precipitation_probability_max,uv_index_max"
HOURLY_FIELDS = "temperature_2m,weathercode,windspeed_10m,precipitation_probability"


def default_policy() -> RetryPolicy:
    """Retry policy from application settings."""
    return RetryPolicy(
        max_retries=settings.retry_max_retries,
        initial_delay_ms=settings.retry_initial_delay_ms,
        backoff_multiplier=settings.retry_backoff_multiplier,
        max_delay_ms=settings.retry_max_delay_ms,
    )


def classify_status(status: int, reason: str = "") -> WeatherServiceError:
    """Map an HTTP error status to a classified error."""
    if status == 400:
        return InvalidRequestError(f"Bad Request: Invalid parameters ({reason})")
    if status == 404:
        return UpstreamUnavailableError(f"Not Found: API endpoint unavailable ({reason})")
    if status == 429:
        return RateLimitedError(f"Too Many Requests: Rate limit exceeded ({reason})")
    if 400 <= status < 500:
        return InvalidRequestError(
            f"Client Error {status}: {reason}",
            user_message="Unable to fetch weather. Please try again.",
        )
    if 500 <= status < 600:
        return UpstreamServerError(f"Server Error {status}: {reason}")
    return NetworkTransportError(f"HTTP {status}: {reason}")


def classify_error(error: BaseException) -> WeatherServiceError:
    """Turn any failure raised by a request into a classified error."""
    if isinstance(error, WeatherServiceError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code, error.response.reason_phrase)
    if isinstance(error, httpx.TransportError):
        return NetworkTransportError(f"Network error: {type(error).__name__}: {error}")
    if isinstance(error, ValueError):
        # Undecodable JSON body
        return DataContractError(f"Invalid API response: {error}")
    return WeatherServiceError(f"Unexpected error: {type(error).__name__}: {error}")


class RetryingFetchClient:
    """Weather API client that retries transient failures with exponential backoff."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize fetch client with optimized connection pooling.

        Args:
            client: HTTP client to use; one is created from settings if omitted
            policy: Default retry policy
            sleep: Coroutine used to wait between attempts, takes seconds
        """
        self.client = client or httpx.AsyncClient(
            timeout=settings.request_timeout,
            limits=httpx.Limits(
                max_keepalive_connections=20,
                max_connections=100,
                keepalive_expiry=30.0,
            ),
        )
        self.policy = policy or default_policy()
        self.sleep = sleep

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def fetch(self, op: Callable[[], Awaitable[T]], policy: RetryPolicy | None = None) -> T:
        """Run ``op`` until it succeeds, fails permanently, or retries run out.

        Args:
            op: Zero-argument coroutine function performing one attempt
            policy: Retry policy, defaults to the client's

        Returns:
            Result of the first successful attempt

        Raises:
            WeatherServiceError: Classified error of the last failed attempt
        """
        policy = policy or self.policy
        attempts = policy.max_retries + 1

        for attempt in range(attempts):
            try:
                result = await op()
            except Exception as e:
                error = classify_error(e)
                FETCH_ATTEMPTS.labels(outcome="failure").inc()

                if not error.is_retryable or attempt >= policy.max_retries:
                    logger.error(
                        "fetch_failed",
                        attempt=attempt + 1,
                        attempts=attempts,
                        error=error.technical_message,
                        retryable=error.is_retryable,
                    )
                    if error is e:
                        raise
                    raise error from e

                delay_ms = policy.delay_ms(attempt + 1)
                logger.warning(
                    "fetch_attempt_failed",
                    attempt=attempt + 1,
                    attempts=attempts,
                    error=error.technical_message,
                    retry_in_ms=delay_ms,
                )
                FETCH_RETRIES.inc()
                await self.sleep(delay_ms / 1000)
                continue

            FETCH_ATTEMPTS.labels(outcome="success").inc()
            if attempt > 0:
                logger.info("fetch_recovered", attempt=attempt + 1, attempts=attempts)
            return result

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        response = await self.client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    async def fetch_weather(
        self,
        latitude: float,
        longitude: float,
        units: Units | None = None,
        policy: RetryPolicy | None = None,
    ) -> WeatherSnapshot:
        """Fetch current conditions and forecast for a location.

        Validation runs inside each attempt, so a malformed body is retried
        like any other transient failure.

        Args:
            latitude: Latitude
            longitude: Longitude
            units: Temperature and wind speed units
            policy: Retry policy override

        Returns:
            Weather snapshot

        Raises:
            WeatherServiceError: If every attempt failed
        """
        units = units or Units(
            temperature_unit=settings.temperature_unit,
            wind_speed_unit=settings.wind_speed_unit,
        )
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": CURRENT_FIELDS,
            "daily": DAILY_FIELDS,
            "hourly": HOURLY_FIELDS,
            "timezone": "auto",
            "temperature_unit": units.temperature_unit,
            "wind_speed_unit": units.wind_speed_unit,
        }

        async def attempt() -> WeatherSnapshot:
            payload = await self._get_json(settings.weather_api_url, params)
            return parse_snapshot(payload)

        logger.info("weather_request", latitude=latitude, longitude=longitude)
        snapshot = await self.fetch(attempt, policy)
        logger.info("weather_fetched", latitude=latitude, longitude=longitude, temperature=snapshot.temperature)
        return snapshot

    async def fetch_location_name(self, latitude: float, longitude: float) -> str:
        """Reverse geocode coordinates to ``"City, Region"``.

        Returns:
            Location name, or an empty string if the service knows no city there

        Raises:
            WeatherServiceError: If every attempt failed
        """
        params = {"latitude": latitude, "longitude": longitude, "localityLanguage": "en"}

        async def attempt() -> Any:
            return await self._get_json(settings.reverse_geocoding_url, params)

        data = await self.fetch(attempt)
        if not isinstance(data, dict) or not data.get("city"):
            logger.warning("reverse_geocoding_no_city", latitude=latitude, longitude=longitude)
            return ""

        name = data["city"]
        region = data.get("principalSubdivision")
        if region and region != name:
            name = f"{name}, {region}"
        logger.info("reverse_geocoding_success", latitude=latitude, longitude=longitude, name=name)
        return name
