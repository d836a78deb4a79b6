"""Pydantic models for weather snapshots, cache entries and coordinator state."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Location(BaseModel):
    """Resolved location of a forecast."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., description="Latitude reported by the weather API")
    longitude: float = Field(..., description="Longitude reported by the weather API")
    timezone: str = Field(..., description="IANA timezone of the location")


class DayForecast(BaseModel):
    """Forecast for a single day."""

    model_config = ConfigDict(frozen=True)

    time: str = Field(..., description="ISO date of the day")
    temperature_max: float
    temperature_min: float
    weather_code: int = Field(..., description="Primary WMO weather code")
    precipitation_probability_max: float = 0
    uv_index_max: float = 0
    weather_code_worst: int | None = Field(
        None, description="Most severe hourly code in the remaining hours of the day"
    )
    wind_speed_max: float | None = None
    precipitation_probability_hourly_max: float | None = None
    day_index: int = 0
    day_label: str = ""

    @model_validator(mode="after")
    def _check_range(self) -> "DayForecast":
        if self.temperature_max < self.temperature_min:
            raise ValueError(
                f"temperature_max {self.temperature_max} below temperature_min {self.temperature_min}"
            )
        return self


class DailyForecast(BaseModel):
    """Up to seven days of forecast, starting today."""

    model_config = ConfigDict(frozen=True)

    days: list[DayForecast] = Field(..., min_length=2)

    @property
    def today(self) -> DayForecast:
        return self.days[0]

    @property
    def tomorrow(self) -> DayForecast:
        return self.days[1]


class WeatherSnapshot(BaseModel):
    """Current conditions and forecast for one location at one fetch time."""

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(..., description="Current temperature")
    apparent_temperature: float = Field(..., description="Feels-like temperature")
    weather_code: int = Field(..., description="WMO weather code")
    condition: str = Field(..., description="Human readable condition")
    icon: str = Field(..., description="Emoji icon for the condition")
    wind_speed: float = Field(..., description="Current wind speed")
    is_day: bool = Field(..., description="Whether the sun is up")
    location: Location
    daily: DailyForecast


class Coords(BaseModel):
    """Coordinates a cache entry was fetched for."""

    lat: float
    lon: float


class CacheEntry(BaseModel):
    """The single persisted cache slot."""

    data: WeatherSnapshot
    timestamp: int = Field(..., description="Fetch time in epoch milliseconds")
    coords: Coords


class Units(BaseModel):
    """Measurement units requested from the weather API."""

    model_config = ConfigDict(frozen=True)

    temperature_unit: str = "celsius"
    wind_speed_unit: str = "kmh"


class RetryPolicy(BaseModel):
    """Exponential backoff settings for one logical request."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(3, ge=0)
    initial_delay_ms: float = Field(1000, ge=0)
    backoff_multiplier: float = Field(2, ge=1)
    max_delay_ms: float = Field(10000, ge=0)

    def delay_ms(self, attempt: int) -> float:
        """Delay before ``attempt``; attempt 0 is the first try and waits nothing."""
        if attempt <= 0:
            return 0
        return min(self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1), self.max_delay_ms)


class CoordinatorPhase(str, Enum):
    """Lifecycle phase of the weather coordinator."""

    IDLE = "idle"
    LOADING = "loading"
    REFRESHING = "refreshing"
    SUCCESS = "success"
    OFFLINE_FALLBACK = "offline_fallback"
    HARD_ERROR = "hard_error"


class CoordinatorState(BaseModel):
    """Everything a UI needs to render the weather panel."""

    model_config = ConfigDict(frozen=True)

    phase: CoordinatorPhase = CoordinatorPhase.IDLE
    weather: WeatherSnapshot | None = None
    loading: bool = False
    refreshing: bool = False
    show_skeleton: bool = False
    error: str | None = Field(None, description="User-facing message of the last failure")
    cache_age_seconds: int = -1
    offline: bool = False
    latitude: float | None = None
    longitude: float | None = None


class LocationNameResponse(BaseModel):
    """Reverse geocoding response model."""

    latitude: float
    longitude: float
    name: str = Field(..., description="City and region, empty when unknown")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    storage_connected: bool = Field(..., description="Cache storage reachability")


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
