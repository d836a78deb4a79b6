"""Turn raw Open-Meteo responses into weather snapshots."""

from datetime import date
from typing import Any

from outfit_weather.core.logging import get_logger
from outfit_weather.models.weather import DailyForecast, DayForecast, Location, WeatherSnapshot
from outfit_weather.services.errors import DataContractError

logger = get_logger(__name__)

MAX_FORECAST_DAYS = 7

# WMO code -> (description, icon, category)
WEATHER_CODES: dict[int, tuple[str, str, str]] = {
    0: ("Clear sky", "☀️", "clear"),
    1: ("Mainly clear", "🌤️", "clear"),
    2: ("Partly cloudy", "⛅", "cloudy"),
    3: ("Overcast", "☁️", "cloudy"),
    45: ("Fog", "🌫️", "cloudy"),
    48: ("Depositing rime fog", "🌫️", "cloudy"),
    51: ("Light drizzle", "🌧️", "precipitation"),
    53: ("Moderate drizzle", "🌧️", "precipitation"),
    55: ("Dense drizzle", "🌧️", "precipitation"),
    56: ("Light freezing drizzle", "🌨️", "precipitation"),
    57: ("Dense freezing drizzle", "🌨️", "precipitation"),
    61: ("Slight rain", "🌧️", "precipitation"),
    63: ("Moderate rain", "🌧️", "precipitation"),
    65: ("Heavy rain", "🌧️", "precipitation"),
    66: ("Light freezing rain", "🌨️", "precipitation"),
    67: ("Heavy freezing rain", "🌨️", "precipitation"),
    71: ("Slight snow", "🌨️", "precipitation"),
    73: ("Moderate snow", "❄️", "precipitation"),
    75: ("Heavy snow", "❄️", "precipitation"),
    77: ("Snow grains", "❄️", "precipitation"),
    80: ("Slight rain showers", "🌦️", "precipitation"),
    81: ("Moderate rain showers", "🌦️", "precipitation"),
    82: ("Violent rain showers", "⛈️", "precipitation"),
    85: ("Slight snow showers", "🌨️", "precipitation"),
    86: ("Heavy snow showers", "❄️", "precipitation"),
    95: ("Thunderstorm", "⛈️", "extreme"),
    96: ("Thunderstorm with slight hail", "⛈️", "extreme"),
    99: ("Thunderstorm with heavy hail", "⛈️", "extreme"),
}

UNKNOWN_CONDITION = ("Unknown condition", "❓", "cloudy")

_WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def get_condition(weather_code: int) -> tuple[str, str, str]:
    """Return ``(description, icon, category)`` for a WMO code."""
    return WEATHER_CODES.get(weather_code, UNKNOWN_CONDITION)


def severity(weather_code: int) -> int:
    """Rank a code: thunderstorm > snow > rain > cloudy > clear."""
    if weather_code >= 95:
        return 5
    if 71 <= weather_code <= 77 or weather_code in (85, 86):
        return 4
    if 51 <= weather_code <= 67 or 80 <= weather_code <= 82:
        return 3
    if weather_code in (2, 3, 45, 48):
        return 2
    return 1


def day_label(day_index: int, day: str) -> str:
    """Label a forecast day: Today, Tomorrow, then weekday abbreviations."""
    if day_index == 0:
        return "Today"
    if day_index == 1:
        return "Tomorrow"
    return _WEEKDAYS[date.fromisoformat(day[:10]).weekday()]


def _hourly_extremes(hourly: dict[str, Any], day: str, not_before: str | None) -> dict[str, Any]:
    """Worst code and maxima over the hours of ``day`` at or after ``not_before``."""
    times = hourly.get("time") or []
    codes = hourly.get("weathercode") or []
    winds = hourly.get("windspeed_10m") or []
    precip = hourly.get("precipitation_probability") or []

    indices = [
        i
        for i, stamp in enumerate(times)
        if isinstance(stamp, str)
        and stamp.startswith(day)
        and (not_before is None or stamp >= not_before)
    ]
    if not indices:
        return {}

    worst = None
    wind_max = None
    precip_max = None
    for i in indices:
        if i < len(codes) and codes[i] is not None:
            if worst is None or severity(codes[i]) > severity(worst):
                worst = codes[i]
        if i < len(winds) and winds[i] is not None:
            wind_max = winds[i] if wind_max is None else max(wind_max, winds[i])
        if i < len(precip) and precip[i] is not None:
            precip_max = precip[i] if precip_max is None else max(precip_max, precip[i])

    return {
        "weather_code_worst": worst,
        "wind_speed_max": wind_max,
        "precipitation_probability_hourly_max": precip_max,
    }


def validate_payload(payload: Any) -> None:
    """Check the fields every snapshot needs.

    Raises:
        DataContractError: If current temperature, weather code or the daily
            block is missing.
    """
    if not isinstance(payload, dict):
        raise DataContractError("Invalid API response: body is not an object")

    current = payload.get("current")
    if not isinstance(current, dict) or not _is_number(current.get("temperature")):
        raise DataContractError("Invalid API response: missing current temperature")
    if not _is_number(current.get("weathercode")):
        raise DataContractError("Invalid API response: missing weather code")

    daily = payload.get("daily")
    if not isinstance(daily, dict) or not isinstance(daily.get("time"), list):
        raise DataContractError("Invalid API response: missing daily forecast data")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _at(block: dict[str, Any], key: str, i: int) -> float:
    values = block.get(key) or []
    if i < len(values) and values[i] is not None:
        return values[i]
    return 0


def parse_snapshot(payload: dict[str, Any]) -> WeatherSnapshot:
    """Build a snapshot from an Open-Meteo forecast response.

    Args:
        payload: Decoded JSON body with ``current``, ``daily`` and optionally
            ``hourly`` blocks

    Returns:
        Weather snapshot

    Raises:
        DataContractError: If the payload does not satisfy the snapshot contract
    """
    validate_payload(payload)

    current = payload["current"]
    daily = payload["daily"]
    hourly = payload.get("hourly")
    if not isinstance(hourly, dict):
        hourly = {}

    # Hourly stamps are local "YYYY-MM-DDTHH:MM"; today only counts from the current hour on.
    current_time = current.get("time")
    current_hour = f"{current_time[:13]}:00" if isinstance(current_time, str) else None

    try:
        days = []
        for i, day in enumerate(daily["time"][:MAX_FORECAST_DAYS]):
            extremes = _hourly_extremes(hourly, day[:10], current_hour if i == 0 else None)
            days.append(
                DayForecast(
                    time=day,
                    temperature_max=daily["temperature_2m_max"][i],
                    temperature_min=daily["temperature_2m_min"][i],
                    weather_code=daily["weathercode"][i],
                    precipitation_probability_max=_at(daily, "precipitation_probability_max", i),
                    uv_index_max=_at(daily, "uv_index_max", i),
                    day_index=i,
                    day_label=day_label(i, day),
                    **extremes,
                )
            )

        description, icon, _ = get_condition(current["weathercode"])
        temperature = current["temperature"]
        return WeatherSnapshot(
            temperature=temperature,
            apparent_temperature=current.get("apparent_temperature", temperature),
            weather_code=current["weathercode"],
            condition=description,
            icon=icon,
            wind_speed=current.get("windspeed", 0.0),
            is_day=bool(current.get("is_day", 1)),
            location=Location(
                latitude=payload.get("latitude"),
                longitude=payload.get("longitude"),
                timezone=payload.get("timezone", "UTC"),
            ),
            daily=DailyForecast(days=days),
        )
    except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
        logger.warning("forecast_parse_failed", error=str(e))
        raise DataContractError(f"Invalid API response: {e}")
