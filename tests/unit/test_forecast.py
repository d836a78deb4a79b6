"""Unit tests for forecast parsing."""

import copy

import pytest

from outfit_weather.services.errors import DataContractError
from outfit_weather.services.forecast import get_condition, parse_snapshot, severity


def test_parse_current_conditions(snapshot):
    assert snapshot.temperature == 10.5
    assert snapshot.apparent_temperature == 8.0
    assert snapshot.weather_code == 0
    assert snapshot.condition == "Clear sky"
    assert snapshot.wind_speed == 12.3
    assert snapshot.is_day is True
    assert snapshot.location.timezone == "America/Los_Angeles"


def test_parse_daily_forecast(snapshot):
    today, tomorrow, later = snapshot.daily.days

    assert snapshot.daily.today == today
    assert snapshot.daily.tomorrow == tomorrow
    assert (today.day_label, tomorrow.day_label, later.day_label) == ("Today", "Tomorrow", "Wed")
    assert today.temperature_max == 12.0
    assert today.temperature_min == 4.0
    assert today.uv_index_max == 2.5
    assert today.precipitation_probability_max == 80


def test_worst_code_uses_remaining_hours_of_today(snapshot):
    """Morning thunderstorm is over; afternoon rain still counts."""
    today = snapshot.daily.today

    assert today.weather_code_worst == 61
    assert today.wind_speed_max == 25.0
    assert today.precipitation_probability_hourly_max == 80


def test_worst_code_ranks_snow_above_rain(snapshot):
    assert snapshot.daily.tomorrow.weather_code_worst == 71
    assert snapshot.daily.days[2].weather_code_worst == 0


def test_severity_ranking():
    assert severity(95) > severity(73) > severity(61) > severity(3) > severity(0)
    assert severity(85) == severity(71)
    assert severity(56) == severity(80)


def test_unknown_code_condition():
    assert get_condition(42) == ("Unknown condition", "❓", "cloudy")


def test_missing_apparent_temperature_falls_back(mock_weather_response):
    del mock_weather_response["current"]["apparent_temperature"]

    assert parse_snapshot(mock_weather_response).apparent_temperature == 10.5


def test_missing_hourly_block_leaves_extremes_empty(mock_weather_response):
    del mock_weather_response["hourly"]

    today = parse_snapshot(mock_weather_response).daily.today

    assert today.weather_code_worst is None
    assert today.wind_speed_max is None


def test_null_hourly_time_is_skipped(mock_weather_response):
    mock_weather_response["hourly"]["time"][15] = None

    snapshot = parse_snapshot(mock_weather_response)

    assert snapshot.daily.today.weather_code_worst == 0
    assert snapshot.daily.today.wind_speed_max == 10.0
    assert snapshot.daily.tomorrow.weather_code_worst == 71


def test_non_object_hourly_block_is_ignored(mock_weather_response):
    mock_weather_response["hourly"] = ["2024-01-15T10:00"]

    assert parse_snapshot(mock_weather_response).daily.today.weather_code_worst is None


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p["current"].pop("temperature"),
        lambda p: p["current"].update(temperature=None),
        lambda p: p["current"].pop("weathercode"),
        lambda p: p.pop("daily"),
        lambda p: p["daily"].update(time=["2024-01-15"]),
        lambda p: p["daily"].update(temperature_2m_min=[20.0, 3.0, 2.0]),
        lambda p: p["daily"]["temperature_2m_max"].clear(),
        lambda p: p["daily"]["time"].__setitem__(1, None),
    ],
    ids=["no-temperature", "null-temperature", "no-code", "no-daily", "one-day", "high-below-low", "short-max", "null-day"],
)
def test_invalid_payload_raises_data_contract_error(mock_weather_response, mutate):
    payload = copy.deepcopy(mock_weather_response)
    mutate(payload)

    with pytest.raises(DataContractError) as exc_info:
        parse_snapshot(payload)

    assert exc_info.value.is_retryable is True
    assert exc_info.value.user_message == "Received invalid weather data."
