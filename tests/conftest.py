"""Test configuration and fixtures."""

import asyncio

import pytest
from fakeredis import FakeRedis

from outfit_weather.models.weather import WeatherSnapshot
from outfit_weather.services.cache import WeatherCache
from outfit_weather.services.forecast import parse_snapshot
from outfit_weather.services.storage import RedisStore


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    def __init__(self, due: float, callback, interval: float | None):
        self.due = due
        self.callback = callback
        self.interval = interval
        self.active = True

    def cancel(self) -> None:
        self.active = False


class FakeScheduler:
    """Deterministic scheduler; time passes only through ``advance``."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay, callback):
        timer = FakeTimer(self.now + delay, callback, None)
        self.timers.append(timer)
        return timer

    def call_repeating(self, interval, callback):
        timer = FakeTimer(self.now + interval, callback, interval)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.active]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            if timer.interval is None:
                timer.active = False
            else:
                timer.due += timer.interval
            timer.callback()
        self.now = target


class FakeWeatherClient:
    """Stands in for RetryingFetchClient; outcome ``i`` answers call ``i``."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[tuple[float, float]] = []
        self.gates: dict[int, asyncio.Event] = {}

    def hold(self, call_index: int) -> asyncio.Event:
        """Block call ``call_index`` until the returned event is set."""
        gate = asyncio.Event()
        self.gates[call_index] = gate
        return gate

    async def fetch_weather(self, latitude, longitude, units=None):
        index = len(self.calls)
        self.calls.append((latitude, longitude))
        if index in self.gates:
            await self.gates[index].wait()
        outcome = self.outcomes[min(index, len(self.outcomes) - 1)]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def build_hourly(days: list[str]) -> dict:
    times, codes, winds, precip = [], [], [], []
    for day in days:
        for hour in range(24):
            times.append(f"{day}T{hour:02d}:00")
            codes.append(0)
            winds.append(10.0)
            precip.append(0)
    return {
        "time": times,
        "temperature_2m": [8.0] * len(times),
        "weathercode": codes,
        "windspeed_10m": winds,
        "precipitation_probability": precip,
    }


@pytest.fixture
def mock_weather_response():
    """Open-Meteo forecast response for San Francisco on a Monday morning."""
    days = ["2024-01-15", "2024-01-16", "2024-01-17"]
    hourly = build_hourly(days)

    # Thunderstorm before the current hour must not count for today
    hourly["weathercode"][8] = 95
    hourly["windspeed_10m"][8] = 50.0
    # Afternoon rain today
    hourly["weathercode"][15] = 61
    hourly["windspeed_10m"][15] = 25.0
    hourly["precipitation_probability"][15] = 80
    # Tomorrow: snow beats rain
    hourly["weathercode"][24 + 9] = 71
    hourly["weathercode"][24 + 12] = 63

    return {
        "latitude": 37.7749,
        "longitude": -122.4194,
        "timezone": "America/Los_Angeles",
        "current": {
            "time": "2024-01-15T10:30",
            "temperature": 10.5,
            "apparent_temperature": 8.0,
            "windspeed": 12.3,
            "is_day": 1,
            "weathercode": 0,
        },
        "daily": {
            "time": days,
            "temperature_2m_max": [12.0, 10.0, 9.0],
            "temperature_2m_min": [4.0, 3.0, 2.0],
            "weathercode": [0, 71, 3],
            "precipitation_probability_max": [80, 60, 10],
            "uv_index_max": [2.5, 1.0, 3.0],
        },
        "hourly": hourly,
    }


@pytest.fixture
def snapshot(mock_weather_response) -> WeatherSnapshot:
    return parse_snapshot(mock_weather_response)


@pytest.fixture
def make_client():
    """Factory for fake fetch clients."""
    return FakeWeatherClient


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def fake_redis():
    """Redis replaced by fakeredis."""
    return FakeRedis(decode_responses=True)


@pytest.fixture
def store(fake_redis):
    return RedisStore(fake_redis)


@pytest.fixture
def weather_cache(store, clock):
    return WeatherCache(store, clock=clock)
