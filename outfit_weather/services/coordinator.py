"""Stale-while-revalidate coordinator for the active location's weather."""

import asyncio
from typing import Callable

from outfit_weather.core.config import settings
from outfit_weather.core.logging import get_logger
from outfit_weather.core.scheduler import Scheduler, TimerHandle
from outfit_weather.models.weather import CoordinatorPhase, CoordinatorState, Units, WeatherSnapshot
from outfit_weather.services.cache import WeatherCache
from outfit_weather.services.errors import WeatherServiceError
from outfit_weather.services.fetch_client import RetryingFetchClient, classify_error

logger = get_logger(__name__)

Listener = Callable[[CoordinatorState], None]


class WeatherCoordinator:
    """Drives the weather shown for one location.

    Cached data is published synchronously on ``start``; the network fetch
    runs as a task and its outcome (fresh data, cached fallback, or an error
    message) is published as state. Nothing here raises on fetch failure.

    Fetches for the same location may overlap; the last one to settle wins.
    A fetch that settles after the location changed is discarded.
    """

    def __init__(
        self,
        client: RetryingFetchClient,
        cache: WeatherCache,
        scheduler: Scheduler,
        units: Units | None = None,
        refresh_interval: float = settings.refresh_interval_seconds,
        skeleton_delay: float = settings.skeleton_delay_seconds,
        max_age_ms: int = settings.cache_max_age_seconds * 1000,
    ):
        """Initialize coordinator.

        Args:
            client: Fetch client for the weather API
            cache: Persisted single-slot cache
            scheduler: Timer capability
            units: Units requested from the weather API
            refresh_interval: Seconds between silent background refreshes
            skeleton_delay: Seconds a first load may take before the skeleton shows
            max_age_ms: Freshness window for cache reads
        """
        self.client = client
        self.cache = cache
        self.scheduler = scheduler
        self.units = units or Units(
            temperature_unit=settings.temperature_unit,
            wind_speed_unit=settings.wind_speed_unit,
        )
        self.refresh_interval = refresh_interval
        self.skeleton_delay = skeleton_delay
        self.max_age_ms = max_age_ms

        self._state = CoordinatorState()
        self._listeners: list[Listener] = []
        self._coords: tuple[float, float] | None = None
        self._generation = 0
        self._skeleton_timer: TimerHandle | None = None
        self._refresh_timer: TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    # State surface

    def snapshot(self) -> CoordinatorState:
        """Current state."""
        return self._state

    @property
    def weather(self) -> WeatherSnapshot | None:
        return self._state.weather

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def refreshing(self) -> bool:
        return self._state.refreshing

    @property
    def show_skeleton(self) -> bool:
        return self._state.show_skeleton

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def cache_age_seconds(self) -> int:
        return self._state.cache_age_seconds

    @property
    def offline(self) -> bool:
        return self._state.offline

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new state. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes) -> None:
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("coordinator_listener_failed")

    # Operations

    def start(self, latitude: float, longitude: float) -> asyncio.Task:
        """Show cached data for a location at once and refresh it in the background.

        Must be called from a running event loop.

        Returns:
            Task of the fetch; awaiting it never raises a weather error
        """
        if self._coords != (latitude, longitude):
            self._cancel_timers()
            self._generation += 1
            logger.info("coordinator_location_changed", latitude=latitude, longitude=longitude)
        self._coords = (latitude, longitude)
        self._closed = False

        cached = self.cache.load(latitude, longitude, self.max_age_ms)
        if cached is not None:
            self._update(
                phase=CoordinatorPhase.REFRESHING,
                weather=cached,
                cache_age_seconds=self.cache.get_age(),
                loading=False,
                refreshing=True,
                offline=False,
                show_skeleton=False,
                latitude=latitude,
                longitude=longitude,
            )
        else:
            self._update(
                phase=CoordinatorPhase.LOADING,
                weather=None,
                cache_age_seconds=-1,
                loading=True,
                refreshing=False,
                offline=False,
                show_skeleton=False,
                latitude=latitude,
                longitude=longitude,
            )
            self._arm_skeleton()

        if self._refresh_timer is None:
            self._refresh_timer = self.scheduler.call_repeating(self.refresh_interval, self._on_refresh_timer)

        return self._spawn()

    async def fetch_weather(self, latitude: float, longitude: float) -> CoordinatorState:
        """Start for a location and wait until its fetch settles."""
        await self.start(latitude, longitude)
        return self._state

    def retry(self) -> asyncio.Task | None:
        """Fetch again for the last coordinates. Does nothing before ``start``."""
        if self._coords is None:
            logger.info("coordinator_retry_skipped", reason="no_coordinates")
            return None
        logger.info("coordinator_retry", latitude=self._coords[0], longitude=self._coords[1])
        self._begin_fetch(arm_skeleton=True)
        return self._spawn()

    def clear_cache(self) -> asyncio.Task | None:
        """Drop the cache and the shown weather, then refetch if a location is known."""
        self.cache.clear()
        self._update(weather=None, cache_age_seconds=-1, offline=False)
        if self._coords is None:
            return None
        self._begin_fetch(arm_skeleton=True)
        return self._spawn()

    def close(self) -> None:
        """Cancel all timers and in-flight fetches. No timer fires afterwards."""
        self._closed = True
        self._generation += 1
        self._cancel_timers()
        for task in list(self._tasks):
            task.cancel()
        self._update(loading=False, refreshing=False, show_skeleton=False)
        logger.info("coordinator_closed")

    # Internals

    def _begin_fetch(self, arm_skeleton: bool) -> None:
        if self._state.weather is not None:
            self._update(phase=CoordinatorPhase.REFRESHING, refreshing=True)
            return
        self._update(phase=CoordinatorPhase.LOADING, loading=True)
        if arm_skeleton:
            self._arm_skeleton()

    def _spawn(self) -> asyncio.Task:
        latitude, longitude = self._coords
        task = asyncio.create_task(self._run_fetch(self._generation, latitude, longitude))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_fetch(self, generation: int, latitude: float, longitude: float) -> None:
        weather = None
        failure: WeatherServiceError | None = None

        try:
            weather = await self.client.fetch_weather(latitude, longitude, self.units)
        except Exception as e:
            failure = classify_error(e)
        finally:
            if generation == self._generation:
                self._cancel_skeleton()

        if generation != self._generation:
            logger.info("coordinator_stale_fetch_discarded", latitude=latitude, longitude=longitude)
            return

        if failure is None:
            self.cache.save(weather, latitude, longitude)
            self._update(
                phase=CoordinatorPhase.SUCCESS,
                weather=weather,
                cache_age_seconds=0,
                offline=False,
                error=None,
                loading=False,
                refreshing=False,
                show_skeleton=False,
            )
            logger.info("coordinator_weather_updated", latitude=latitude, longitude=longitude)
            return

        logger.warning(
            "coordinator_fetch_failed",
            latitude=latitude,
            longitude=longitude,
            error=failure.technical_message,
        )
        cached = self.cache.load(latitude, longitude, self.max_age_ms)
        if cached is not None:
            self._update(
                phase=CoordinatorPhase.OFFLINE_FALLBACK,
                weather=cached,
                offline=True,
                error=failure.user_message,
                cache_age_seconds=self.cache.get_age(),
                loading=False,
                refreshing=False,
                show_skeleton=False,
            )
            logger.info("coordinator_offline_fallback", cache_age_seconds=self._state.cache_age_seconds)
        else:
            self._update(
                phase=CoordinatorPhase.HARD_ERROR,
                weather=None,
                cache_age_seconds=-1,
                offline=False,
                error=failure.user_message,
                loading=False,
                refreshing=False,
                show_skeleton=False,
            )

    def _arm_skeleton(self) -> None:
        self._cancel_skeleton()
        generation = self._generation

        def fire() -> None:
            self._skeleton_timer = None
            if generation == self._generation and self._state.loading:
                self._update(show_skeleton=True)

        self._skeleton_timer = self.scheduler.call_later(self.skeleton_delay, fire)

    def _cancel_skeleton(self) -> None:
        if self._skeleton_timer is not None:
            self._skeleton_timer.cancel()
            self._skeleton_timer = None

    def _on_refresh_timer(self) -> None:
        if self._closed or self._coords is None:
            return
        logger.info("coordinator_background_refresh", latitude=self._coords[0], longitude=self._coords[1])
        self._begin_fetch(arm_skeleton=False)
        self._spawn()

    def _cancel_timers(self) -> None:
        self._cancel_skeleton()
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None
