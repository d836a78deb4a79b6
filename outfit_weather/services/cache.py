"""Single-slot persisted weather cache."""

import json
import time
from typing import Any, Callable

from prometheus_client import Counter
from pydantic import ValidationError

from outfit_weather.core.config import settings
from outfit_weather.core.logging import get_logger
from outfit_weather.models.weather import CacheEntry, Coords, WeatherSnapshot
from outfit_weather.services.errors import CacheCorruptionError
from outfit_weather.services.storage import KeyValueStore, StorageError

logger = get_logger(__name__)

CACHE_HITS = Counter("outfit_weather_cache_hits_total", "Cache loads that returned data")
CACHE_MISSES = Counter(
    "outfit_weather_cache_misses_total",
    "Cache loads that returned nothing",
    ["reason"],
)
CACHE_CORRUPTIONS = Counter(
    "outfit_weather_cache_corruptions_total",
    "Corrupt cache entries cleared automatically",
)


class WeatherCache:
    """Weather cache holding the last fetched location only.

    Entries are validated by age and by a coordinate proximity box before
    they are returned. A corrupt entry is cleared on read.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = settings.cache_key,
        coord_threshold: float = settings.cache_coord_threshold,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache.

        Args:
            store: Key-value storage backend
            key: Storage key of the slot
            coord_threshold: Max latitude/longitude delta, in degrees, for a hit
            clock: Returns current time in seconds since the epoch
        """
        self.store = store
        self.key = key
        self.coord_threshold = coord_threshold
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def save(self, data: WeatherSnapshot, lat: float, lon: float) -> bool:
        """Overwrite the slot with ``data``.

        Args:
            data: Snapshot to persist
            lat: Latitude used for the fetch
            lon: Longitude used for the fetch

        Returns:
            True if stored, False if the backend failed
        """
        entry = CacheEntry(data=data, timestamp=self._now_ms(), coords=Coords(lat=lat, lon=lon))
        try:
            self.store.set(self.key, entry.model_dump_json())
            logger.info("cache_set", key=self.key, lat=lat, lon=lon)
            return True
        except StorageError as e:
            logger.warning("cache_set_error", key=self.key, error=str(e))
            return False

    def _read_entry(self) -> CacheEntry | None:
        """Read and decode the slot.

        Raises:
            CacheCorruptionError: If the stored value cannot be decoded
            StorageError: If the backend fails
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None

        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, dict) or not isinstance(parsed.get("data"), dict):
                raise CacheCorruptionError("cache entry has no data object")
            parsed["data"] = _migrate(parsed["data"])
            return CacheEntry.model_validate(parsed)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            raise CacheCorruptionError(f"cache entry undecodable: {e}") from e

    def load(
        self,
        lat: float,
        lon: float,
        max_age_ms: int = settings.cache_max_age_seconds * 1000,
    ) -> WeatherSnapshot | None:
        """Return the cached snapshot if fresh and close enough to ``(lat, lon)``.

        Args:
            lat: Current latitude
            lon: Current longitude
            max_age_ms: Maximum entry age in milliseconds

        Returns:
            Cached snapshot, or None on miss, expiry, location mismatch or corruption
        """
        try:
            entry = self._read_entry()
        except CacheCorruptionError as e:
            logger.warning("cache_corrupted", key=self.key, error=e.technical_message)
            CACHE_CORRUPTIONS.inc()
            self.clear()
            return None
        except StorageError as e:
            logger.error("cache_get_error", key=self.key, error=str(e))
            CACHE_MISSES.labels(reason="storage_error").inc()
            return None

        if entry is None:
            logger.info("cache_miss", key=self.key)
            CACHE_MISSES.labels(reason="empty").inc()
            return None

        age_ms = self._now_ms() - entry.timestamp
        if age_ms > max_age_ms:
            logger.info("cache_expired", age_seconds=round(age_ms / 1000), max_age_seconds=round(max_age_ms / 1000))
            CACHE_MISSES.labels(reason="expired").inc()
            return None

        lat_diff = abs(entry.coords.lat - lat)
        lon_diff = abs(entry.coords.lon - lon)
        if lat_diff > self.coord_threshold or lon_diff > self.coord_threshold:
            logger.info(
                "cache_location_mismatch",
                cached_lat=entry.coords.lat,
                cached_lon=entry.coords.lon,
                lat=lat,
                lon=lon,
            )
            CACHE_MISSES.labels(reason="location").inc()
            return None

        logger.info("cache_hit", key=self.key, age_seconds=round(age_ms / 1000))
        CACHE_HITS.inc()
        return entry.data

    def get_age(self) -> int:
        """Age of the stored entry in seconds, or -1 if there is none.

        Validity is not checked: an expired entry still reports its age.
        """
        try:
            entry = self._read_entry()
        except (CacheCorruptionError, StorageError):
            return -1
        if entry is None:
            return -1
        return round((self._now_ms() - entry.timestamp) / 1000)

    def clear(self) -> None:
        """Delete the slot."""
        try:
            self.store.delete(self.key)
            logger.info("cache_cleared", key=self.key)
        except StorageError as e:
            logger.warning("cache_clear_error", key=self.key, error=str(e))


def _migrate(data: dict[str, Any]) -> dict[str, Any]:
    """Backfill fields added after an entry was written."""
    if "apparent_temperature" not in data and "temperature" in data:
        logger.info("cache_entry_migrated", field="apparent_temperature")
        data = {**data, "apparent_temperature": data["temperature"]}
    return data
