"""Location names for coordinates, memoised per resolver instance."""

from outfit_weather.core.logging import get_logger
from outfit_weather.services.fetch_client import RetryingFetchClient

logger = get_logger(__name__)


class LocationNameResolver:
    """Resolve and remember location names.

    The memo lives as long as the resolver; create one per application or
    coordinator rather than sharing a module-level table.
    """

    def __init__(self, client: RetryingFetchClient, precision: int = 4):
        self.client = client
        self.precision = precision
        self._names: dict[str, str] = {}

    def _key(self, latitude: float, longitude: float) -> str:
        return f"{latitude:.{self.precision}f},{longitude:.{self.precision}f}"

    async def resolve(self, latitude: float, longitude: float) -> str:
        """Return the location name, fetching it on first use.

        An empty name is remembered too. Failures are not.

        Raises:
            WeatherServiceError: If the reverse geocoding request failed
        """
        key = self._key(latitude, longitude)
        if key in self._names:
            logger.info("location_name_cache_hit", key=key)
            return self._names[key]

        name = await self.client.fetch_location_name(latitude, longitude)
        self._names[key] = name
        return name

    def clear(self) -> None:
        self._names.clear()
