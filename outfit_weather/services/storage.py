"""Key-value storage backends for the persisted weather cache."""

from typing import Protocol

from redis import Redis
from redis.exceptions import RedisError

from outfit_weather.core.config import settings
from outfit_weather.core.logging import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Storage backend failure."""

    pass


class KeyValueStore(Protocol):
    """String-keyed durable storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def ping(self) -> bool: ...


class MemoryStore:
    """Process-local store, used when no Redis is configured."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def ping(self) -> bool:
        return True


class RedisStore:
    """Redis-backed store. Raises ``StorageError`` on any Redis failure."""

    def __init__(self, redis: Redis):
        self.redis = redis

    @classmethod
    def from_settings(cls) -> "RedisStore":
        """Create a store from application settings. Connects lazily."""
        return cls(
            Redis(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                password=settings.redis_password,
                decode_responses=True,
            )
        )

    def get(self, key: str) -> str | None:
        try:
            return self.redis.get(key)
        except RedisError as e:
            raise StorageError(f"redis get failed: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self.redis.set(key, value)
        except RedisError as e:
            raise StorageError(f"redis set failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.redis.delete(key)
        except RedisError as e:
            raise StorageError(f"redis delete failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except RedisError:
            return False

    def close(self) -> None:
        self.redis.close()
        logger.info("redis_disconnected")


def create_store() -> KeyValueStore:
    """Build the store selected by ``settings.cache_backend``."""
    if settings.cache_backend == "memory":
        logger.info("storage_backend_selected", backend="memory")
        return MemoryStore()
    logger.info("storage_backend_selected", backend="redis", host=settings.redis_host, port=settings.redis_port)
    return RedisStore.from_settings()
