"""Classified weather service errors.

Every failure carries a technical message for logs and a plain-language
``user_message`` that is the only part allowed to reach the UI.
"""


class WeatherServiceError(Exception):
    """Weather service error."""

    default_user_message = "Something went wrong. Please try again."
    default_retryable = False

    def __init__(
        self,
        technical_message: str,
        user_message: str | None = None,
        is_retryable: bool | None = None,
    ):
        super().__init__(technical_message)
        self.technical_message = technical_message
        self.user_message = user_message or self.default_user_message
        self.is_retryable = self.default_retryable if is_retryable is None else is_retryable


class NetworkTransportError(WeatherServiceError):
    """Connection refused, DNS failure or timeout."""

    default_user_message = "Unable to reach weather service."
    default_retryable = True


class InvalidRequestError(WeatherServiceError):
    """The upstream rejected our parameters."""

    default_user_message = "Invalid location. Please try again."
    default_retryable = False


class UpstreamUnavailableError(WeatherServiceError):
    default_user_message = "Weather service temporarily unavailable."
    default_retryable = True


class RateLimitedError(WeatherServiceError):
    default_user_message = "Too many requests. Please wait a moment."
    default_retryable = True


class UpstreamServerError(WeatherServiceError):
    default_user_message = "Weather service is having issues. Trying again…"
    default_retryable = True


class DataContractError(WeatherServiceError):
    """Response parsed but required fields are missing or inconsistent."""

    default_user_message = "Received invalid weather data."
    default_retryable = True


class CacheCorruptionError(WeatherServiceError):
    """Persisted cache entry could not be decoded. Always recovered internally."""

    default_user_message = "Cached weather data was unreadable."
    default_retryable = False
