"""Integration tests for the fetch client against a mocked HTTP transport."""

import httpx
import pytest

from outfit_weather.models.weather import Units
from outfit_weather.services.errors import DataContractError, InvalidRequestError, NetworkTransportError
from outfit_weather.services.fetch_client import RetryingFetchClient
from outfit_weather.services.geocoding import LocationNameResolver


def make_fetch_client(handler, sleeps=None):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RetryingFetchClient(client=http, sleep=fake_sleep)


@pytest.mark.asyncio
async def test_fetch_weather_success(mock_weather_response):
    """Test successful weather retrieval and request parameters."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=mock_weather_response)

    client = make_fetch_client(handler)
    snapshot = await client.fetch_weather(37.7749, -122.4194, Units(temperature_unit="fahrenheit", wind_speed_unit="mph"))
    await client.close()

    assert snapshot.temperature == 10.5
    assert snapshot.daily.tomorrow.weather_code_worst == 71
    assert len(requests) == 1
    params = requests[0].url.params
    assert params["latitude"] == "37.7749"
    assert params["longitude"] == "-122.4194"
    assert params["temperature_unit"] == "fahrenheit"
    assert params["wind_speed_unit"] == "mph"
    assert params["timezone"] == "auto"
    assert "apparent_temperature" in params["current"]
    assert "uv_index_max" in params["daily"]


@pytest.mark.asyncio
async def test_fetch_weather_recovers_from_server_errors(mock_weather_response):
    responses = [httpx.Response(503), httpx.Response(500), httpx.Response(200, json=mock_weather_response)]
    sleeps = []

    def handler(request):
        return responses.pop(0)

    client = make_fetch_client(handler, sleeps)
    snapshot = await client.fetch_weather(37.7749, -122.4194)

    assert snapshot.condition == "Clear sky"
    assert responses == []
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_fetch_weather_bad_request_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": True, "reason": "Latitude must be in range"})

    client = make_fetch_client(handler)

    with pytest.raises(InvalidRequestError) as exc_info:
        await client.fetch_weather(999, 0)

    assert len(calls) == 1
    assert exc_info.value.user_message == "Invalid location. Please try again."


@pytest.mark.asyncio
async def test_fetch_weather_invalid_data_retried_then_fails(mock_weather_response):
    del mock_weather_response["current"]["temperature"]
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=mock_weather_response)

    client = make_fetch_client(handler)

    with pytest.raises(DataContractError) as exc_info:
        await client.fetch_weather(37.7749, -122.4194)

    assert len(calls) == 4
    assert exc_info.value.user_message == "Received invalid weather data."


@pytest.mark.asyncio
async def test_fetch_weather_non_json_body():
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    client = make_fetch_client(handler)

    with pytest.raises(DataContractError):
        await client.fetch_weather(37.7749, -122.4194)


@pytest.mark.asyncio
async def test_fetch_weather_connection_refused():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("Connection refused", request=request)

    client = make_fetch_client(handler)

    with pytest.raises(NetworkTransportError) as exc_info:
        await client.fetch_weather(37.7749, -122.4194)

    assert len(calls) == 4
    assert exc_info.value.user_message == "Unable to reach weather service."


@pytest.mark.asyncio
async def test_fetch_location_name():
    def handler(request):
        assert request.url.params["localityLanguage"] == "en"
        return httpx.Response(200, json={"city": "San Francisco", "principalSubdivision": "California"})

    client = make_fetch_client(handler)

    assert await client.fetch_location_name(37.7749, -122.4194) == "San Francisco, California"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,expected",
    [
        ({"city": "Singapore", "principalSubdivision": "Singapore"}, "Singapore"),
        ({"city": "London", "principalSubdivision": ""}, "London"),
        ({"city": "", "principalSubdivision": "Nevada"}, ""),
    ],
)
async def test_fetch_location_name_variants(body, expected):
    client = make_fetch_client(lambda request: httpx.Response(200, json=body))

    assert await client.fetch_location_name(1.0, 2.0) == expected


@pytest.mark.asyncio
async def test_location_name_resolver_memoises():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"city": "Paris", "principalSubdivision": "Île-de-France"})

    resolver = LocationNameResolver(make_fetch_client(handler))

    assert await resolver.resolve(48.85341, 2.3488) == "Paris, Île-de-France"
    assert await resolver.resolve(48.853412, 2.348801) == "Paris, Île-de-France"
    assert len(calls) == 1

    resolver.clear()
    await resolver.resolve(48.85341, 2.3488)
    assert len(calls) == 2
