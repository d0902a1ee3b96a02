"""
Tests for the httpx-based telemetry and weather adapters.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from pvwatch.adapters.http.rest import HttpTelemetryStore, HttpWeatherProvider
from pvwatch.core.errors import UpstreamFetchError

START = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)
END = datetime(2024, 6, 2, 0, 0, tzinfo=timezone.utc)


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status = MagicMock()
    return response


@pytest.fixture
def mock_client():
    with patch("pvwatch.adapters.http.rest.httpx.AsyncClient") as MockClient:
        client_instance = MockClient.return_value
        client_instance.aclose = AsyncMock()
        yield client_instance


@pytest.mark.asyncio
async def test_history_parses_and_sorts(mock_client):
    mock_client.get = AsyncMock(return_value=_response([
        {"system_id": "sys-1", "timestamp": "2024-06-01T13:00:00Z", "production": {"ac_power": 4.0}},
        {"system_id": "sys-1", "timestamp": "2024-06-01T12:00:00Z", "production": {"ac_power": 5.0}},
    ]))
    store = HttpTelemetryStore(base_url="http://storage:8080/")

    records = await store.history("sys-1", START, END)

    assert [r.production.ac_power for r in records] == [5.0, 4.0]
    url = mock_client.get.call_args[0][0]
    assert url == "http://storage:8080/systems/sys-1/telemetry"
    assert mock_client.get.call_args[1]["params"] == {"start": START.isoformat(), "end": END.isoformat()}


@pytest.mark.asyncio
async def test_http_error_becomes_upstream_failure(mock_client):
    mock_client.get = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
    store = HttpTelemetryStore(base_url="http://storage:8080")

    with pytest.raises(UpstreamFetchError):
        await store.history("sys-1", START, END)


@pytest.mark.asyncio
async def test_malformed_payload_becomes_upstream_failure(mock_client):
    mock_client.get = AsyncMock(return_value=_response([{"timestamp": "not-a-date"}]))
    store = HttpTelemetryStore(base_url="http://storage:8080")

    with pytest.raises(UpstreamFetchError):
        await store.history("sys-1", START, END)


@pytest.mark.asyncio
async def test_weather_samples(mock_client):
    mock_client.get = AsyncMock(return_value=_response([
        {"timestamp": "2024-06-01T12:00:00Z", "irradiance": 850.0, "cloud_cover": 0.2},
    ]))
    provider = HttpWeatherProvider(base_url="http://weather:8080", timeout=5.0)

    [sample] = await provider.samples("sys-1", START, END)

    assert sample.irradiance == 850.0
    assert sample.cloud_cover == 0.2
    assert mock_client.get.call_args[0][0] == "http://weather:8080/systems/sys-1/weather"


@pytest.mark.asyncio
async def test_client_is_reused_and_closed(mock_client):
    mock_client.get = AsyncMock(return_value=_response([]))
    store = HttpTelemetryStore(base_url="http://storage:8080")

    await store.history("sys-1", START, END)
    await store.history("sys-1", START, END)
    await store.close()

    assert mock_client.get.await_count == 2
    mock_client.aclose.assert_awaited_once()
    assert store._client is None
